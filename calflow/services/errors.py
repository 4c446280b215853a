"""Engine error taxonomy. Raised inside the service, converted once at dispatch."""

from __future__ import annotations


class EngineError(Exception):
    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(EngineError):
    """Missing identifying field or required action input."""

    kind = "validation"


class NotFound(EngineError):
    kind = "not_found"


class Conflict(EngineError):
    """Duplicate in-flight request for the same record."""

    kind = "conflict"


class InvalidTransition(EngineError):
    kind = "invalid_transition"


class UpstreamFetchFailure(EngineError):
    """Document fetch timed out or failed. Never fatal to a merge."""

    kind = "upstream_fetch"
