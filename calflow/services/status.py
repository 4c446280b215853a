"""Status lifecycle: closed status enum, priorities, migration, transitions."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Status(str, Enum):
    NEW = "New"
    NO_CAL = "No Cal"
    READY = "Ready"
    RESCHEDULED = "Rescheduled"
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In Progress"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"

    def __str__(self) -> str:
        return self.value


# Terminal states sit above every in-flight state; Cancelled below Completed.
STATUS_PRIORITY: dict[Status, int] = {
    Status.NEW: 1,
    Status.NO_CAL: 2,
    Status.READY: 3,
    Status.RESCHEDULED: 4,
    Status.SCHEDULED: 5,
    Status.IN_PROGRESS: 6,
    Status.CANCELLED: 7,
    Status.COMPLETED: 8,
}

TERMINAL_STATUSES = frozenset({Status.COMPLETED, Status.CANCELLED})

# Every label seen across both schema generations, keyed by squashed form.
_MIGRATION: dict[str, Status] = {
    "notready": Status.NEW,
    "needsattention": Status.NEW,
    "needsreview": Status.NEW,
    "pending": Status.NEW,
    "blocked": Status.CANCELLED,
    "canceled": Status.CANCELLED,
    "complete": Status.COMPLETED,
    "done": Status.COMPLETED,
    "nocalrequired": Status.NO_CAL,
    "nocalibration": Status.NO_CAL,
    "nocalibrationrequired": Status.NO_CAL,
    "inprogress": Status.IN_PROGRESS,
    "started": Status.IN_PROGRESS,
}

_SQUASH_RE = re.compile(r"[\s_\-]+")


def _squash(label: str) -> str:
    return _SQUASH_RE.sub("", label).lower()


_CURRENT: dict[str, Status] = {_squash(s.value): s for s in Status}


def normalize_status(label: object) -> Status:
    """Map any historical label to a current status. Unknown text -> New."""
    if isinstance(label, Status):
        return label
    if label is None:
        return Status.NEW
    key = _squash(str(label))
    if not key:
        return Status.NEW
    if key in _CURRENT:
        return _CURRENT[key]
    if key in _MIGRATION:
        return _MIGRATION[key]
    logger.info("Unrecognized status label %r normalized to New", label)
    return Status.NEW


def priority(status: Status) -> int:
    return STATUS_PRIORITY[status]


def is_terminal(status: Status) -> bool:
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class StatusDecision:
    status: Status
    blocked: Status | None = None  # requested status refused by priority protection


def resolve_merge_status(current: Status, requested: Status | None) -> StatusDecision:
    """Forward-or-level only: a lower-priority request never wins."""
    if requested is None:
        return StatusDecision(current)
    if priority(requested) >= priority(current):
        return StatusDecision(requested)
    logger.info(
        "Status protection: keeping %s (priority %d) over %s (priority %d)",
        current, priority(current), requested, priority(requested),
    )
    return StatusDecision(current, blocked=requested)


def report_arrival_status(current: Status, no_calibration: bool) -> Status | None:
    """Status forced when a calibration report first appears on a record.

    Returns None when the record has already moved past the
    report-determined tier (Ready / No Cal) and must not be pulled back.
    """
    target = Status.NO_CAL if no_calibration else Status.READY
    if priority(current) > priority(Status.READY):
        return None
    return target
