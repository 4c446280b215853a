from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from calflow.schemas.work_order import WorkOrderRecord


class ErrorInfo(BaseModel):
    kind: str
    message: str


class EngineResult(BaseModel):
    """Structured outcome of one engine operation. Never raised past the boundary."""

    success: bool
    action: str = ""
    record: WorkOrderRecord | None = None
    created: bool = False
    changed: bool = False
    error: ErrorInfo | None = None
    warnings: list[str] = []
    data: dict[str, Any] = {}

    @classmethod
    def ok(cls, action: str, record: WorkOrderRecord | None = None, **kwargs) -> "EngineResult":
        return cls(success=True, action=action, record=record, **kwargs)

    @classmethod
    def failure(cls, action: str, kind: str, message: str, **kwargs) -> "EngineResult":
        return cls(success=False, action=action, error=ErrorInfo(kind=kind, message=message), **kwargs)

    def summary(self) -> dict:
        out: dict[str, Any] = {"success": self.success, "action": self.action}
        if self.record is not None:
            out["record"] = self.record.summary()
        if self.error is not None:
            out["error"] = self.error.model_dump()
        if self.warnings:
            out["warnings"] = self.warnings
        if self.data:
            out["data"] = self.data
        out["created"], out["changed"] = self.created, self.changed
        return out
