from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from calflow.schemas.work_order import coerce_datetime

PENDING = "Pending"
APPROVED = "Approved"
DENIED = "Denied"


class AssignmentRequestRecord(BaseModel):
    id: str = ""
    created_at: datetime | None = None
    work_order_id: str
    requesting_tech: str
    current_tech: str = ""
    reason: str = ""
    status: str = PENDING
    reviewed_by: str = ""
    reviewed_at: datetime | None = None
    denial_reason: str = ""

    model_config = {"from_attributes": True}

    @field_validator("created_at", "reviewed_at", mode="before")
    @classmethod
    def _aware(cls, v: Any) -> datetime | None:
        return coerce_datetime(v)

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING
