"""Assignment request model — a technician asking to take over a work order."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Text, ForeignKey, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from calflow.models.base import Base, ULIDMixin


class AssignmentRequest(Base, ULIDMixin):
    __tablename__ = "assignment_requests"

    work_order_id: Mapped[str] = mapped_column(String(26), ForeignKey("work_orders.id"), index=True)
    requesting_tech: Mapped[str] = mapped_column(String(100))
    current_tech: Mapped[str] = mapped_column(String(100), default="")
    reason: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="Pending")  # Pending | Approved | Denied
    reviewed_by: Mapped[str] = mapped_column(String(100), default="")
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    denial_reason: Mapped[str] = mapped_column(Text, default="")
