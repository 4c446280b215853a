"""Work order model — one row per physical calibration job."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Text, JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from calflow.models.base import Base, ULIDMixin


class WorkOrder(Base, ULIDMixin):
    __tablename__ = "work_orders"

    shop_name: Mapped[str] = mapped_column(String(200), default="")
    reference_number: Mapped[str] = mapped_column(String(100), default="", index=True)
    vin: Mapped[str] = mapped_column(String(40), default="", index=True)
    vehicle_description: Mapped[str] = mapped_column(String(200), default="")
    status: Mapped[str] = mapped_column(String(20), default="New")
    scheduled_date: Mapped[str] = mapped_column(String(40), default="")
    scheduled_time: Mapped[str] = mapped_column(String(40), default="")
    technician: Mapped[str] = mapped_column(String(100), default="")
    required_calibrations: Mapped[str] = mapped_column(Text, default="")
    completed_calibrations: Mapped[str] = mapped_column(Text, default="")
    dtc_codes: Mapped[str] = mapped_column(Text, default="")  # "PRE: ... | POST: ..."

    # Document links (URL or sentinel token such as NO_DTCS_CONFIRMED)
    estimate_url: Mapped[str] = mapped_column(Text, default="")
    prescan_url: Mapped[str] = mapped_column(Text, default="")
    calibration_report_url: Mapped[str] = mapped_column(Text, default="")
    postscan_url: Mapped[str] = mapped_column(Text, default="")
    invoice_url: Mapped[str] = mapped_column(Text, default="")
    supplemental_docs: Mapped[str] = mapped_column(Text, default="")

    invoice_number: Mapped[str] = mapped_column(String(60), default="")
    invoice_amount: Mapped[str] = mapped_column(String(40), default="")
    invoice_date: Mapped[str] = mapped_column(String(40), default="")

    short_notes: Mapped[str] = mapped_column(Text, default="")
    flow_history: Mapped[str] = mapped_column(Text, default="")

    job_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    job_ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    notification_flags: Mapped[dict] = mapped_column(JSON, default=dict)
