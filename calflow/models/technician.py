"""Technician model — covers one or more service regions."""

from __future__ import annotations

from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from calflow.models.base import Base, ULIDMixin


class Technician(Base, ULIDMixin):
    __tablename__ = "technicians"

    name: Mapped[str] = mapped_column(String(200))
    regions: Mapped[str] = mapped_column(String(500), default="")  # comma-separated
    email: Mapped[str] = mapped_column(String(255), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def region_list(self) -> list[str]:
        return [r.strip() for r in self.regions.split(",") if r.strip()]
