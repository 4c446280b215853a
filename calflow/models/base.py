"""SQLAlchemy declarative base with ULID primary key mixin."""

from __future__ import annotations

from datetime import datetime, timezone
from sqlalchemy import String, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from ulid import ULID


def new_id() -> str:
    return str(ULID())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ULIDMixin:
    """Mixin that provides a ULID primary key and created_at timestamp.

    ULIDs sort by creation time, so ordering by id is ordering by insert.
    """

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
