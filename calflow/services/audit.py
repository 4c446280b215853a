"""Audit surfaces: the short-notes preview and the append-only flow history."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from calflow.config import get_settings

_settings = get_settings()
_tz = ZoneInfo(_settings.timezone)


class EventCode(str, Enum):
    NEW = "NEW"
    UPDATED = "UPDATED"
    STATUS = "STATUS"
    READY = "READY"
    NO_CAL = "NO_CAL"
    SCHEDULED = "SCHEDULED"
    RESCHEDULED = "RESCHEDULED"
    CANCELLED = "CANCELLED"
    NOTE = "NOTE"
    DTC = "DTC"
    REPORT = "REPORT"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    ASSIGNED = "ASSIGNED"
    REASSIGNED = "REASSIGNED"
    REQUESTED = "REQUESTED"
    DENIED = "DENIED"
    OVERRIDE = "OVERRIDE"

    def __str__(self) -> str:
        return self.value


def format_timestamp(ts: datetime) -> str:
    """``MM/DD/YY h:mm AM`` in the operations timezone."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    local = ts.astimezone(_tz)
    hour = local.hour % 12 or 12
    return f"{local:%m/%d/%y} {hour}:{local:%M %p}"


def format_entry(ts: datetime, code: EventCode | str, text: str) -> str:
    """One flow-history line: ``<timestamp> <EVENT_CODE> <free text>``."""
    text = " ".join(str(text).split())  # entries are single-line
    return f"{format_timestamp(ts)}  {str(code):<12} {text}".rstrip()


def history_entries(history: str) -> list[str]:
    return [line for line in (history or "").split("\n") if line.strip()]


def append_entries(history: str, entries: list[str]) -> str:
    """Append entries after existing history; never rewrites prior lines."""
    new = [e for e in entries if e and e.strip()]
    if not new:
        return history or ""
    block = "\n".join(new)
    return f"{history}\n{block}" if history else block


def is_replayed(history: str, entries: list[str]) -> bool:
    """True when history already ends with exactly these entries."""
    new = [e for e in entries if e and e.strip()]
    if not new:
        return False
    existing = history_entries(history)
    return len(existing) >= len(new) and existing[-len(new):] == new


def preview_notes(current: str, incoming: str | None, max_length: int | None = None) -> str:
    """Replace the preview only when the new text differs; bound its length."""
    if max_length is None:
        max_length = _settings.notes.short_notes_max_length
    if incoming is None or not incoming.strip():
        return current
    text = incoming.strip()
    if len(text) > max_length:
        text = text[: max_length - 1].rstrip() + "…"
    if text == current:
        return current
    return text
