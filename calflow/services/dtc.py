"""Diagnostic trouble codes stored as PRE/POST sub-lists in one field.

Stored form: ``PRE: P0171, U0100 | POST: None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

_DTC_RE = re.compile(r"^[PBCU][0-9A-F]{4}$", re.IGNORECASE)
_SPLIT_RE = re.compile(r"[,;\s]+")

PRE = "PRE"
POST = "POST"


@dataclass
class DtcSets:
    pre: list[str] = field(default_factory=list)
    post: list[str] = field(default_factory=list)
    has_pre: bool = False
    has_post: bool = False


def is_valid_dtc(code: str) -> bool:
    return bool(code) and bool(_DTC_RE.match(code))


def clean_codes(codes: Iterable[str] | str | None) -> list[str]:
    """Uppercase, validate and de-duplicate; invalid entries are dropped."""
    if codes is None:
        return []
    if isinstance(codes, str):
        codes = _SPLIT_RE.split(codes)
    out: list[str] = []
    for code in codes:
        c = str(code).strip().upper()
        if is_valid_dtc(c) and c not in out:
            out.append(c)
    return out


def normalize_phase(phase: str | None) -> str:
    return POST if str(phase or "").strip().upper().startswith("POST") else PRE


def parse_dtc_field(value: str | None) -> DtcSets:
    sets = DtcSets()
    if not value:
        return sets
    for part in value.split("|"):
        part = part.strip()
        label, _, rest = part.partition(":")
        label = label.strip().upper()
        rest = rest.strip()
        codes = [] if rest.lower() == "none" else clean_codes(rest)
        if label == PRE:
            sets.pre, sets.has_pre = codes, True
        elif label == POST:
            sets.post, sets.has_post = codes, True
    return sets


def format_dtc_field(sets: DtcSets) -> str:
    def _fmt(label: str, codes: list[str]) -> str:
        return f"{label}: {', '.join(codes) if codes else 'None'}"

    parts = []
    if sets.has_pre or sets.has_post:
        parts.append(_fmt(PRE, sets.pre))
    if sets.has_post:
        parts.append(_fmt(POST, sets.post))
    return " | ".join(parts)


def is_labeled(value: str) -> bool:
    head = value.strip().upper()
    return head.startswith("PRE:") or head.startswith("POST:")


def merge_dtcs(existing: str, incoming: list[str] | str | None, phase: str | None) -> str:
    """Replace one scan-phase sub-list, keep the other.

    ``incoming`` may already be labeled (``"PRE: P0171 | POST: None"``),
    in which case every labeled sub-list it carries replaces its counterpart.
    """
    current = parse_dtc_field(existing)
    if isinstance(incoming, str) and is_labeled(incoming):
        update = parse_dtc_field(incoming)
        if update.has_pre:
            current.pre, current.has_pre = update.pre, True
        if update.has_post:
            current.post, current.has_post = update.post, True
        return format_dtc_field(current)

    codes = clean_codes(incoming)
    if normalize_phase(phase) == POST:
        current.post, current.has_post = codes, True
    else:
        current.pre, current.has_pre = codes, True
    return format_dtc_field(current)
