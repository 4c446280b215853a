"""VIN and reference-number normalization.

Upstream estimate systems routinely put their own 17-character reference
numbers in the VIN slot, and shops append revision suffixes to RO/PO numbers
(``11999-PM``, ``3080-ENT``, ``12345_REV2``). Everything here is a pure,
total function over strings so the locator and merge engine can rely on it
for any input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from calflow.config import get_settings

_settings = get_settings()
_ids = _settings.identifiers

_FALSE_POSITIVE_RE = re.compile(
    r"^(?:" + "|".join(re.escape(p) for p in _ids.vin_false_positive_prefixes) + r")",
    re.IGNORECASE,
)
_CHECK_DIGIT_RE = re.compile(r"^[0-9X]$")
_NON_DIGIT_RE = re.compile(r"[^0-9]")

# One trailing token: separator + (REVn | FINAL | 1-2 digits | 1-3 letters [+digit]),
# or letters/REV/FINAL glued straight onto the last digit.
_SUFFIX_RE = re.compile(
    r"(?:[-_ ](?:REV\d*|FINAL|\d{1,2}|[A-Z]{1,3}\d?)|(?<=\d)(?:REV\d*|FINAL|[A-Z]{1,3}))$",
    re.IGNORECASE,
)
_PLACEHOLDERS = {p.upper() for p in _ids.reference_placeholders}


@dataclass(frozen=True)
class ReferenceForms:
    """The three comparison forms of a reference number."""

    raw: str
    normalized: str
    numeric: str


def normalize_vin(vin: object) -> str:
    if vin is None:
        return ""
    return str(vin).strip().upper()


def is_valid_vin(vin: object) -> bool:
    """True only for VINs that can be trusted as identity.

    Invalid values are still stored; they are just never authoritative.
    """
    value = normalize_vin(vin)
    if len(value) != 17:
        return False
    if _FALSE_POSITIVE_RE.match(value):
        return False
    if value[0] not in _ids.vin_region_chars:
        return False
    return bool(_CHECK_DIGIT_RE.match(value[8]))


def clean_reference(ref: object) -> str:
    if ref is None:
        return ""
    return str(ref).strip()


def strip_reference_suffix(ref: object) -> str:
    """Remove trailing revision/suffix tokens, keeping at least one digit."""
    value = clean_reference(ref)
    while True:
        stripped = _SUFFIX_RE.sub("", value).strip()
        if stripped == value or not any(c.isdigit() for c in stripped):
            return value
        value = stripped


def numeric_reference(ref: object) -> str:
    return _NON_DIGIT_RE.sub("", clean_reference(ref))


def reference_forms(ref: object) -> ReferenceForms:
    raw = clean_reference(ref)
    return ReferenceForms(
        raw=raw,
        normalized=strip_reference_suffix(raw),
        numeric=numeric_reference(raw),
    )


def is_synthetic_reference(ref: object) -> bool:
    value = clean_reference(ref).lower()
    return any(marker.lower() in value for marker in _ids.synthetic_reference_markers)


def is_garbage_reference(ref: object) -> bool:
    """Placeholder or non-informative reference values."""
    value = clean_reference(ref)
    if len(value) < 4:
        return True
    if not any(c.isdigit() for c in value):
        return True
    if value.upper() in _PLACEHOLDERS:
        return True
    return is_synthetic_reference(value)


def has_digits(ref: object) -> bool:
    return any(c.isdigit() for c in clean_reference(ref))
