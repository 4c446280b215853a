"""Resolve an incoming (vin, reference) pair to at most one stored record.

Precedence: valid VIN, then exact reference, then suffix-stripped reference,
then numeric prefix. The first tier that hits wins; later tiers are not
evaluated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, TYPE_CHECKING

from calflow.config import get_settings
from calflow.services.identifiers import (
    clean_reference,
    is_valid_vin,
    normalize_vin,
    numeric_reference,
    strip_reference_suffix,
)

if TYPE_CHECKING:
    from calflow.db.repository import RecordRepository
    from calflow.schemas.work_order import WorkOrderRecord

logger = logging.getLogger(__name__)

_settings = get_settings()

TIER_VIN = "vin"
TIER_EXACT = "exact"
TIER_NORMALIZED = "normalized"
TIER_NUMERIC = "numeric"


@dataclass(frozen=True)
class ReferenceMatch:
    key: str
    reference: str
    tier: str


@dataclass(frozen=True)
class Located:
    record: "WorkOrderRecord"
    tier: str


def match_reference(
    candidates: Iterable[tuple[str, str]],
    reference: str,
    min_numeric: int | None = None,
) -> ReferenceMatch | None:
    """Tiered match over ``(key, stored_reference)`` pairs, newest first."""
    if min_numeric is None:
        min_numeric = _settings.identifiers.min_numeric_match
    ref = clean_reference(reference)
    if not ref:
        return None
    pool = [(key, clean_reference(stored)) for key, stored in candidates]
    pool = [(key, stored) for key, stored in pool if stored]

    wanted = ref.upper()
    for key, stored in pool:
        if stored.upper() == wanted:
            return ReferenceMatch(key, stored, TIER_EXACT)

    wanted = strip_reference_suffix(ref).upper()
    for key, stored in pool:
        if strip_reference_suffix(stored).upper() == wanted:
            return ReferenceMatch(key, stored, TIER_NORMALIZED)

    digits = numeric_reference(ref)
    if len(digits) < min_numeric:
        return None
    for key, stored in pool:
        if numeric_reference(stored) == digits or stored.startswith(digits):
            return ReferenceMatch(key, stored, TIER_NUMERIC)
    return None


async def locate(repo: "RecordRepository", vin: str | None, reference: str | None) -> Located | None:
    if is_valid_vin(vin):
        record = await repo.find_by_vin(normalize_vin(vin))
        if record is not None:
            return Located(record, TIER_VIN)

    if clean_reference(reference):
        match = await repo.match_reference(reference)
        if match is not None:
            if match.tier != TIER_EXACT:
                logger.info(
                    "Reference %r matched stored %r at %s tier", reference, match.reference, match.tier,
                )
            return Located(await repo.read_full(match.key), match.tier)
    return None
