import pytest

from calflow.db.memory import InMemoryRecordRepository
from calflow.schemas.work_order import WorkOrderRecord
from calflow.services.locator import (
    TIER_EXACT,
    TIER_NORMALIZED,
    TIER_NUMERIC,
    TIER_VIN,
    locate,
    match_reference,
)

VIN = "1HGCM82633A004352"


def test_exact_match_is_case_insensitive():
    match = match_reference([("a", "ro-4411")], " RO-4411 ")
    assert match.key == "a"
    assert match.tier == TIER_EXACT


def test_incoming_base_matches_suffixed_record():
    match = match_reference([("a", "11999-PM")], "11999")
    assert match.key == "a"
    assert match.tier == TIER_NORMALIZED


def test_incoming_suffix_matches_base_record():
    match = match_reference([("a", "3080")], "3080-ENT")
    assert match.key == "a"
    assert match.tier == TIER_NORMALIZED


def test_numeric_tier():
    assert match_reference([("a", "RO11999")], "11999").tier == TIER_NUMERIC
    assert match_reference([("a", "119995-B")], "11999").tier == TIER_NUMERIC


def test_numeric_tier_requires_four_digits():
    assert match_reference([("a", "RO123")], "123") is None


def test_earlier_tier_wins_over_newer_record():
    # newest first: "3080-ENT" is newer but "3080" is an exact hit
    candidates = [("new", "3080-ENT"), ("old", "3080")]
    match = match_reference(candidates, "3080")
    assert match.key == "old"
    assert match.tier == TIER_EXACT


def test_newest_record_wins_within_tier():
    candidates = [("new", "11999-B"), ("old", "11999-A")]
    assert match_reference(candidates, "11999").key == "new"


def test_blank_reference_never_matches():
    assert match_reference([("a", "")], "") is None
    assert match_reference([("a", "")], "   ") is None


@pytest.fixture
def repo():
    return InMemoryRecordRepository([
        WorkOrderRecord(reference_number="3080", vin=VIN),
        WorkOrderRecord(reference_number="11999-PM", vin="EST12345678901234"),
    ])


async def test_vin_beats_reference(repo):
    located = await locate(repo, VIN.lower(), "11999")
    assert located.tier == TIER_VIN
    assert located.record.reference_number == "3080"


async def test_invalid_vin_is_never_used_for_matching(repo):
    located = await locate(repo, "EST12345678901234", "3080")
    assert located.tier == TIER_EXACT
    assert located.record.reference_number == "3080"


async def test_falls_through_to_reference(repo):
    located = await locate(repo, "5YJ3E1EA7KF317000", "11999")
    assert located.tier == TIER_NORMALIZED
    assert located.record.reference_number == "11999-PM"


async def test_not_found(repo):
    assert await locate(repo, None, "77777") is None
    assert await locate(repo, None, None) is None
