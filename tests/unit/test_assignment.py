import pytest_asyncio

from calflow.services.assignment import (
    DirectorySnapshot,
    StaticDirectory,
    TechnicianEntry,
    region_for_shop,
    resolve_technician,
)


@pytest_asyncio.fixture
async def snapshot():
    return await StaticDirectory.from_settings().snapshot()


async def test_region_lookup_is_fuzzy(snapshot):
    assert region_for_shop("paint max inc", snapshot.shop_regions) == "Hialeah"
    assert region_for_shop("JMD AUTO BODY", snapshot.shop_regions) == "Broward"
    assert region_for_shop("Collision Center Of North Miami - Lot B", snapshot.shop_regions) == "North Miami"
    assert region_for_shop("Unknown Garage", snapshot.shop_regions) is None
    assert region_for_shop("", snapshot.shop_regions) is None


async def test_resolves_by_region(snapshot):
    assert resolve_technician("JMD AUTO BODY COLLISION", None, snapshot) == "Randy"
    assert resolve_technician("Collision Center Of North Miami", "", snapshot) == "Anthony"


async def test_existing_assignment_is_never_clobbered(snapshot):
    assert resolve_technician("JMD AUTO BODY COLLISION", "Martin", snapshot) == "Martin"


async def test_unknown_shop_falls_back_to_default(snapshot):
    assert resolve_technician("Unknown Garage", None, snapshot) == "Felipe"
    assert resolve_technician(None, None, snapshot) == "Felipe"


def test_multi_region_technician():
    snap = DirectorySnapshot(
        shop_regions={"Homestead Collision": "Homestead"},
        technicians=[TechnicianEntry("Martin", ("South Miami", "Homestead"))],
    )
    assert resolve_technician("Homestead Collision", None, snap, default="Felipe") == "Martin"


def test_inactive_technician_skipped():
    snap = DirectorySnapshot(
        shop_regions={"JMD AUTO BODY COLLISION": "Broward"},
        technicians=[TechnicianEntry("Randy", ("Broward",), active=False)],
    )
    assert resolve_technician("JMD AUTO BODY COLLISION", None, snap, default="Felipe") == "Felipe"
