import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from calflow.models import Base, WorkOrder
from calflow.db import crud


@pytest_asyncio.fixture
async def db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


async def test_create_and_get_shop(db):
    shop = await crud.create_shop(db, "PAINT MAX INC", "Hialeah")
    assert shop.id is not None
    assert shop.is_active

    fetched = await crud.get_shop_by_name(db, "PAINT MAX INC")
    assert fetched is not None
    assert fetched.region == "Hialeah"


async def test_list_shops_skips_inactive(db):
    await crud.create_shop(db, "AUTOSPORT INTERNATIONAL", "Hialeah")
    closed = await crud.create_shop(db, "Old Body Shop", "Broward")
    await crud.update_shop(db, closed, is_active=False)

    shops = await crud.list_shops(db)
    assert [s.name for s in shops] == ["AUTOSPORT INTERNATIONAL"]
    assert len(await crud.list_shops(db, active_only=False)) == 2


async def test_technician_regions(db):
    tech = await crud.create_technician(db, "Martin", "South Miami, Homestead")
    assert tech.region_list() == ["South Miami", "Homestead"]

    updated = await crud.update_technician(db, tech, is_active=False)
    assert not updated.is_active
    assert (await crud.get_technician_by_name(db, "Martin")).id == tech.id


async def test_assignment_request_lifecycle(db):
    wo = WorkOrder(reference_number="3080", technician="Felipe")
    db.add(wo)
    await db.commit()

    req = await crud.create_assignment_request(db, wo.id, "Randy", "Felipe", "I am closer to the shop")
    assert req.status == "Pending"
    assert (await crud.get_pending_request(db, wo.id)).id == req.id
    assert (await crud.get_assignment_request(db, req.id)).reason == "I am closer to the shop"

    await crud.update_assignment_request(db, req, status="Denied", reviewed_by="admin")
    assert await crud.get_pending_request(db, wo.id) is None
    assert len(await crud.list_assignment_requests(db, status="Denied")) == 1


async def test_list_work_orders_filters(db):
    db.add_all([
        WorkOrder(reference_number="1001", status="Scheduled", technician="Felipe"),
        WorkOrder(reference_number="1002", status="New", technician="Randy"),
    ])
    await db.commit()

    assert [w.reference_number for w in await crud.list_work_orders(db, status="Scheduled")] == ["1001"]
    assert [w.reference_number for w in await crud.list_work_orders(db, technician="Randy")] == ["1002"]
