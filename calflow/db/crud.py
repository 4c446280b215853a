"""CRUD operations for the lookup tables and assignment requests."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from calflow.models import AssignmentRequest, Shop, Technician, WorkOrder
from calflow.schemas.assignment import PENDING


# ── Shop ─────────────────────────────────────────────────

async def create_shop(db: AsyncSession, name: str, region: str = "", email: str = "") -> Shop:
    shop = Shop(name=name, region=region, email=email)
    db.add(shop)
    await db.commit()
    await db.refresh(shop)
    return shop


async def get_shop_by_name(db: AsyncSession, name: str) -> Shop | None:
    result = await db.execute(select(Shop).where(Shop.name == name))
    return result.scalars().first()


async def list_shops(db: AsyncSession, active_only: bool = True) -> list[Shop]:
    stmt = select(Shop).order_by(Shop.name)
    if active_only:
        stmt = stmt.where(Shop.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_shop(db: AsyncSession, shop: Shop, **kwargs) -> Shop:
    for k, v in kwargs.items():
        if v is not None:
            setattr(shop, k, v)
    await db.commit()
    await db.refresh(shop)
    return shop


# ── Technician ───────────────────────────────────────────

async def create_technician(
    db: AsyncSession, name: str, regions: str = "",
    email: str = "", is_active: bool = True,
) -> Technician:
    tech = Technician(name=name, regions=regions, email=email, is_active=is_active)
    db.add(tech)
    await db.commit()
    await db.refresh(tech)
    return tech


async def get_technician_by_name(db: AsyncSession, name: str) -> Technician | None:
    result = await db.execute(select(Technician).where(Technician.name == name))
    return result.scalars().first()


async def list_technicians(db: AsyncSession) -> list[Technician]:
    result = await db.execute(select(Technician).order_by(Technician.created_at))
    return list(result.scalars().all())


async def update_technician(db: AsyncSession, tech: Technician, **kwargs) -> Technician:
    for k, v in kwargs.items():
        if v is not None:
            setattr(tech, k, v)
    await db.commit()
    await db.refresh(tech)
    return tech


# ── AssignmentRequest ────────────────────────────────────

async def create_assignment_request(
    db: AsyncSession, work_order_id: str, requesting_tech: str,
    current_tech: str = "", reason: str = "",
) -> AssignmentRequest:
    req = AssignmentRequest(
        work_order_id=work_order_id, requesting_tech=requesting_tech,
        current_tech=current_tech, reason=reason,
    )
    db.add(req)
    await db.commit()
    await db.refresh(req)
    return req


async def get_assignment_request(db: AsyncSession, request_id: str) -> AssignmentRequest | None:
    return await db.get(AssignmentRequest, request_id)


async def get_pending_request(db: AsyncSession, work_order_id: str) -> AssignmentRequest | None:
    result = await db.execute(
        select(AssignmentRequest)
        .where(AssignmentRequest.work_order_id == work_order_id, AssignmentRequest.status == PENDING)
        .order_by(AssignmentRequest.created_at.desc())
    )
    return result.scalars().first()


async def list_assignment_requests(db: AsyncSession, status: str | None = None) -> list[AssignmentRequest]:
    stmt = select(AssignmentRequest).order_by(AssignmentRequest.created_at)
    if status:
        stmt = stmt.where(AssignmentRequest.status == status)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_assignment_request(db: AsyncSession, req: AssignmentRequest, **kwargs) -> AssignmentRequest:
    for k, v in kwargs.items():
        if v is not None:
            setattr(req, k, v)
    await db.commit()
    await db.refresh(req)
    return req


# ── WorkOrder (read-only listing) ────────────────────────

async def list_work_orders(
    db: AsyncSession, status: str | None = None, technician: str | None = None, limit: int = 50,
) -> list[WorkOrder]:
    stmt = select(WorkOrder).order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()).limit(limit)
    if status:
        stmt = stmt.where(WorkOrder.status == status)
    if technician:
        stmt = stmt.where(WorkOrder.technician == technician)
    result = await db.execute(stmt)
    return list(result.scalars().all())
