"""Seed the shop -> region and technician tables from config.yaml."""

import asyncio

from calflow.config import get_settings
from calflow.db.engine import engine, async_session_factory
from calflow.models import Base
from calflow.db import crud


async def seed():
    settings = get_settings()

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        for shop in settings.seed.shops:
            existing = await crud.get_shop_by_name(db, shop.name)
            if existing:
                await crud.update_shop(db, existing, region=shop.region or None, email=shop.email or None)
                print(f"Shop exists, refreshed: {existing.name} -> {existing.region or '(no region)'}")
                continue
            created = await crud.create_shop(db, shop.name, shop.region, shop.email)
            print(f"Created shop: {created.name} -> {created.region or '(no region)'}")

        for tech in settings.seed.technicians:
            existing = await crud.get_technician_by_name(db, tech.name)
            if existing:
                await crud.update_technician(
                    db, existing, regions=tech.regions or None, email=tech.email or None, is_active=tech.active,
                )
                print(f"Technician exists, refreshed: {existing.name} ({existing.regions})")
                continue
            created = await crud.create_technician(db, tech.name, tech.regions, tech.email, tech.active)
            print(f"Created technician: {created.name} ({created.regions})")

    print("\nSeed complete. Try: python -m calflow.cli list")


if __name__ == "__main__":
    asyncio.run(seed())
