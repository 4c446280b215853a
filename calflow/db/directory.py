"""Directory backed by the shops and technicians tables."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calflow.db import crud
from calflow.services.assignment import Directory, DirectorySnapshot, TechnicianEntry


class SqlDirectory(Directory):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def snapshot(self) -> DirectorySnapshot:
        async with self._sessions() as db:
            shops = await crud.list_shops(db)
            techs = await crud.list_technicians(db)
        return DirectorySnapshot(
            shop_regions={s.name: s.region for s in shops},
            technicians=[TechnicianEntry(t.name, tuple(t.region_list()), t.is_active) for t in techs],
        )
