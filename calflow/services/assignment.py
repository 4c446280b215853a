"""Technician assignment: shop -> region -> active technician, with a default."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from calflow.config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()


@dataclass(frozen=True)
class TechnicianEntry:
    name: str
    regions: tuple[str, ...] = ()
    active: bool = True

    def covers(self, region: str) -> bool:
        wanted = region.strip().lower()
        return any(r.strip().lower() == wanted for r in self.regions)


@dataclass
class DirectorySnapshot:
    shop_regions: dict[str, str] = field(default_factory=dict)  # shop name -> region
    technicians: list[TechnicianEntry] = field(default_factory=list)


class Directory(ABC):
    """Lookup tables consulted by the resolver."""

    @abstractmethod
    async def snapshot(self) -> DirectorySnapshot: ...


class StaticDirectory(Directory):
    def __init__(self, shop_regions: dict[str, str] | None = None, technicians: list[TechnicianEntry] | None = None):
        self._snapshot = DirectorySnapshot(dict(shop_regions or {}), list(technicians or []))

    @classmethod
    def from_settings(cls, settings=None) -> "StaticDirectory":
        seed = (settings or _settings).seed
        return cls(
            {s.name: s.region for s in seed.shops},
            [
                TechnicianEntry(t.name, tuple(r.strip() for r in t.regions.split(",") if r.strip()), t.active)
                for t in seed.technicians
            ],
        )

    async def snapshot(self) -> DirectorySnapshot:
        return self._snapshot


def region_for_shop(shop_name: str | None, shop_regions: dict[str, str]) -> str | None:
    """Case-insensitive shop lookup: exact name first, then substring either way."""
    name = (shop_name or "").strip().lower()
    if not name:
        return None
    for shop, region in shop_regions.items():
        if shop.strip().lower() == name:
            return region or None
    for shop, region in shop_regions.items():
        key = shop.strip().lower()
        if key and (key in name or name in key):
            return region or None
    return None


def technician_for_region(region: str | None, technicians: list[TechnicianEntry]) -> str | None:
    if not region:
        return None
    for tech in technicians:
        if tech.active and tech.covers(region):
            return tech.name
    return None


def resolve_technician(
    shop_name: str | None,
    assigned: str | None,
    snapshot: DirectorySnapshot,
    default: str | None = None,
) -> str:
    """Never clobbers an existing assignment; never returns empty."""
    if assigned and assigned.strip():
        return assigned
    default = default or _settings.assignment.default_technician
    region = region_for_shop(shop_name, snapshot.shop_regions)
    tech = technician_for_region(region, snapshot.technicians)
    if tech is None:
        logger.info("No technician for shop %r (region %r); using default %s", shop_name, region, default)
        return default
    return tech
