"""Record repository: the engine's only access to the work-order store.

Writes are always whole-record: ``write_full`` issues one UPDATE of every
column inside one transaction, so two writers can never interleave
partial-column updates.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calflow.db import crud
from calflow.models import WorkOrder
from calflow.schemas.assignment import AssignmentRequestRecord, PENDING
from calflow.schemas.work_order import WorkOrderRecord
from calflow.services.errors import NotFound
from calflow.services.locator import ReferenceMatch, match_reference

logger = logging.getLogger(__name__)


class RecordRepository(ABC):
    @abstractmethod
    async def find_by_vin(self, vin: str) -> WorkOrderRecord | None: ...

    @abstractmethod
    async def match_reference(self, reference: str) -> ReferenceMatch | None:
        """Tiered reference match (exact, normalized, numeric)."""

    async def find_by_reference(self, reference: str) -> WorkOrderRecord | None:
        match = await self.match_reference(reference)
        if match is None:
            return None
        return await self.read_full(match.key)

    @abstractmethod
    async def insert(self, record: WorkOrderRecord) -> WorkOrderRecord: ...

    @abstractmethod
    async def read_full(self, key: str) -> WorkOrderRecord:
        """Raises NotFound for an unknown key."""

    @abstractmethod
    async def write_full(self, key: str, record: WorkOrderRecord) -> WorkOrderRecord: ...

    @abstractmethod
    async def list_recent(self, limit: int = 50) -> list[WorkOrderRecord]: ...


class AssignmentRequestStore(ABC):
    @abstractmethod
    async def pending_for(self, work_order_id: str) -> AssignmentRequestRecord | None: ...

    @abstractmethod
    async def get(self, request_id: str) -> AssignmentRequestRecord | None: ...

    @abstractmethod
    async def add(self, request: AssignmentRequestRecord) -> AssignmentRequestRecord: ...

    @abstractmethod
    async def save(self, request: AssignmentRequestRecord) -> AssignmentRequestRecord: ...


# ── SQL implementations ──────────────────────────────────

class SqlRecordRepository(RecordRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def find_by_vin(self, vin: str) -> WorkOrderRecord | None:
        wanted = (vin or "").strip().upper()
        if not wanted:
            return None
        async with self._sessions() as db:
            result = await db.execute(
                select(WorkOrder)
                .where(func.upper(func.trim(WorkOrder.vin)) == wanted)
                .order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc())
            )
            row = result.scalars().first()
            return WorkOrderRecord.model_validate(row) if row is not None else None

    async def match_reference(self, reference: str) -> ReferenceMatch | None:
        async with self._sessions() as db:
            result = await db.execute(
                select(WorkOrder.id, WorkOrder.reference_number)
                .where(WorkOrder.reference_number != "")
                .order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc())
            )
            candidates = [(row.id, row.reference_number) for row in result]
        return match_reference(candidates, reference)

    async def insert(self, record: WorkOrderRecord) -> WorkOrderRecord:
        values = record.store_values()
        if record.id:
            values["id"] = record.id
        if record.created_at:
            values["created_at"] = record.created_at
        async with self._sessions() as db:
            row = WorkOrder(**values)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return WorkOrderRecord.model_validate(row)

    async def read_full(self, key: str) -> WorkOrderRecord:
        async with self._sessions() as db:
            row = await db.get(WorkOrder, key)
            if row is None:
                raise NotFound(f"No work order with id {key}")
            return WorkOrderRecord.model_validate(row)

    async def write_full(self, key: str, record: WorkOrderRecord) -> WorkOrderRecord:
        async with self._sessions() as db:
            async with db.begin():
                result = await db.execute(
                    update(WorkOrder).where(WorkOrder.id == key).values(**record.store_values())
                )
                if result.rowcount == 0:
                    raise NotFound(f"No work order with id {key}")
        logger.debug("Wrote work order %s", key)
        return await self.read_full(key)

    async def list_recent(self, limit: int = 50) -> list[WorkOrderRecord]:
        async with self._sessions() as db:
            result = await db.execute(
                select(WorkOrder).order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()).limit(limit)
            )
            return [WorkOrderRecord.model_validate(r) for r in result.scalars().all()]


class SqlAssignmentRequestStore(AssignmentRequestStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def pending_for(self, work_order_id: str) -> AssignmentRequestRecord | None:
        async with self._sessions() as db:
            row = await crud.get_pending_request(db, work_order_id)
            return AssignmentRequestRecord.model_validate(row) if row is not None else None

    async def get(self, request_id: str) -> AssignmentRequestRecord | None:
        async with self._sessions() as db:
            row = await crud.get_assignment_request(db, request_id)
            return AssignmentRequestRecord.model_validate(row) if row is not None else None

    async def add(self, request: AssignmentRequestRecord) -> AssignmentRequestRecord:
        async with self._sessions() as db:
            row = await crud.create_assignment_request(
                db, request.work_order_id, request.requesting_tech,
                current_tech=request.current_tech, reason=request.reason,
            )
            return AssignmentRequestRecord.model_validate(row)

    async def save(self, request: AssignmentRequestRecord) -> AssignmentRequestRecord:
        reviewed_at = request.reviewed_at
        if reviewed_at is None and request.status != PENDING:
            reviewed_at = datetime.now(timezone.utc)
        async with self._sessions() as db:
            row = await crud.get_assignment_request(db, request.id)
            if row is None:
                raise NotFound(f"No assignment request with id {request.id}")
            row = await crud.update_assignment_request(
                db, row,
                status=request.status,
                reviewed_by=request.reviewed_by,
                reviewed_at=reviewed_at,
                denial_reason=request.denial_reason,
            )
            return AssignmentRequestRecord.model_validate(row)
