"""In-memory repository and request store, substitutable for the SQL ones."""

from __future__ import annotations

from calflow.models.base import new_id, utcnow
from calflow.schemas.assignment import AssignmentRequestRecord, PENDING
from calflow.schemas.work_order import WorkOrderRecord
from calflow.services.errors import NotFound
from calflow.services.locator import ReferenceMatch, match_reference
from calflow.db.repository import AssignmentRequestStore, RecordRepository


class InMemoryRecordRepository(RecordRepository):
    def __init__(self, records: list[WorkOrderRecord] | None = None):
        self._rows: dict[str, WorkOrderRecord] = {}
        self.writes = 0
        for record in records or []:
            self._store(record)

    def _store(self, record: WorkOrderRecord) -> WorkOrderRecord:
        stored = record.model_copy(deep=True)
        stored.id = stored.id or new_id()
        stored.created_at = stored.created_at or utcnow()
        self._rows[stored.id] = stored
        return stored.model_copy(deep=True)

    def _newest_first(self) -> list[WorkOrderRecord]:
        return list(reversed(self._rows.values()))

    async def find_by_vin(self, vin: str) -> WorkOrderRecord | None:
        wanted = (vin or "").strip().upper()
        if not wanted:
            return None
        for record in self._newest_first():
            if record.vin.strip().upper() == wanted:
                return record.model_copy(deep=True)
        return None

    async def match_reference(self, reference: str) -> ReferenceMatch | None:
        return match_reference([(r.id, r.reference_number) for r in self._newest_first()], reference)

    async def insert(self, record: WorkOrderRecord) -> WorkOrderRecord:
        self.writes += 1
        return self._store(record)

    async def read_full(self, key: str) -> WorkOrderRecord:
        if key not in self._rows:
            raise NotFound(f"No work order with id {key}")
        return self._rows[key].model_copy(deep=True)

    async def write_full(self, key: str, record: WorkOrderRecord) -> WorkOrderRecord:
        if key not in self._rows:
            raise NotFound(f"No work order with id {key}")
        current = self._rows[key]
        stored = record.model_copy(deep=True, update={"id": key, "created_at": current.created_at})
        self._rows[key] = stored
        self.writes += 1
        return stored.model_copy(deep=True)

    async def list_recent(self, limit: int = 50) -> list[WorkOrderRecord]:
        return [r.model_copy(deep=True) for r in self._newest_first()[:limit]]


class InMemoryAssignmentRequestStore(AssignmentRequestStore):
    def __init__(self):
        self._rows: dict[str, AssignmentRequestRecord] = {}

    async def pending_for(self, work_order_id: str) -> AssignmentRequestRecord | None:
        for req in reversed(self._rows.values()):
            if req.work_order_id == work_order_id and req.status == PENDING:
                return req.model_copy()
        return None

    async def get(self, request_id: str) -> AssignmentRequestRecord | None:
        req = self._rows.get(request_id)
        return req.model_copy() if req is not None else None

    async def add(self, request: AssignmentRequestRecord) -> AssignmentRequestRecord:
        stored = request.model_copy(update={"id": new_id(), "created_at": utcnow()})
        self._rows[stored.id] = stored
        return stored.model_copy()

    async def save(self, request: AssignmentRequestRecord) -> AssignmentRequestRecord:
        if request.id not in self._rows:
            raise NotFound(f"No assignment request with id {request.id}")
        stored = request.model_copy()
        if stored.reviewed_at is None and stored.status != PENDING:
            stored.reviewed_at = utcnow()
        self._rows[stored.id] = stored
        return stored.model_copy()
