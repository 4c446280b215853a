"""Work-order workflow service.

Every operation takes a flat payload, normalizes it through
``WorkOrderPatch``/``ActionArgs``, locates the record, runs one
read-entire-record -> merge -> write-entire-record cycle and returns an
``EngineResult``. Engine errors are converted to failed results here and
nowhere else.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import re
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PayloadError

from calflow.config import Settings, get_settings
from calflow.db.memory import InMemoryAssignmentRequestStore
from calflow.db.repository import AssignmentRequestStore, RecordRepository
from calflow.models.base import utcnow
from calflow.schemas.assignment import APPROVED, DENIED, AssignmentRequestRecord
from calflow.schemas.result import EngineResult
from calflow.schemas.work_order import ActionArgs, WorkOrderPatch, WorkOrderRecord
from calflow.services import audit
from calflow.services.assignment import Directory, StaticDirectory, resolve_technician
from calflow.services.audit import EventCode
from calflow.services.documents import DocumentFetcher
from calflow.services.dtc import normalize_phase
from calflow.services.errors import (
    Conflict,
    EngineError,
    InvalidTransition,
    NotFound,
    UpstreamFetchFailure,
    ValidationError,
)
from calflow.services.identifiers import clean_reference, is_valid_vin, normalize_vin, strip_reference_suffix
from calflow.services.locator import Located, locate
from calflow.services.merge import MergeOutcome, merge_record
from calflow.services.scrub import format_required_calibrations, parse_scrub_text
from calflow.services.status import Status, is_terminal, priority

logger = logging.getLogger(__name__)

NO_DTCS_CONFIRMED = "NO_DTCS_CONFIRMED"
NO_CALIBRATION_REQUIRED = "No Calibration Required"
MIN_REQUEST_REASON = 5

# Fields a technician may change through tech_update.
TECH_FIELDS = (
    "status", "scheduled_date", "scheduled_time", "technician",
    "completed_calibrations", "dtcs", "scan_phase",
    "postscan_url", "prescan_url", "supplemental_docs", "notes", "flow_history",
)

ACTION_ALIASES: dict[str, str] = {
    "upsert": "upsert",
    "upsert_schedule": "upsert",
    "log_ro": "upsert",
    "shop_submit": "shop_submit",
    "shop_submit_vehicle": "shop_submit",
    "submit_vehicle": "shop_submit",
    "shop_schedule": "shop_schedule",
    "set_schedule": "shop_schedule",
    "schedule": "shop_schedule",
    "shop_cancel": "shop_cancel",
    "cancel": "shop_cancel",
    "add_note": "add_note",
    "append_tech_note": "add_note",
    "note": "add_note",
    "tech_update": "tech_update",
    "update_status": "tech_update",
    "update_ro_status": "tech_update",
    "update_schedule": "tech_update",
    "tech_start_job": "tech_start_job",
    "tech_complete_job": "tech_complete_job",
    "update_dtcs": "update_dtcs",
    "ingest_report": "ingest_report",
    "tech_upload_revv": "ingest_report",
    "upload_revv": "ingest_report",
    "append_flow_history": "append_flow_history",
    "admin_override_status": "admin_override_status",
    "admin_set_status": "admin_override_status",
    "admin_reassign": "admin_reassign",
    "admin_reassign_job": "admin_reassign",
    "request_assignment": "request_assignment",
    "review_assignment_request": "review_assignment_request",
    "lookup": "lookup",
    "get_row": "lookup",
    "lookup_ro": "lookup",
    "lookup_by_vin": "lookup",
}

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def canonical_action(action: str | None) -> str | None:
    key = _CAMEL_RE.sub("_", (action or "").strip()).lower().replace("-", "_")
    return ACTION_ALIASES.get(key)


@dataclass
class _Context:
    action: str
    warnings: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    def warn(self, message: str):
        self.warnings.append(message)


@dataclass
class Applied:
    record: WorkOrderRecord
    created: bool = False
    changed: bool = False


Builder = Callable[[WorkOrderRecord], "tuple[WorkOrderPatch, tuple[EventCode, str] | None]"]


def _operation(name: str):
    """Parse the payload, run the operation, convert errors into a result."""

    def wrap(fn):
        @functools.wraps(fn)
        async def run(self: "WorkOrderService", payload: dict | None = None, **kwargs) -> EngineResult:
            data = {**(payload or {}), **kwargs}
            ctx = _Context(name)
            try:
                patch = WorkOrderPatch.model_validate(data)
                args = ActionArgs.model_validate(data)
                applied = await fn(self, patch, args, ctx)
            except EngineError as exc:
                logger.info("%s rejected (%s): %s", name, exc.kind, exc.message)
                return EngineResult.failure(name, exc.kind, exc.message, warnings=ctx.warnings)
            except PayloadError as exc:
                return EngineResult.failure(name, ValidationError.kind, str(exc), warnings=ctx.warnings)
            except Exception as exc:
                logger.exception("Unexpected error in %s", name)
                return EngineResult.failure(name, "internal", str(exc), warnings=ctx.warnings)
            return EngineResult.ok(
                name,
                record=applied.record,
                created=applied.created,
                changed=applied.changed,
                warnings=ctx.warnings,
                data=ctx.data,
            )

        return run

    return wrap


class WorkOrderService:
    """Stateless engine over an injected record repository."""

    def __init__(
        self,
        repository: RecordRepository,
        directory: Directory | None = None,
        requests: AssignmentRequestStore | None = None,
        fetcher: DocumentFetcher | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or get_settings()
        self.repo = repository
        self.directory = directory or StaticDirectory.from_settings(self.settings)
        self.requests = requests or InMemoryAssignmentRequestStore()
        self.fetcher = fetcher
        self.clock = clock or utcnow
        self._tz = ZoneInfo(self.settings.timezone)
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._admin_in_flight: set[str] = set()

    async def dispatch(self, action: str, payload: dict | None = None) -> EngineResult:
        name = canonical_action(action)
        if name is None:
            logger.warning("Unknown action %r", action)
            return EngineResult.failure(action or "", ValidationError.kind, f"Unknown action: {action!r}")
        return await getattr(self, name)(payload or {})

    # ── Internals ─────────────────────────────────────────

    def _lock(self, key: str) -> asyncio.Lock:
        # Weakly held: a lock disappears once no caller holds or awaits it.
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @contextlib.asynccontextmanager
    async def _identity_lock(self, patch: WorkOrderPatch):
        """Serialize locate-or-create for one incoming VIN / reference."""
        keys = set()
        if is_valid_vin(patch.vin):
            keys.add(f"vin:{normalize_vin(patch.vin)}")
        ref = clean_reference(patch.reference_number)
        if ref:
            keys.add(f"ref:{strip_reference_suffix(ref).upper()}")
        async with contextlib.AsyncExitStack() as stack:
            for key in sorted(keys):
                await stack.enter_async_context(self._lock(key))
            yield

    async def _require(self, patch: WorkOrderPatch) -> Located:
        if not clean_reference(patch.reference_number) and not patch.vin:
            raise ValidationError("A reference number or VIN is required")
        located = await locate(self.repo, patch.vin, patch.reference_number)
        if located is None:
            raise NotFound(f"No work order matches reference {patch.reference_number or patch.vin!r}")
        return located

    async def _with_technician(self, current: WorkOrderRecord, patch: WorkOrderPatch) -> WorkOrderPatch:
        if current.technician or patch.technician:
            return patch
        snapshot = await self.directory.snapshot()
        tech = resolve_technician(
            patch.shop_name or current.shop_name, None, snapshot,
            self.settings.assignment.default_technician,
        )
        return patch.model_copy(update={"technician": tech})

    def _report(self, outcome: MergeOutcome, current: WorkOrderRecord, ctx: _Context):
        if outcome.status_blocked is not None:
            ctx.data["status_kept"] = current.status.value
            ctx.warn(f"Status {outcome.status_blocked} not applied; record stays {outcome.record.status}")
        if outcome.triggered is not None:
            ctx.data["auto_status"] = outcome.triggered.value

    async def _mutate(self, key: str, build: Builder, ctx: _Context) -> Applied:
        async with self._lock(key):
            current = await self.repo.read_full(key)
            patch, event = build(current)
            patch = await self._with_technician(current, patch)
            outcome = merge_record(current, patch, self.clock(), event)
            self._report(outcome, current, ctx)
            if not outcome.changed:
                return Applied(current)
            saved = await self.repo.write_full(key, outcome.record)
            return Applied(saved, changed=True)

    async def _create(self, patch: WorkOrderPatch, event: tuple[EventCode, str] | None, ctx: _Context) -> Applied:
        ref = clean_reference(patch.reference_number)
        if not ref:
            raise ValidationError("A reference number is required to create a work order")
        if patch.vin and not is_valid_vin(patch.vin):
            logger.warning("Creating %s with non-authoritative VIN %r", ref, patch.vin)
            ctx.warn(f"VIN {patch.vin!r} is not valid; stored as non-authoritative")
        base = WorkOrderRecord()
        patch = await self._with_technician(base, patch)
        outcome = merge_record(base, patch, self.clock(), event or (EventCode.NEW, f"Work order {ref} created"))
        self._report(outcome, base, ctx)
        saved = await self.repo.insert(outcome.record)
        logger.info("Created work order %s (%s) for %s", saved.reference_number, saved.id, saved.shop_name or "-")
        return Applied(saved, created=True, changed=True)

    async def _upsert(
        self,
        patch: WorkOrderPatch,
        ctx: _Context,
        event: tuple[EventCode, str] | None = None,
        create_event: tuple[EventCode, str] | None = None,
    ) -> Applied:
        async with self._identity_lock(patch):
            located = await locate(self.repo, patch.vin, patch.reference_number)
            if located is None:
                return await self._create(patch, create_event, ctx)
            ctx.data["matched_by"] = located.tier
            return await self._mutate(located.record.id, lambda current: (patch, event), ctx)

    def _today(self) -> str:
        return self.clock().astimezone(self._tz).strftime("%m/%d/%Y")

    # ── Ingestion ─────────────────────────────────────────

    @_operation("upsert")
    async def upsert(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not clean_reference(patch.reference_number) and not patch.vin:
            raise ValidationError("A reference number or VIN is required")
        return await self._upsert(patch, ctx)

    @_operation("ingest_report")
    async def ingest_report(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not patch.calibration_report_url:
            raise ValidationError("A calibration report link is required")
        if not clean_reference(patch.reference_number) and not patch.vin:
            raise ValidationError("A reference number or VIN is required")

        updates: dict[str, Any] = {}
        scrub_text = args.scrub_text
        if not patch.required_calibrations and not scrub_text and self.fetcher is not None:
            try:
                scrub_text = await self.fetcher.fetch_text(patch.calibration_report_url)
            except UpstreamFetchFailure as exc:
                logger.warning("Report fetch failed, merging without it: %s", exc.message)
                ctx.warn(exc.message)
        if scrub_text:
            report = parse_scrub_text(scrub_text)
            if report.calibrations and not patch.required_calibrations:
                updates["required_calibrations"] = format_required_calibrations(report.calibrations)
            if report.vin and not patch.vin:
                updates["vin"] = report.vin
            if report.vehicle and not patch.vehicle_description:
                updates["vehicle_description"] = report.vehicle
            ctx.data["calibrations"] = [c.model_dump() for c in report.calibrations]
            ctx.data["needs_review"] = [c.name for c in report.needs_review]
        if patch.no_calibration and not (patch.required_calibrations or updates.get("required_calibrations")):
            updates["required_calibrations"] = NO_CALIBRATION_REQUIRED
        if updates:
            patch = patch.model_copy(update=updates)

        cals = patch.required_calibrations or "none listed"
        event = (EventCode.REPORT, f"Calibration report received: {cals}")
        return await self._upsert(patch, ctx, event=event, create_event=event)

    # ── Shop actions ──────────────────────────────────────

    @_operation("shop_submit")
    async def shop_submit(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        missing = [
            label for label, value in (
                ("reference number", clean_reference(patch.reference_number)),
                ("VIN", patch.vin),
                ("estimate", patch.estimate_url),
            ) if not value
        ]
        if not patch.prescan_url and not args.no_dtcs_confirmed:
            missing.append("pre-scan (or no-DTC confirmation)")
        if missing:
            raise ValidationError("Missing required fields: " + ", ".join(missing))
        if not patch.prescan_url:
            patch = patch.model_copy(update={"prescan_url": NO_DTCS_CONFIRMED})

        vehicle = patch.vehicle_description or "vehicle"
        create_event = (EventCode.NEW, f"Submitted by {patch.shop_name or 'shop'}: {vehicle}")
        event = (EventCode.UPDATED, f"Resubmitted by {patch.shop_name or 'shop'}")
        return await self._upsert(patch, ctx, event=event, create_event=create_event)

    @_operation("shop_schedule")
    async def shop_schedule(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not patch.scheduled_date:
            raise ValidationError("A scheduled date is required")
        located = await self._require(patch)

        def build(current: WorkOrderRecord):
            if is_terminal(current.status):
                raise InvalidTransition(f"Cannot schedule a {current.status} work order")
            moved = bool(current.scheduled_date) and current.scheduled_date != patch.scheduled_date
            if moved:
                status = Status.RESCHEDULED
            elif current.status in (Status.SCHEDULED, Status.RESCHEDULED):
                # same date again keeps whichever scheduling state the record is in
                status = None
            else:
                status = Status.SCHEDULED
            if status is not None and priority(status) < priority(current.status):
                status = None
            when = " ".join(p for p in (patch.scheduled_date, patch.scheduled_time) if p)
            text = f"{when}" + (f" with {patch.technician}" if patch.technician else "")
            if moved:
                text = f"{current.scheduled_date} -> {text}"
            step = WorkOrderPatch(
                status=status,
                scheduled_date=patch.scheduled_date,
                scheduled_time=patch.scheduled_time,
                technician=patch.technician,
                notes=patch.notes,
            )
            code = EventCode.RESCHEDULED if moved else EventCode.SCHEDULED
            return step, (code, text)

        return await self._mutate(located.record.id, build, ctx)

    @_operation("shop_cancel")
    async def shop_cancel(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not args.reason:
            raise ValidationError("A cancellation reason is required")
        located = await self._require(patch)

        def build(current: WorkOrderRecord):
            if current.status == Status.COMPLETED:
                raise InvalidTransition("Cannot cancel a completed work order")
            step = WorkOrderPatch(status=Status.CANCELLED, notes=f"Cancelled: {args.reason}")
            return step, (EventCode.CANCELLED, args.reason)

        return await self._mutate(located.record.id, build, ctx)

    @_operation("add_note")
    async def add_note(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not patch.notes:
            raise ValidationError("Note text is required")
        located = await self._require(patch)
        step = WorkOrderPatch(notes=patch.notes)
        return await self._mutate(located.record.id, lambda current: (step, (EventCode.NOTE, patch.notes)), ctx)

    @_operation("append_flow_history")
    async def append_flow_history(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not patch.flow_entries():
            raise ValidationError("A flow history entry is required")
        located = await self._require(patch)
        step = WorkOrderPatch(flow_history=patch.flow_history)
        return await self._mutate(located.record.id, lambda current: (step, None), ctx)

    # ── Technician actions ────────────────────────────────

    @_operation("tech_update")
    async def tech_update(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        located = await self._require(patch)
        step = WorkOrderPatch.model_validate({name: getattr(patch, name) for name in TECH_FIELDS})
        return await self._mutate(located.record.id, lambda current: (step, None), ctx)

    @_operation("tech_start_job")
    async def tech_start_job(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        located = await self._require(patch)

        def build(current: WorkOrderRecord):
            if is_terminal(current.status):
                raise InvalidTransition(f"Cannot start a {current.status} work order")
            tech = patch.technician or current.technician or "technician"
            text = f"Job started by {tech}"
            if args.odometer:
                text += f"; odometer {args.odometer}"
            if patch.notes:
                text += f"; {patch.notes}"
            step = WorkOrderPatch(status=Status.IN_PROGRESS, job_started_at=self.clock(), notes=patch.notes)
            return step, (EventCode.STARTED, text)

        return await self._mutate(located.record.id, build, ctx)

    @_operation("tech_complete_job")
    async def tech_complete_job(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        located = await self._require(patch)

        def build(current: WorkOrderRecord):
            if current.status == Status.CANCELLED:
                raise InvalidTransition("Cannot complete a cancelled work order")
            missing = [
                label for label, value in (
                    ("invoice", patch.invoice_url or current.invoice_url),
                    ("post-scan", patch.postscan_url or current.postscan_url),
                ) if not value
            ]
            if missing:
                raise ValidationError("Missing required documents: " + ", ".join(missing))

            now = self.clock()
            tech = patch.technician or current.technician or "technician"
            text = f"Completed by {tech}"
            if current.job_started_at and current.job_ended_at is None:
                minutes = max(int((now - current.job_started_at).total_seconds() // 60), 0)
                text += f"; duration {minutes // 60}h {minutes % 60}m"
            step = WorkOrderPatch(
                status=Status.COMPLETED,
                job_ended_at=now,
                invoice_url=patch.invoice_url,
                postscan_url=patch.postscan_url,
                invoice_number=patch.invoice_number,
                invoice_amount=patch.invoice_amount,
                invoice_date=patch.invoice_date or (None if current.invoice_date else self._today()),
                completed_calibrations=patch.completed_calibrations,
                dtcs=patch.dtcs,
                scan_phase="POST",
                notes=patch.notes,
            )
            return step, (EventCode.COMPLETED, text)

        return await self._mutate(located.record.id, build, ctx)

    @_operation("update_dtcs")
    async def update_dtcs(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if patch.dtcs is None:
            raise ValidationError("DTC codes are required (use an empty list for none)")
        located = await self._require(patch)
        phase = normalize_phase(patch.scan_phase)
        step = WorkOrderPatch(dtcs=patch.dtcs, scan_phase=phase, notes=args.adas_warning)

        def build(current: WorkOrderRecord):
            return step, (EventCode.DTC, f"{phase} scan DTCs updated")

        return await self._mutate(located.record.id, build, ctx)

    # ── Assignment ────────────────────────────────────────

    @_operation("request_assignment")
    async def request_assignment(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        tech = args.requesting_tech or patch.technician
        if not tech:
            raise ValidationError("The requesting technician is required")
        if not args.reason or len(args.reason) < MIN_REQUEST_REASON:
            raise ValidationError(f"A reason of at least {MIN_REQUEST_REASON} characters is required")
        located = await self._require(patch)
        record = located.record
        if record.technician.strip().lower() == tech.strip().lower():
            raise InvalidTransition(f"{tech} is already assigned to this work order")
        if await self.requests.pending_for(record.id) is not None:
            raise Conflict("An assignment request is already pending for this work order")

        request = await self.requests.add(AssignmentRequestRecord(
            work_order_id=record.id,
            requesting_tech=tech,
            current_tech=record.technician,
            reason=args.reason,
        ))
        ctx.data["request_id"] = request.id
        entry = audit.format_entry(self.clock(), EventCode.REQUESTED, f"{tech} requested assignment: {args.reason}")
        step = WorkOrderPatch(flow_history=entry)
        return await self._mutate(record.id, lambda current: (step, None), ctx)

    @_operation("review_assignment_request")
    async def review_assignment_request(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not args.request_id:
            raise ValidationError("A request id is required")
        request = await self.requests.get(args.request_id)
        if request is None:
            raise NotFound(f"No assignment request with id {args.request_id}")
        if not request.is_pending:
            raise Conflict(f"Assignment request already {request.status.lower()}")

        admin = args.admin_name or "admin"
        request.reviewed_by = admin
        if args.approved:
            request.status = APPROVED
            step = WorkOrderPatch(technician=request.requesting_tech)

            def build(current: WorkOrderRecord):
                old = current.technician or "unassigned"
                return step, (EventCode.REASSIGNED, f"{old} -> {request.requesting_tech} (request approved by {admin})")
        else:
            request.status = DENIED
            request.denial_reason = args.denial_reason or ""
            text = f"Request from {request.requesting_tech} denied by {admin}"
            if args.denial_reason:
                text += f": {args.denial_reason}"
            entry = audit.format_entry(self.clock(), EventCode.DENIED, text)
            step = WorkOrderPatch(flow_history=entry)

            def build(current: WorkOrderRecord):
                return step, None

        applied = await self._mutate(request.work_order_id, build, ctx)
        saved = await self.requests.save(request)
        ctx.data["request_id"] = saved.id
        ctx.data["request_status"] = saved.status
        return applied

    # ── Administrative overrides ──────────────────────────

    async def _admin_guard(self, key: str):
        if key in self._admin_in_flight:
            raise Conflict("Another administrative operation is in progress for this work order")
        self._admin_in_flight.add(key)

    @_operation("admin_override_status")
    async def admin_override_status(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if patch.status is None:
            raise ValidationError("A target status is required")
        located = await self._require(patch)
        key = located.record.id
        admin = args.admin_name or "admin"
        await self._admin_guard(key)
        try:
            async with self._lock(key):
                current = await self.repo.read_full(key)
                if current.status == patch.status:
                    return Applied(current)
                text = f"{current.status} -> {patch.status} by {admin}"
                if args.reason:
                    text += f": {args.reason}"
                nxt = current.model_copy(deep=True)
                nxt.status = patch.status
                nxt.flow_history = audit.append_entries(
                    current.flow_history, [audit.format_entry(self.clock(), EventCode.OVERRIDE, text)],
                )
                logger.info("Status override on %s: %s", current.reference_number, text)
                saved = await self.repo.write_full(key, nxt)
                return Applied(saved, changed=True)
        finally:
            self._admin_in_flight.discard(key)

    @_operation("admin_reassign")
    async def admin_reassign(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        if not patch.technician:
            raise ValidationError("A new technician is required")
        located = await self._require(patch)
        key = located.record.id
        admin = args.admin_name or "admin"

        def build(current: WorkOrderRecord):
            if current.technician.strip().lower() == patch.technician.strip().lower():
                raise InvalidTransition(f"{patch.technician} is already assigned to this work order")
            old = current.technician or "unassigned"
            text = f"{old} -> {patch.technician} by {admin}"
            if args.reason:
                text += f": {args.reason}"
            return WorkOrderPatch(technician=patch.technician), (EventCode.REASSIGNED, text)

        await self._admin_guard(key)
        try:
            return await self._mutate(key, build, ctx)
        finally:
            self._admin_in_flight.discard(key)

    # ── Reads ─────────────────────────────────────────────

    @_operation("lookup")
    async def lookup(self, patch: WorkOrderPatch, args: ActionArgs, ctx: _Context) -> Applied:
        located = await self._require(patch)
        ctx.data["matched_by"] = located.tier
        return Applied(located.record)
