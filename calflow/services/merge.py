"""Field merge engine: ``merge_record(existing, patch) -> next record``.

Pure function of the current record and the patch. A merge that changes
nothing yields ``changed=False`` and no flow-history entry, so replaying
the same patch is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from calflow.schemas.work_order import WorkOrderPatch, WorkOrderRecord
from calflow.services import audit
from calflow.services.audit import EventCode
from calflow.services.dtc import merge_dtcs
from calflow.services.identifiers import (
    clean_reference,
    has_digits,
    is_garbage_reference,
    is_valid_vin,
    normalize_vin,
)
from calflow.services.status import Status, report_arrival_status, resolve_merge_status

logger = logging.getLogger(__name__)

WRITE_ONCE_FIELDS = ("shop_name", "vehicle_description")

COALESCE_FIELDS = (
    "scheduled_date", "scheduled_time", "technician",
    "required_calibrations", "completed_calibrations",
    "estimate_url", "prescan_url", "calibration_report_url", "postscan_url",
    "invoice_url", "supplemental_docs",
    "invoice_number", "invoice_amount", "invoice_date",
)

SET_ONCE_FIELDS = ("job_started_at", "job_ended_at")

TRACKED_FIELDS = (
    ("reference_number", "vin", "status", "dtc_codes", "short_notes", "notification_flags")
    + WRITE_ONCE_FIELDS + COALESCE_FIELDS + SET_ONCE_FIELDS
)


@dataclass
class MergeOutcome:
    record: WorkOrderRecord
    changed_fields: list[str] = field(default_factory=list)
    entries: list[str] = field(default_factory=list)
    status_blocked: Status | None = None
    triggered: Status | None = None

    @property
    def changed(self) -> bool:
        return bool(self.changed_fields or self.entries)


# ── Per-field policies ───────────────────────────────────

def resolve_vin(current: str, incoming: str | None, update_from_source: bool = False) -> str:
    new = normalize_vin(incoming)
    if not new:
        return current
    if not current:
        return new
    if not is_valid_vin(new):
        return current
    if not is_valid_vin(current):
        logger.info("Replacing non-authoritative VIN %r with %r", current, new)
        return new
    if update_from_source and new != normalize_vin(current):
        logger.info("VIN corrected from authoritative source: %r -> %r", current, new)
        return new
    return current


def resolve_reference(
    current: str,
    incoming: str | None,
    correct: bool = False,
    authoritative: str | None = None,
) -> str:
    candidate = clean_reference(authoritative) or clean_reference(incoming)
    if not candidate:
        return current
    if not clean_reference(current):
        return candidate
    if is_garbage_reference(current) and has_digits(candidate):
        return candidate
    if correct or clean_reference(authoritative):
        return candidate
    return current


def _coalesce(current, incoming):
    return incoming if incoming not in (None, "") else current


# ── Merge ────────────────────────────────────────────────

def merge_record(
    existing: WorkOrderRecord,
    patch: WorkOrderPatch,
    now: datetime,
    event: tuple[EventCode, str] | None = None,
) -> MergeOutcome:
    """Merge ``patch`` into ``existing``.

    ``event`` is the operation entry to log when the merge changes the
    record; without one a generic STATUS/UPDATED entry is written.
    """
    nxt = existing.model_copy(deep=True)

    for name in WRITE_ONCE_FIELDS:
        if not getattr(existing, name):
            nxt_value = getattr(patch, name)
            if nxt_value:
                setattr(nxt, name, nxt_value)

    nxt.vin = resolve_vin(existing.vin, patch.vin, patch.update_vin)
    nxt.reference_number = resolve_reference(
        existing.reference_number, patch.reference_number,
        patch.update_reference, patch.authoritative_reference,
    )

    for name in COALESCE_FIELDS:
        setattr(nxt, name, _coalesce(getattr(existing, name), getattr(patch, name)))

    for name in SET_ONCE_FIELDS:
        if getattr(existing, name) is None and getattr(patch, name) is not None:
            setattr(nxt, name, getattr(patch, name))

    if patch.dtcs is not None:
        nxt.dtc_codes = merge_dtcs(existing.dtc_codes, patch.dtcs, patch.scan_phase)

    if patch.notification_flags:
        nxt.notification_flags = {**existing.notification_flags, **patch.notification_flags}

    nxt.short_notes = audit.preview_notes(existing.short_notes, patch.notes)

    decision = resolve_merge_status(existing.status, patch.status)
    nxt.status = decision.status

    triggered = None
    if not existing.calibration_report_url and nxt.calibration_report_url:
        target = report_arrival_status(nxt.status, patch.no_calibration)
        if target is not None and target != nxt.status:
            logger.info(
                "Calibration report arrived for %s: %s -> %s",
                nxt.reference_number or nxt.vin, nxt.status, target,
            )
            nxt.status = triggered = target

    changed_fields = [n for n in TRACKED_FIELDS if getattr(nxt, n) != getattr(existing, n)]

    entries: list[str] = []
    supplied = patch.flow_entries()
    if supplied:
        if not audit.is_replayed(existing.flow_history, supplied):
            entries.extend(supplied)
    elif changed_fields:
        entries.append(_operation_entry(existing, nxt, changed_fields, now, event, triggered))
    if triggered is not None:
        code = EventCode.NO_CAL if triggered == Status.NO_CAL else EventCode.READY
        entries.append(audit.format_entry(now, code, f"Calibration report received; status {triggered}"))

    nxt.flow_history = audit.append_entries(existing.flow_history, entries)
    return MergeOutcome(
        record=nxt,
        changed_fields=changed_fields,
        entries=entries,
        status_blocked=decision.blocked,
        triggered=triggered,
    )


def _operation_entry(
    before: WorkOrderRecord,
    after: WorkOrderRecord,
    changed_fields: list[str],
    now: datetime,
    event: tuple[EventCode, str] | None,
    triggered: Status | None = None,
) -> str:
    if event is not None:
        return audit.format_entry(now, *event)
    if "status" in changed_fields and not triggered:
        return audit.format_entry(now, EventCode.STATUS, f"{before.status} -> {after.status}")
    return audit.format_entry(now, EventCode.UPDATED, ", ".join(changed_fields))
