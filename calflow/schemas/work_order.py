"""Work order record + the typed patch produced at the ingestion boundary.

Upstream producers send the same concept under many spellings
(``roPo`` / ``ro_number`` / ``ro_po`` ...). ``WorkOrderPatch`` accepts every
historical alias and exposes exactly one canonical field per concept;
unknown keys are dropped. Nothing downstream ever sees an alias.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from calflow.services.identifiers import is_valid_vin
from calflow.services.status import Status, normalize_status

_TRUE_WORDS = {"1", "true", "t", "yes", "y", "on", "x"}


def _alias(*names: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(*names))


def coerce_text(value: Any) -> str | None:
    """Lenient text coercion: None/blank -> None, numbers -> digits."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v).strip() for v in value if v is not None and str(v).strip())
    elif isinstance(value, dict):
        value = json.dumps(value, sort_keys=True)
    text = str(value).strip()
    return text or None


def coerce_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in _TRUE_WORDS


def coerce_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_calibrations(value: Any) -> str | None:
    """Render a structured calibration list as ``Name (Type); Name (Type)``."""
    if isinstance(value, (list, tuple)):
        labels = []
        for item in value:
            if isinstance(item, dict):
                name = coerce_text(item.get("name"))
                kind = coerce_text(item.get("type"))
                if name:
                    labels.append(f"{name} ({kind})" if kind else name)
            elif hasattr(item, "label"):
                labels.append(item.label())
            else:
                text = coerce_text(item)
                if text:
                    labels.append(text)
        return "; ".join(labels) or None
    return coerce_text(value)


_TEXT_FIELDS = (
    "reference_number", "vin", "shop_name", "vehicle_description",
    "scheduled_date", "scheduled_time", "technician",
    "scan_phase", "estimate_url", "prescan_url", "calibration_report_url",
    "postscan_url", "invoice_url", "supplemental_docs",
    "invoice_number", "invoice_amount", "invoice_date",
    "notes", "flow_history", "authoritative_reference",
)
_FLAG_FIELDS = ("update_vin", "update_reference", "no_calibration")


class WorkOrderPatch(BaseModel):
    """Canonical, alias-free partial update. ``None`` means "not supplied"."""

    reference_number: str | None = _alias(
        "reference_number", "referenceNumber", "roPo", "ro_po", "ro_number", "roNumber", "ro",
    )
    vin: str | None = _alias("vin", "VIN")
    shop_name: str | None = _alias("shop_name", "shopName", "shop")
    vehicle_description: str | None = _alias(
        "vehicle_description", "vehicleDescription", "vehicle", "vehicle_info",
    )
    status: Status | None = _alias("status", "status_from_shop", "status_from_tech", "new_status")
    scheduled_date: str | None = _alias("scheduled_date", "scheduledDate")
    scheduled_time: str | None = _alias("scheduled_time", "scheduledTime")
    technician: str | None = _alias("technician", "tech", "technician_name", "new_tech")
    required_calibrations: str | None = _alias(
        "required_calibrations", "requiredCalibrations", "required_cals", "calibrations",
    )
    completed_calibrations: str | None = _alias(
        "completed_calibrations", "completedCalibrations", "completed_cals",
    )
    dtcs: str | list[str] | None = _alias("dtcs", "dtc_codes", "dtcCodes")
    scan_phase: str | None = _alias("scan_phase", "scanType", "scan_type")

    estimate_url: str | None = _alias("estimate_url", "estimate_pdf", "estimatePdf")
    prescan_url: str | None = _alias("prescan_url", "prescan_pdf", "preScanPdf", "pre_scan_pdf")
    calibration_report_url: str | None = _alias(
        "calibration_report_url", "revv_report_pdf", "revvReportPdf", "revv_url", "report_url",
    )
    postscan_url: str | None = _alias("postscan_url", "post_scan_pdf", "postScanPdf")
    invoice_url: str | None = _alias("invoice_url", "invoice_pdf", "invoicePdf")
    supplemental_docs: str | None = _alias(
        "supplemental_docs", "extra_docs", "extraDocs", "oem_position", "oemPosition",
    )

    invoice_number: str | None = _alias("invoice_number", "invoiceNumber")
    invoice_amount: str | None = _alias("invoice_amount", "invoiceAmount")
    invoice_date: str | None = _alias("invoice_date", "invoiceDate")

    notes: str | None = _alias("notes", "shop_notes", "note")
    flow_history: str | None = _alias("flow_history", "flowHistory", "flow_entry")
    job_started_at: datetime | None = _alias("job_started_at", "job_start", "jobStart")
    job_ended_at: datetime | None = _alias("job_ended_at", "job_end", "jobEnd")
    notification_flags: dict | None = _alias("notification_flags", "notificationFlags")

    # Correction flags
    update_vin: bool = Field(
        default=False,
        validation_alias=AliasChoices("update_vin", "updateVINFromRevv", "update_vin_from_report"),
    )
    update_reference: bool = Field(
        default=False, validation_alias=AliasChoices("update_reference", "updateROFromRevv"),
    )
    authoritative_reference: str | None = _alias("authoritative_reference", "newROFromRevv")
    no_calibration: bool = Field(
        default=False, validation_alias=AliasChoices("no_calibration", "no_cal", "noCal"),
    )

    model_config = {"extra": "ignore", "populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _compose_derived(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not any(coerce_text(data.get(k)) for k in ("vehicle_description", "vehicleDescription", "vehicle", "vehicle_info")):
            parts = [
                coerce_text(data.get(a) or data.get(b) or data.get(c))
                for a, b, c in (
                    ("vehicle_year", "vehicleYear", "year"),
                    ("vehicle_make", "vehicleMake", "make"),
                    ("vehicle_model", "vehicleModel", "model"),
                )
            ]
            composed = " ".join(p for p in parts if p)
            if composed:
                data["vehicle_description"] = composed
        scheduled = coerce_text(data.get("scheduled"))
        if scheduled and not coerce_text(data.get("scheduled_date") or data.get("scheduledDate")):
            date, _, time = scheduled.partition(" ")
            data["scheduled_date"] = date
            if time.strip() and not coerce_text(data.get("scheduled_time") or data.get("scheduledTime")):
                data["scheduled_time"] = time.strip()
        return data

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return coerce_text(v)

    @field_validator("required_calibrations", "completed_calibrations", mode="before")
    @classmethod
    def _calibrations(cls, v: Any) -> str | None:
        return format_calibrations(v)

    @field_validator(*_FLAG_FIELDS, mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        return coerce_flag(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> Status | None:
        if coerce_text(v) is None:
            return None
        return normalize_status(v)

    @field_validator("dtcs", mode="before")
    @classmethod
    def _dtcs(cls, v: Any) -> str | list[str] | None:
        if v is None:
            return None
        if isinstance(v, (list, tuple)):
            return [str(c).strip() for c in v if c is not None]
        return str(v).strip() or None

    @field_validator("job_started_at", "job_ended_at", mode="before")
    @classmethod
    def _when(cls, v: Any) -> datetime | None:
        return coerce_datetime(v)

    @field_validator("notification_flags", mode="before")
    @classmethod
    def _flags_dict(cls, v: Any) -> dict | None:
        if isinstance(v, dict):
            return v or None
        if isinstance(v, str) and v.strip():
            try:
                parsed = json.loads(v)
            except ValueError:
                return None
            return parsed if isinstance(parsed, dict) and parsed else None
        return None

    def flow_entries(self) -> list[str]:
        if not self.flow_history:
            return []
        return [line.strip() for line in self.flow_history.split("\n") if line.strip()]


class ActionArgs(BaseModel):
    """Action inputs that are not record fields (reasons, actors, request ids)."""

    reason: str | None = _alias("reason", "cancel_reason")
    odometer: str | None = _alias("odometer")
    adas_warning: str | None = _alias("adas_warning", "adasWarning")
    scrub_text: str | None = _alias("scrub_text", "full_scrub", "fullScrub", "scrub")
    no_dtcs_confirmed: bool = Field(
        default=False, validation_alias=AliasChoices("no_dtcs_confirmed", "noDtcsConfirmed"),
    )
    admin_name: str | None = _alias("admin_name", "adminName", "admin")
    requesting_tech: str | None = _alias("requesting_tech", "requestingTech")
    approved: bool = Field(default=False, validation_alias=AliasChoices("approved", "approve"))
    request_id: str | None = _alias("request_id", "requestId")
    denial_reason: str | None = _alias("denial_reason", "denialReason")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator(
        "reason", "odometer", "adas_warning", "scrub_text", "admin_name",
        "requesting_tech", "request_id", "denial_reason", mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return coerce_text(v)

    @field_validator("no_dtcs_confirmed", "approved", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        return coerce_flag(v)


class WorkOrderRecord(BaseModel):
    """Full value of one work order, as read from and written to the store."""

    id: str = ""
    created_at: datetime | None = None
    shop_name: str = ""
    reference_number: str = ""
    vin: str = ""
    vehicle_description: str = ""
    status: Status = Status.NEW
    scheduled_date: str = ""
    scheduled_time: str = ""
    technician: str = ""
    required_calibrations: str = ""
    completed_calibrations: str = ""
    dtc_codes: str = ""
    estimate_url: str = ""
    prescan_url: str = ""
    calibration_report_url: str = ""
    postscan_url: str = ""
    invoice_url: str = ""
    supplemental_docs: str = ""
    invoice_number: str = ""
    invoice_amount: str = ""
    invoice_date: str = ""
    short_notes: str = ""
    flow_history: str = ""
    job_started_at: datetime | None = None
    job_ended_at: datetime | None = None
    notification_flags: dict = {}

    model_config = {"from_attributes": True}

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> Status:
        return normalize_status(v)

    @field_validator(
        "shop_name", "reference_number", "vin", "vehicle_description",
        "scheduled_date", "scheduled_time", "technician",
        "required_calibrations", "completed_calibrations", "dtc_codes",
        "estimate_url", "prescan_url", "calibration_report_url", "postscan_url",
        "invoice_url", "supplemental_docs", "invoice_number", "invoice_amount",
        "invoice_date", "short_notes", "flow_history",
        mode="before",
    )
    @classmethod
    def _blank(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v)

    @field_validator("created_at", "job_started_at", "job_ended_at", mode="before")
    @classmethod
    def _aware(cls, v: Any) -> datetime | None:
        return coerce_datetime(v)

    @field_validator("notification_flags", mode="before")
    @classmethod
    def _flags(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}

    @property
    def vin_authoritative(self) -> bool:
        return is_valid_vin(self.vin)

    def store_values(self) -> dict:
        """Every mutable column, for a full-row write."""
        return self.model_dump(exclude={"id", "created_at"}, mode="python") | {
            "status": self.status.value,
        }

    def summary(self) -> dict:
        return {
            "id": self.id,
            "reference_number": self.reference_number,
            "vin": self.vin,
            "vin_authoritative": self.vin_authoritative,
            "shop_name": self.shop_name,
            "vehicle_description": self.vehicle_description,
            "status": self.status.value,
            "technician": self.technician,
            "scheduled_date": self.scheduled_date,
            "scheduled_time": self.scheduled_time,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
