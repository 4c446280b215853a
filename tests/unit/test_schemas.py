from datetime import datetime, timezone

from calflow.schemas import ActionArgs, EngineResult, WorkOrderPatch, WorkOrderRecord
from calflow.services.status import Status


def test_patch_accepts_historical_aliases():
    patch = WorkOrderPatch.model_validate({
        "roPo": 3080,
        "VIN": " 1HGCM82633A004352 ",
        "shopName": "PAINT MAX INC",
        "revvReportPdf": "https://files.example.com/r.pdf",
        "status_from_tech": "in_progress",
        "technician_name": "Randy",
        "postScanPdf": "https://files.example.com/post.pdf",
    })
    assert patch.reference_number == "3080"
    assert patch.vin == "1HGCM82633A004352"
    assert patch.shop_name == "PAINT MAX INC"
    assert patch.calibration_report_url == "https://files.example.com/r.pdf"
    assert patch.status == Status.IN_PROGRESS
    assert patch.technician == "Randy"
    assert patch.postscan_url == "https://files.example.com/post.pdf"


def test_patch_accepts_canonical_names():
    patch = WorkOrderPatch(reference_number="11999-PM", calibration_report_url="x")
    assert patch.reference_number == "11999-PM"
    assert patch.calibration_report_url == "x"


def test_unknown_keys_dropped():
    patch = WorkOrderPatch.model_validate({"ro_number": "4411", "favorite_color": "blue"})
    assert "favorite_color" not in patch.model_dump()


def test_blank_text_is_absent():
    patch = WorkOrderPatch.model_validate({"shop_name": "   ", "vin": "", "notes": None})
    assert patch.shop_name is None
    assert patch.vin is None
    assert patch.notes is None


def test_float_reference_from_spreadsheet():
    assert WorkOrderPatch.model_validate({"ro": 3080.0}).reference_number == "3080"


def test_vehicle_composed_from_parts():
    patch = WorkOrderPatch.model_validate({"vehicle_year": 2022, "make": "Toyota", "vehicleModel": "Camry"})
    assert patch.vehicle_description == "2022 Toyota Camry"


def test_explicit_vehicle_wins_over_parts():
    patch = WorkOrderPatch.model_validate({"vehicle": "2021 Honda Accord", "make": "Toyota"})
    assert patch.vehicle_description == "2021 Honda Accord"


def test_scheduled_split():
    patch = WorkOrderPatch.model_validate({"scheduled": "05/02/2024 9:00 AM"})
    assert patch.scheduled_date == "05/02/2024"
    assert patch.scheduled_time == "9:00 AM"


def test_structured_calibrations_rendered():
    patch = WorkOrderPatch.model_validate({"calibrations": [
        {"name": "Front Camera", "type": "Static"},
        {"name": "Blind Spot Monitor", "type": "Dynamic"},
        {"name": "Steering Angle Sensor"},
    ]})
    assert patch.required_calibrations == (
        "Front Camera (Static); Blind Spot Monitor (Dynamic); Steering Angle Sensor"
    )


def test_flags_are_lenient():
    patch = WorkOrderPatch.model_validate({"updateVINFromRevv": "TRUE", "no_cal": "yes", "updateROFromRevv": "0"})
    assert patch.update_vin is True
    assert patch.no_calibration is True
    assert patch.update_reference is False


def test_status_normalized_at_boundary():
    assert WorkOrderPatch.model_validate({"status": "Canceled"}).status == Status.CANCELLED
    assert WorkOrderPatch.model_validate({"status": "Waiting on parts"}).status == Status.NEW
    assert WorkOrderPatch.model_validate({"status": ""}).status is None


def test_dtcs_string_or_list():
    assert WorkOrderPatch.model_validate({"dtcs": "P0171, U0100"}).dtcs == "P0171, U0100"
    assert WorkOrderPatch.model_validate({"dtc_codes": ["P0171"]}).dtcs == ["P0171"]
    assert WorkOrderPatch.model_validate({"dtcs": ""}).dtcs is None


def test_bad_timestamp_is_dropped():
    patch = WorkOrderPatch.model_validate({"job_start": "yesterday-ish", "job_end": "2024-05-01T10:00:00"})
    assert patch.job_started_at is None
    assert patch.job_ended_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_flow_entries_split_lines():
    patch = WorkOrderPatch.model_validate({"flowHistory": "one\n\n two \n"})
    assert patch.flow_entries() == ["one", "two"]


def test_action_args():
    args = ActionArgs.model_validate({"cancel_reason": " shop closed ", "adminName": "Dana", "approve": "true"})
    assert args.reason == "shop closed"
    assert args.admin_name == "Dana"
    assert args.approved is True


def test_record_normalizes_stored_values():
    record = WorkOrderRecord.model_validate({
        "status": "Not Ready",
        "vin": None,
        "reference_number": 3080,
        "job_started_at": datetime(2024, 5, 1, 10, 0),
        "notification_flags": None,
    })
    assert record.status == Status.NEW
    assert record.vin == ""
    assert record.reference_number == "3080"
    assert record.job_started_at.tzinfo is not None
    assert record.notification_flags == {}
    assert not record.vin_authoritative


def test_result_constructors():
    ok = EngineResult.ok("lookup", record=WorkOrderRecord(reference_number="3080"))
    assert ok.success and ok.error is None
    assert ok.summary()["record"]["reference_number"] == "3080"

    failed = EngineResult.failure("lookup", "not_found", "No work order matches")
    assert not failed.success
    assert failed.error.kind == "not_found"
