from calflow.services.scrub import format_required_calibrations, parse_scrub_text

SCRUB = """
═══════════════════════════════
Vehicle: 2022 Toyota Camry
VIN: 4T1B11HK5NU000001
Status: OK
═══════════════════════════════
REQUIRED CALIBRATIONS
  Front Camera (Static)
    Confidence: HIGH
    Sources: RevvADAS, LLM, Knowledge Base
    Triggered by: Windshield R&I
  Blind Spot Monitor (Dynamic)
    Sources: RevvADAS
    Reasoning: Rear bumper cover replaced
    ⚠ Found by RevvADAS only - Review recommended
EXCLUDED
  ✗ SRS Unit: Non-ADAS - airbag system reset
  ✗ None: nothing excluded
CONFLICTS TO REVIEW
  ⚠ Park Assist Sensors
    RevvADAS says: required
    LLM says: not required
    Reason: bumper cover only
─── SUMMARY
  2 calibrations
--- END
  Ignored (Static)
"""


def test_header_fields():
    report = parse_scrub_text(SCRUB)
    assert report.vehicle == "2022 Toyota Camry"
    assert report.vin == "4T1B11HK5NU000001"
    assert report.status == "OK"


def test_calibrations():
    report = parse_scrub_text(SCRUB)
    assert [c.name for c in report.calibrations] == ["Front Camera", "Blind Spot Monitor"]
    front, bsm = report.calibrations
    assert front.type == "Static"
    assert front.confidence == "HIGH"
    assert front.sources == ["RevvADAS", "LLM", "Knowledge Base"]
    assert front.triggered_by == "Windshield R&I"
    assert bsm.confidence == "MEDIUM"
    assert bsm.reasoning == "Rear bumper cover replaced"
    assert [c.name for c in report.needs_review] == ["Blind Spot Monitor"]


def test_excluded_and_conflicts():
    report = parse_scrub_text(SCRUB)
    assert [(e.name, e.reason) for e in report.excluded] == [("SRS Unit", "Non-ADAS - airbag system reset")]
    assert len(report.conflicts) == 1
    conflict = report.conflicts[0]
    assert conflict.item == "Park Assist Sensors"
    assert conflict.report_says == "required"
    assert conflict.assistant_says == "not required"
    assert conflict.reason == "bumper cover only"


def test_empty_text():
    report = parse_scrub_text("")
    assert report.calibrations == []
    assert report.status == "UNKNOWN"


def test_stored_form():
    report = parse_scrub_text(SCRUB)
    assert format_required_calibrations(report.calibrations) == "Front Camera (Static); Blind Spot Monitor (Dynamic)"
