"""Parse the hybrid calibration scrub report into confidence-tagged items.

Optional enrichment pass. Its only contact with the merge engine is the
rendered ``required_calibrations`` string.

Layout::

    Vehicle: 2022 Toyota Camry
    VIN: 4T1B11HK5NU000001
    Status: OK
    REQUIRED CALIBRATIONS
      Front Camera (Static)
        Confidence: HIGH
        Sources: RevvADAS, LLM, Knowledge Base
        Triggered by: Windshield R&I
    EXCLUDED
      ✗ SRS Unit: Non-ADAS - airbag system reset
    CONFLICTS TO REVIEW
      ⚠ Blind Spot Monitor
        RevvADAS says: required
        LLM says: not required
        Reason: bumper cover only
    ─── SUMMARY
    --- END
"""

from __future__ import annotations

import re

from calflow.schemas.calibration import CalibrationItem, ExcludedItem, ScrubConflict, ScrubReport

_CAL_RE = re.compile(r"^([^(:]+?)\s*\(([^)]+)\)\s*$")
_EXCLUDED_RE = re.compile(r"^[✗•]\s*([^:]+):\s*(.+)$")
_CONFLICT_RE = re.compile(r"^⚠\s*(.+)$")
_SAYS_RE = re.compile(r"^(?:LLM|Assistant) says:", re.IGNORECASE)

_CALS, _EXCLUDED, _CONFLICTS = "calibrations", "excluded", "conflicts"


def _section(line: str) -> str | None:
    head = line.lstrip("─ ").upper()
    if head.startswith("REQUIRED"):
        return _CALS
    if head.startswith("EXCLUDED"):
        return _EXCLUDED
    if head.startswith("CONFLICTS"):
        return _CONFLICTS
    return None


def _value(line: str, label: str) -> str:
    return line[len(label):].strip()


def parse_scrub_text(text: str | None) -> ScrubReport:
    report = ScrubReport()
    if not text or not text.strip():
        return report

    section = None
    current: CalibrationItem | None = None

    def flush():
        nonlocal current
        if current is not None:
            report.calibrations.append(current)
            current = None

    for raw in text.split("\n"):
        line = raw.strip()
        if not line or line == "---" or line.startswith("═══"):
            continue

        if line.startswith("Vehicle:"):
            report.vehicle = _value(line, "Vehicle:")
            continue
        if line.startswith("VIN:"):
            report.vin = _value(line, "VIN:")
            continue
        if line.startswith("Status:"):
            report.status = _value(line, "Status:")
            continue

        if line.startswith("--- END"):
            break
        if line.startswith("─── SUMMARY") or line.startswith("─── SOURCES"):
            flush()
            section = None
            continue
        found = _section(line)
        if found is not None:
            flush()
            section = found
            continue

        if section == _CALS:
            if current is not None:
                if line.startswith("Confidence:"):
                    current.confidence = _value(line, "Confidence:").upper() or "MEDIUM"
                    continue
                if line.startswith("Sources:"):
                    current.sources = [s.strip() for s in _value(line, "Sources:").split(",") if s.strip()]
                    continue
                if line.startswith("Triggered by:"):
                    current.triggered_by = _value(line, "Triggered by:")
                    continue
                if line.startswith("Reasoning:"):
                    current.reasoning = _value(line, "Reasoning:")
                    continue
            m = _CAL_RE.match(line)
            if m:
                flush()
                current = CalibrationItem(name=m.group(1).strip(), type=m.group(2).strip())

        elif section == _EXCLUDED:
            m = _EXCLUDED_RE.match(line)
            if m:
                name = m.group(1).strip()
                if name.lower() != "none" and len(name) > 2:
                    report.excluded.append(ExcludedItem(name=name, reason=m.group(2).strip()))

        elif section == _CONFLICTS:
            m = _CONFLICT_RE.match(line)
            if m and ":" not in line:
                report.conflicts.append(ScrubConflict(item=m.group(1).strip()))
            elif report.conflicts:
                last = report.conflicts[-1]
                if line.startswith("RevvADAS says:"):
                    last.report_says = _value(line, "RevvADAS says:")
                elif _SAYS_RE.match(line):
                    last.assistant_says = _SAYS_RE.sub("", line).strip()
                elif line.startswith("Reason:"):
                    last.reason = _value(line, "Reason:")

    flush()
    return report


def format_required_calibrations(items: list[CalibrationItem]) -> str:
    """Stored form: ``Name (Type); Name (Type)``."""
    return "; ".join(item.label() for item in items)
