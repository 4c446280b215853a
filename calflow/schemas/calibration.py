from __future__ import annotations

from pydantic import BaseModel


class CalibrationItem(BaseModel):
    name: str
    type: str = ""  # Static | Dynamic | S | D ...
    confidence: str = "MEDIUM"  # HIGH | MEDIUM | LOW
    sources: list[str] = []
    triggered_by: str | None = None
    reasoning: str | None = None

    def label(self) -> str:
        return f"{self.name} ({self.type})" if self.type else self.name


class ExcludedItem(BaseModel):
    name: str
    reason: str = ""


class ScrubConflict(BaseModel):
    item: str
    report_says: str = ""
    assistant_says: str = ""
    reason: str = ""


class ScrubReport(BaseModel):
    calibrations: list[CalibrationItem] = []
    excluded: list[ExcludedItem] = []
    conflicts: list[ScrubConflict] = []
    status: str = "UNKNOWN"
    vehicle: str = ""
    vin: str = ""

    @property
    def needs_review(self) -> list[CalibrationItem]:
        return [c for c in self.calibrations if c.confidence.upper() != "HIGH"]
