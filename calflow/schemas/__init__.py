"""Pydantic schemas for the engine boundary."""

from calflow.schemas.work_order import ActionArgs, WorkOrderPatch, WorkOrderRecord
from calflow.schemas.calibration import CalibrationItem, ExcludedItem, ScrubConflict, ScrubReport
from calflow.schemas.result import EngineResult, ErrorInfo
from calflow.schemas.assignment import AssignmentRequestRecord

__all__ = [
    "ActionArgs", "WorkOrderPatch", "WorkOrderRecord",
    "CalibrationItem", "ExcludedItem", "ScrubConflict", "ScrubReport",
    "EngineResult", "ErrorInfo", "AssignmentRequestRecord",
]
