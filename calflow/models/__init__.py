"""SQLAlchemy ORM models for the work-order store."""

from calflow.models.base import Base
from calflow.models.work_order import WorkOrder
from calflow.models.shop import Shop
from calflow.models.technician import Technician
from calflow.models.assignment_request import AssignmentRequest

__all__ = [
    "Base", "WorkOrder", "Shop", "Technician", "AssignmentRequest",
]
