"""Beanie document models and Pydantic schemas."""
from visiotrack.models.user import User, UserRole
from visiotrack.models.attendance import (
    AttendanceRecord,
    AttendanceStatus,
    AttendanceCreate,
    BulkAttendanceCreate,
    AttendanceStatusUpdate,
    AttendanceOut,
    AttendanceStats,
)
from visiotrack.models.review import ReviewRequest, ReviewStatus, ReviewReason, ReviewCreate, ReviewDecision, ReviewOut

DOCUMENT_MODELS = [User, AttendanceRecord, ReviewRequest]

__all__ = [
    "User",
    "UserRole",
    "AttendanceRecord",
    "AttendanceStatus",
    "AttendanceCreate",
    "BulkAttendanceCreate",
    "AttendanceStatusUpdate",
    "AttendanceOut",
    "AttendanceStats",
    "ReviewRequest",
    "ReviewStatus",
    "ReviewReason",
    "ReviewCreate",
    "ReviewDecision",
    "ReviewOut",
    "DOCUMENT_MODELS",
]
