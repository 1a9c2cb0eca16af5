from datetime import date, datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ARRIVAL_TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class AttendanceStatus(str, Enum):
    PRESENT = "Present"
    ABSENT = "Absent"
    LATE = "Late"
    EXCUSED = "Excused"


STATUS_VALUES = [s.value for s in AttendanceStatus]

METHOD_MANUAL = "manual"
METHOD_BULK_MANUAL = "bulk_manual"


def normalize_iso_date(value: str) -> str:
    """Parse an ISO-8601 date or datetime string and return its calendar date as YYYY-MM-DD."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Valid date is required")
    value = value.strip()
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        raise ValueError("Valid date is required")


class AttendanceRecord(Document):
    """One attendance event for a student on a calendar date."""

    student_id: Indexed(str)
    # Stored as YYYY-MM-DD so string range queries are chronological
    date: Indexed(str)
    status: str
    course_id: Optional[str] = None
    schedule_id: Optional[str] = None
    department: Optional[str] = None
    arrival_time: Optional[str] = None
    method: str = METHOD_MANUAL
    recorded_by: str
    remarks: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    class Settings:
        name = "attendance"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class AttendanceCreate(_CamelModel):
    """Single attendance submission (manual entry or detection device)."""

    student_id: str = Field(min_length=1)
    date: str
    status: AttendanceStatus
    course_id: Optional[str] = Field(default=None, min_length=1)
    schedule_id: Optional[str] = Field(default=None, min_length=1)
    department: Optional[str] = None
    arrival_time: Optional[str] = Field(default=None, pattern=ARRIVAL_TIME_PATTERN)
    method: Optional[str] = None

    @field_validator("student_id")
    @classmethod
    def _student_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Student ID is required")
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _validate_date(cls, value):
        return normalize_iso_date(value)


class BulkAttendanceCreate(_CamelModel):
    attendance_records: list[AttendanceCreate]


class AttendanceStatusUpdate(_CamelModel):
    status: AttendanceStatus
    remarks: Optional[str] = None


class AttendanceOut(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    student_id: str
    date: str
    status: str
    course_id: Optional[str] = None
    schedule_id: Optional[str] = None
    department: Optional[str] = None
    arrival_time: Optional[str] = None
    method: str
    recorded_by: str
    remarks: Optional[str] = None
    timestamp: datetime
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, record: AttendanceRecord) -> "AttendanceOut":
        return cls(id=str(record.id), **record.model_dump(exclude={"id", "revision_id"}))


class AttendanceStats(_CamelModel):
    total: int = 0
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    attendance_percentage: int = 0
