"""Attendance operations: recording, queries, statistics and exports."""
import logging
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from visiotrack.errors import NotFoundError, ValidationError, field_errors
from visiotrack.models.attendance import (
    METHOD_BULK_MANUAL,
    METHOD_MANUAL,
    STATUS_VALUES,
    AttendanceCreate,
    AttendanceRecord,
    AttendanceStats,
    AttendanceStatus,
    normalize_iso_date,
)
from visiotrack.models.user import User
from visiotrack.services import fcm, reports, store

logger = logging.getLogger(__name__)

Submission = Union[AttendanceCreate, dict]


def _validate_submission(data: Submission, prefix: str = "") -> AttendanceCreate:
    if isinstance(data, AttendanceCreate):
        return data
    try:
        return AttendanceCreate.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(field_errors(e.errors(), prefix=prefix))


def _optional_date(value: Optional[str], field: str) -> Optional[str]:
    if value is None or not value.strip():
        return None
    try:
        return normalize_iso_date(value)
    except ValueError as e:
        raise ValidationError.for_field(field, str(e))


def _optional_filter(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def _validate_status(value: Union[AttendanceStatus, str], field: str = "status") -> str:
    if isinstance(value, AttendanceStatus):
        return value.value
    if value not in STATUS_VALUES:
        raise ValidationError.for_field(field, "Invalid status")
    return value


async def _notify_absence(record: AttendanceRecord) -> None:
    if record.status != AttendanceStatus.ABSENT.value:
        return
    try:
        await fcm.send_absence_notification(record)
    except Exception:
        logger.exception("Absence notification failed for %s", record.id)


async def record_attendance(data: Submission, user: User) -> AttendanceRecord:
    """Record one attendance event on behalf of ``user``."""
    submission = _validate_submission(data)
    payload = submission.model_dump(mode="json", exclude={"method"})
    payload["recorded_by"] = str(user.id)
    payload["method"] = submission.method or METHOD_MANUAL

    record = await store.record_attendance(payload)
    await _notify_absence(record)
    return record


async def bulk_record_attendance(items: list[Submission], user: User) -> list[AttendanceRecord]:
    """Record a whole attendance sheet. Nothing is written unless every entry is valid."""
    errors = []
    submissions = []
    for i, data in enumerate(items):
        try:
            submissions.append(_validate_submission(data, prefix=f"attendanceRecords.{i}"))
        except ValidationError as e:
            errors.extend(e.errors)
    if errors:
        raise ValidationError(errors)

    payloads = []
    for submission in submissions:
        payload = submission.model_dump(mode="json", exclude={"method"})
        payload["recorded_by"] = str(user.id)
        payload["method"] = METHOD_BULK_MANUAL
        payloads.append(payload)

    records = await store.bulk_record_attendance(payloads)
    for record in records:
        await _notify_absence(record)
    return records


async def get_attendance_by_student(
    student_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> list[AttendanceRecord]:
    start = _optional_date(start_date, "startDate")
    end = _optional_date(end_date, "endDate")
    return await store.query_by_student(student_id, start, end)


async def get_attendance_by_date(
    date: str,
    department: Optional[str] = None,
    course: Optional[str] = None,
) -> list[AttendanceRecord]:
    day = _optional_date(date, "date")
    if day is None:
        raise ValidationError.for_field("date", "Valid date is required")
    return await store.query_by_date(day, _optional_filter(department), _optional_filter(course))


async def update_attendance_status(
    attendance_id: str,
    new_status: Union[AttendanceStatus, str],
    remarks: Optional[str] = None,
) -> AttendanceRecord:
    status = _validate_status(new_status)
    record = await store.update_status(attendance_id, status, remarks)
    logger.info("Attendance %s set to %s", attendance_id, status)
    return record


async def delete_attendance(attendance_id: str) -> None:
    await store.delete(attendance_id)
    logger.info("Attendance %s deleted", attendance_id)


def attendance_percentage(attended: int, total: int) -> int:
    """Percentage rounded to the nearest integer, halves rounded up; 0 when there is nothing to count."""
    if total == 0:
        return 0
    value = Decimal(100 * attended) / Decimal(total)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_stats(records: list[AttendanceRecord]) -> AttendanceStats:
    """Tally statuses case-insensitively.

    Late and excused count as attended. Unknown statuses count toward the
    total only.
    """
    counts = {status.lower(): 0 for status in STATUS_VALUES}
    for record in records:
        key = (record.status or "").lower()
        if key in counts:
            counts[key] += 1

    total = len(records)
    attended = counts["present"] + counts["late"] + counts["excused"]
    return AttendanceStats(
        total=total,
        **counts,
        attendance_percentage=attendance_percentage(attended, total),
    )


async def get_attendance_stats(
    student_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> AttendanceStats:
    records = await get_attendance_by_student(student_id, start_date, end_date)
    return compute_stats(records)


async def export_attendance(
    start_date: str,
    end_date: str,
    department: Optional[str] = None,
    course: Optional[str] = None,
    fmt: str = "csv",
) -> tuple[bytes, str, str]:
    """Render records in a date range; returns ``(content, media_type, filename)``.

    Each row carries the student's attendance percentage over the exported records.
    """
    if fmt not in reports.EXPORT_FORMATS:
        raise ValidationError.for_field("format", f"Format must be one of: {', '.join(reports.EXPORT_FORMATS)}")
    start = _optional_date(start_date, "startDate")
    end = _optional_date(end_date, "endDate")
    errors = []
    if start is None:
        errors.append({"field": "startDate", "message": "Valid date is required"})
    if end is None:
        errors.append({"field": "endDate", "message": "Valid date is required"})
    if errors:
        raise ValidationError(errors)
    if start > end:
        raise ValidationError.for_field("endDate", "End date must not be before start date")

    records = await store.query_range(start, end, _optional_filter(department), _optional_filter(course))
    if not records:
        raise NotFoundError("No records found for the given criteria")

    by_student = defaultdict(list)
    for record in records:
        by_student[record.student_id].append(record)
    percentages = {
        student_id: compute_stats(student_records).attendance_percentage
        for student_id, student_records in by_student.items()
    }

    rows = [
        {
            "Date": r.date,
            "Student ID": r.student_id,
            "Department": r.department or "",
            "Course": r.course_id or "",
            "Status": r.status,
            "Arrival Time": r.arrival_time or "",
            "Method": r.method,
            "Remarks": r.remarks or "",
            "Attendance %": f"{percentages[r.student_id]}%",
        }
        for r in records
    ]

    renderer, media_type, extension = reports.EXPORT_FORMATS[fmt]
    title = f"Attendance report {start} to {end}"
    content = renderer(reports.attendance_frame(rows), title)
    return content, media_type, f"attendance_report_{start}_{end}.{extension}"
