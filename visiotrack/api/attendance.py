import io
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from visiotrack.api.deps import AdminOnly, CurrentUser, ensure_self_or_admin, envelope, json_body, parse_body
from visiotrack.models.attendance import (
    AttendanceCreate,
    AttendanceOut,
    AttendanceRecord,
    AttendanceStatusUpdate,
    BulkAttendanceCreate,
)
from visiotrack.services import attendance

router = APIRouter()


def _dump(record: AttendanceRecord) -> dict:
    return AttendanceOut.from_document(record).model_dump(by_alias=True, mode="json")


@router.post("/record", status_code=201)
async def record_attendance(data: AttendanceCreate, user: CurrentUser):
    """Record attendance from a detection device or manual entry."""
    record = await attendance.record_attendance(data, user)
    return envelope(_dump(record), "Attendance recorded successfully")


@router.post("/bulk-record", status_code=201, openapi_extra=json_body(BulkAttendanceCreate))
async def bulk_record_attendance(request: Request, user: AdminOnly):
    """Record a class sheet in one all-or-nothing write (admin only)."""
    data = await parse_body(request, BulkAttendanceCreate)
    records = await attendance.bulk_record_attendance(data.attendance_records, user)
    return envelope(
        [_dump(r) for r in records],
        f"{len(records)} attendance records created successfully",
    )


@router.get("/student/{student_id}")
async def get_student_attendance(
    student_id: str,
    user: CurrentUser,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Attendance history for a student, most recent first."""
    ensure_self_or_admin(user, student_id)
    records = await attendance.get_attendance_by_student(student_id, start_date, end_date)
    return envelope([_dump(r) for r in records])


@router.get("/date/{date_str}")
async def get_attendance_by_date(
    date_str: str,
    user: AdminOnly,
    department: Optional[str] = None,
    course: Optional[str] = None,
):
    records = await attendance.get_attendance_by_date(date_str, department, course)
    return envelope([_dump(r) for r in records])


@router.get("/stats/{student_id}")
async def get_attendance_stats(
    student_id: str,
    user: CurrentUser,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    ensure_self_or_admin(user, student_id, what="statistics")
    stats = await attendance.get_attendance_stats(student_id, start_date, end_date)
    return envelope(stats.model_dump(by_alias=True))


@router.get("/report")
async def download_attendance_report(
    user: AdminOnly,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    department: Optional[str] = None,
    course: Optional[str] = None,
    format: str = Query("csv", json_schema_extra={"enum": ["csv", "excel", "pdf"]}),
):
    """Download attendance for a date range as CSV, Excel or PDF."""
    content, media_type, filename = await attendance.export_attendance(
        start_date, end_date, department, course, format
    )
    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.put("/{attendance_id}", openapi_extra=json_body(AttendanceStatusUpdate))
async def update_attendance_status(attendance_id: str, request: Request, user: AdminOnly):
    data = await parse_body(request, AttendanceStatusUpdate)
    record = await attendance.update_attendance_status(attendance_id, data.status, data.remarks)
    return envelope(_dump(record), "Attendance status updated successfully")


@router.delete("/{attendance_id}")
async def delete_attendance(attendance_id: str, user: AdminOnly):
    await attendance.delete_attendance(attendance_id)
    return envelope(message="Attendance record deleted successfully")
