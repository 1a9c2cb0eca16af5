"""Attendance persistence on MongoDB.

Every driver failure is logged with a correlation id and re-raised as
``StorageError``; raw ``pymongo`` exceptions never leave this module.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from beanie import PydanticObjectId, UpdateResponse
from bson import ObjectId
from pymongo.errors import PyMongoError

from visiotrack.config import settings
from visiotrack.db import get_client
from visiotrack.errors import NotFoundError, StorageError
from visiotrack.models.attendance import AttendanceRecord

logger = logging.getLogger(__name__)


@asynccontextmanager
async def storage_errors(action: str):
    try:
        yield
    except PyMongoError as e:
        err = StorageError(f"Failed to {action}")
        logger.exception("Storage failure while trying to %s [correlation_id=%s]", action, err.correlation_id)
        raise err from e


def parse_object_id(value: str, entity: str = "Attendance record") -> PydanticObjectId:
    """Malformed ids cannot resolve to a document, so they are reported as not found."""
    if not value or not ObjectId.is_valid(value):
        raise NotFoundError(f"{entity} not found")
    return PydanticObjectId(value)


def _new_record(data: dict[str, Any], **extra) -> AttendanceRecord:
    now = datetime.utcnow()
    return AttendanceRecord(**data, **extra, timestamp=now, created_at=now)


async def record_attendance(data: dict[str, Any]) -> AttendanceRecord:
    """Insert one record, stamping ``timestamp`` and ``created_at``."""
    record = _new_record(data)
    async with storage_errors("record attendance"):
        await record.insert()
    return record


async def bulk_record_attendance(items: list[dict[str, Any]]) -> list[AttendanceRecord]:
    """Insert all records or none.

    Ids are generated here so the returned list lines up with ``items``.
    """
    records = [_new_record(data, id=PydanticObjectId()) for data in items]
    if not records:
        return []

    client = get_client()
    if settings.mongodb_use_transactions and client is not None:
        async with storage_errors("bulk record attendance"):
            async with await client.start_session() as session:
                async with session.start_transaction():
                    await AttendanceRecord.insert_many(records, session=session)
    else:
        await _insert_many_with_rollback(records)

    logger.info("Bulk recorded %d attendance records", len(records))
    return records


async def _insert_many_with_rollback(records: list[AttendanceRecord]) -> None:
    ids = [r.id for r in records]
    try:
        await AttendanceRecord.insert_many(records)
    except PyMongoError as e:
        err = StorageError("Failed to bulk record attendance")
        logger.exception("Bulk insert failed, rolling back [correlation_id=%s]", err.correlation_id)
        try:
            await AttendanceRecord.find({"_id": {"$in": ids}}).delete()
        except PyMongoError:
            logger.exception(
                "Rollback of partial bulk insert failed [correlation_id=%s] ids=%s",
                err.correlation_id,
                [str(i) for i in ids],
            )
        raise err from e


async def get(attendance_id: str) -> AttendanceRecord:
    oid = parse_object_id(attendance_id)
    async with storage_errors("fetch attendance record"):
        record = await AttendanceRecord.get(oid)
    if not record:
        raise NotFoundError("Attendance record not found")
    return record


async def query_by_student(
    student_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> list[AttendanceRecord]:
    """Records for a student, newest date first. Bounds are inclusive."""
    query: dict[str, Any] = {"student_id": student_id}
    date_range = {}
    if start_date:
        date_range["$gte"] = start_date
    if end_date:
        date_range["$lte"] = end_date
    if date_range:
        query["date"] = date_range

    async with storage_errors("fetch student attendance"):
        return await AttendanceRecord.find(query).sort("-date").to_list()


async def query_by_date(
    date: str,
    department: Optional[str] = None,
    course_id: Optional[str] = None,
) -> list[AttendanceRecord]:
    query: dict[str, Any] = {"date": date}
    if department:
        query["department"] = department
    if course_id:
        query["course_id"] = course_id

    async with storage_errors("fetch attendance by date"):
        return await AttendanceRecord.find(query).to_list()


async def query_range(
    start_date: str,
    end_date: str,
    department: Optional[str] = None,
    course_id: Optional[str] = None,
) -> list[AttendanceRecord]:
    query: dict[str, Any] = {"date": {"$gte": start_date, "$lte": end_date}}
    if department:
        query["department"] = department
    if course_id:
        query["course_id"] = course_id

    async with storage_errors("fetch attendance range"):
        return await AttendanceRecord.find(query).sort("date", "student_id").to_list()


async def update_status(attendance_id: str, new_status: str, remarks: Optional[str] = None) -> AttendanceRecord:
    oid = parse_object_id(attendance_id)
    async with storage_errors("update attendance status"):
        record = await AttendanceRecord.find_one({"_id": oid}).update(
            {"$set": {"status": new_status, "remarks": remarks, "updated_at": datetime.utcnow()}},
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
    if record is None:
        raise NotFoundError("Attendance record not found")
    return record


async def delete(attendance_id: str) -> None:
    record = await get(attendance_id)
    async with storage_errors("delete attendance record"):
        await record.delete()
