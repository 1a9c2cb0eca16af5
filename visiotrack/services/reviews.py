"""Review workflow: students dispute a recorded status, admins decide.

A request starts ``pending`` and moves exactly once to ``approved`` or
``rejected``. The move is a compare-and-swap on the stored state, so of two
concurrent decisions only one can win.
"""
import logging
from datetime import datetime
from typing import Optional, Union

from beanie import PydanticObjectId, UpdateResponse

from visiotrack.config import settings
from visiotrack.errors import AttendanceError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from visiotrack.models.attendance import AttendanceStatus
from visiotrack.models.review import ReviewReason, ReviewRequest, ReviewStatus
from visiotrack.models.user import User
from visiotrack.services import attendance, fcm, store
from visiotrack.services.store import parse_object_id, storage_errors

logger = logging.getLogger(__name__)

DECISIONS = (ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value)


def _validate_reason(reason: Union[ReviewReason, str]) -> ReviewReason:
    try:
        return ReviewReason(reason)
    except ValueError:
        allowed = ", ".join(r.value for r in ReviewReason)
        raise ValidationError.for_field("reason", f"Reason must be one of: {allowed}")


async def submit_review(
    attendance_id: str,
    reason: Union[ReviewReason, str],
    comments: Optional[str],
    user: User,
) -> ReviewRequest:
    """Open a pending review of an attendance record, snapshotting its current status."""
    review_reason = _validate_reason(reason)
    comments = (comments or "").strip()
    if len(comments) > settings.review_comment_max_length:
        raise ValidationError.for_field(
            "comments", f"Comments must be at most {settings.review_comment_max_length} characters"
        )

    record = await store.get(attendance_id)
    if not user.is_admin and record.student_id not in user.student_keys():
        raise AuthorizationError("Access denied. You can only request a review of your own attendance.")

    review = ReviewRequest(
        attendance_id=str(record.id),
        student_id=record.student_id,
        date=record.date,
        current_status=record.status,
        reason=review_reason,
        comments=comments,
    )
    async with storage_errors("submit review request"):
        await review.insert()
    logger.info("Review %s opened for attendance %s", review.id, attendance_id)
    return review


async def get_review(review_id: str, user: User) -> ReviewRequest:
    oid = parse_object_id(review_id, "Review request")
    async with storage_errors("fetch review request"):
        review = await ReviewRequest.get(oid)
    if not review:
        raise NotFoundError("Review request not found")
    if not user.is_admin and review.student_id not in user.student_keys():
        raise AuthorizationError("Access denied. You can only view your own review requests.")
    return review


async def list_reviews(
    user: User,
    status: Optional[str] = None,
    student_id: Optional[str] = None,
) -> list[ReviewRequest]:
    """Admins see every request; students only their own."""
    query = {}
    if status:
        if status not in {s.value for s in ReviewStatus}:
            raise ValidationError.for_field("status", "Status must be one of: pending, approved, rejected")
        query["status"] = status

    if user.is_admin:
        if student_id:
            query["student_id"] = student_id
    else:
        keys = user.student_keys()
        if student_id and student_id not in keys:
            raise AuthorizationError("Access denied. You can only view your own review requests.")
        query["student_id"] = student_id if student_id else {"$in": sorted(keys)}

    async with storage_errors("list review requests"):
        return await ReviewRequest.find(query).sort("-request_date").to_list()


async def decide_review(
    review_id: str,
    decision: str,
    user: User,
    admin_remarks: Optional[str] = None,
    new_status: Optional[Union[AttendanceStatus, str]] = None,
) -> ReviewRequest:
    """Approve or reject a pending request.

    On approval the disputed record gets ``admin_remarks`` and, when given,
    ``new_status``; without ``new_status`` it keeps its current status.
    Rejection leaves the record untouched.
    """
    if not user.is_admin:
        raise AuthorizationError("Access denied. Admin privileges required.")
    if decision not in DECISIONS:
        raise ValidationError.for_field("decision", "Decision must be one of: approved, rejected")
    if new_status is not None and not isinstance(new_status, AttendanceStatus):
        try:
            new_status = AttendanceStatus(new_status)
        except ValueError:
            raise ValidationError.for_field("newStatus", "Invalid status")

    oid = parse_object_id(review_id, "Review request")
    async with storage_errors("fetch review request"):
        current = await ReviewRequest.get(oid)
    if not current:
        raise NotFoundError("Review request not found")
    if current.status != ReviewStatus.PENDING:
        raise ConflictError(f"Review request already {current.status.value}")

    resolved_status = None
    if decision == ReviewStatus.APPROVED.value:
        record = await store.get(current.attendance_id)
        resolved_status = new_status.value if new_status else record.status

    async with storage_errors("decide review request"):
        review = await ReviewRequest.find_one({"_id": oid, "status": ReviewStatus.PENDING.value}).update(
            {
                "$set": {
                    "status": decision,
                    "decided_by": str(user.id),
                    "decided_at": datetime.utcnow(),
                    "admin_remarks": admin_remarks,
                    "resolved_status": resolved_status,
                }
            },
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
    if review is None:
        raise ConflictError("Review request was decided concurrently")
    logger.info("Review %s %s by %s", review_id, decision, user.id)

    if resolved_status is not None:
        try:
            await attendance.update_attendance_status(review.attendance_id, resolved_status, admin_remarks)
        except AttendanceError:
            logger.error("Write-back for review %s failed, reopening it", review_id)
            await _reopen(oid, decision)
            raise

    try:
        await fcm.send_review_decision_notification(review)
    except Exception:
        logger.exception("Review decision notification failed for %s", review_id)
    return review


async def _reopen(oid: PydanticObjectId, decision: str) -> None:
    """Return a decided review to ``pending`` so the decision can be retried."""
    async with storage_errors("reopen review request"):
        await ReviewRequest.find_one({"_id": oid, "status": decision}).update(
            {
                "$set": {
                    "status": ReviewStatus.PENDING.value,
                    "decided_by": None,
                    "decided_at": None,
                    "admin_remarks": None,
                    "resolved_status": None,
                }
            }
        )
