"""Attendance review requests: student disputes and admin decisions."""
from typing import Optional

from fastapi import APIRouter, Query, Request

from visiotrack.api.deps import AdminOnly, CurrentUser, envelope, json_body, parse_body
from visiotrack.models.review import ReviewCreate, ReviewDecision, ReviewOut, ReviewRequest
from visiotrack.services import reviews

router = APIRouter()


def _dump(review: ReviewRequest) -> dict:
    return ReviewOut.from_document(review).model_dump(by_alias=True, mode="json")


@router.post("", status_code=201)
async def submit_review(data: ReviewCreate, user: CurrentUser):
    review = await reviews.submit_review(data.attendance_id, data.reason, data.comments, user)
    return envelope(_dump(review), "Your review request has been submitted.")


@router.get("")
async def list_reviews(
    user: CurrentUser,
    status: Optional[str] = None,
    student_id: Optional[str] = Query(None, alias="studentId"),
):
    items = await reviews.list_reviews(user, status=status, student_id=student_id)
    return envelope([_dump(r) for r in items])


@router.get("/{review_id}")
async def get_review(review_id: str, user: CurrentUser):
    review = await reviews.get_review(review_id, user)
    return envelope(_dump(review))


@router.put("/{review_id}", openapi_extra=json_body(ReviewDecision))
async def decide_review(review_id: str, request: Request, user: AdminOnly):
    """Approve or reject a pending review (admin only)."""
    data = await parse_body(request, ReviewDecision)
    review = await reviews.decide_review(
        review_id,
        data.decision,
        user,
        admin_remarks=data.remarks,
        new_status=data.new_status,
    )
    return envelope(_dump(review), f"Review request {review.status.value}")
