"""Student disputes of a recorded attendance status."""
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from beanie import Document, Indexed
from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from visiotrack.models.attendance import AttendanceStatus, _CamelModel


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewReason(str, Enum):
    NOT_DETECTED = "I was present but not detected"
    MEDICAL = "Medical issue"
    FACE_NOT_DETECTED = "Face not detected"
    OTHER = "Other"


class ReviewRequest(Document):
    attendance_id: Indexed(str)
    student_id: Indexed(str)
    date: str
    current_status: str
    reason: ReviewReason
    comments: str = ""
    request_date: datetime = Field(default_factory=datetime.utcnow)
    status: ReviewStatus = ReviewStatus.PENDING

    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    admin_remarks: Optional[str] = None
    resolved_status: Optional[str] = None  # written back to the record on approval

    class Settings:
        name = "attendance_reviews"


class ReviewCreate(_CamelModel):
    attendance_id: str = Field(min_length=1)
    reason: ReviewReason
    comments: str = ""


class ReviewDecision(_CamelModel):
    decision: Literal["approved", "rejected"]
    remarks: Optional[str] = None
    # Status to write back on approval; the record keeps its status when omitted
    new_status: Optional[AttendanceStatus] = None


class ReviewOut(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    attendance_id: str
    student_id: str
    date: str
    current_status: str
    reason: str
    comments: str
    request_date: datetime
    status: str
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    admin_remarks: Optional[str] = None
    resolved_status: Optional[str] = None

    @classmethod
    def from_document(cls, review: ReviewRequest) -> "ReviewOut":
        data = review.model_dump(exclude={"id", "revision_id"})
        data["reason"] = review.reason.value
        data["status"] = review.status.value
        return cls(id=str(review.id), **data)
