"""Firebase Cloud Messaging: absence and review-decision notifications to students."""
import firebase_admin
from firebase_admin import credentials, exceptions, messaging
from bson import ObjectId
import logging

from visiotrack.models.attendance import AttendanceRecord
from visiotrack.models.review import ReviewRequest
from visiotrack.models.user import User, UserRole
from visiotrack.config import settings

logger = logging.getLogger(__name__)

# FCM multicast limit
BATCH_SIZE = 500

_firebase_app = None


def _get_firebase_app():
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    if not settings.firebase_credentials_path:
        logger.debug("FIREBASE_CREDENTIALS_PATH not set. FCM is disabled.")
        return None

    try:
        cred = credentials.Certificate(settings.firebase_credentials_path)
        _firebase_app = firebase_admin.initialize_app(cred)
        return _firebase_app
    except (ValueError, OSError) as e:
        logger.error(f"Failed to initialize Firebase app: {e}")
        return None


async def _student_tokens(student_id: str) -> list[str]:
    """FCM tokens of the student user behind an attendance student id."""
    match = [{"registration_number": student_id}]
    if ObjectId.is_valid(student_id):
        match.append({"_id": ObjectId(student_id)})
    students = await User.find({"role": UserRole.STUDENT.value, "is_active": True, "$or": match}).to_list()

    tokens = []
    for student in students:
        tokens.extend(student.fcm_tokens)
    return tokens


async def _send(tokens: list[str], title: str, body: str, data: dict[str, str]) -> int:
    sent = 0
    for i in range(0, len(tokens), BATCH_SIZE):
        batch = tokens[i:i + BATCH_SIZE]
        message = messaging.MulticastMessage(
            notification=messaging.Notification(title=title, body=body),
            data=data,
            tokens=batch,
        )
        try:
            response = messaging.send_each_for_multicast(message)
            sent += response.success_count
        except exceptions.FirebaseError as e:
            logger.error(f"FCM batch send failed: {e}")
    return sent


async def send_absence_notification(record: AttendanceRecord) -> None:
    """Tell the student they were marked absent."""
    if not _get_firebase_app():
        return

    tokens = await _student_tokens(record.student_id)
    if not tokens:
        return

    sent = await _send(
        tokens,
        title="Attendance: marked Absent",
        body=f"You have been marked Absent for {record.date}. Request a review if this is wrong.",
        data={"type": "attendance", "attendance_id": str(record.id), "date": record.date},
    )
    logger.info(f"Sent absence notification for {record.student_id} to {sent} devices")


async def send_review_decision_notification(review: ReviewRequest) -> None:
    """Tell the student their review request was decided."""
    if not _get_firebase_app():
        return

    tokens = await _student_tokens(review.student_id)
    if not tokens:
        return

    body = f"Your attendance review for {review.date} was {review.status.value}."
    if review.admin_remarks:
        body = f"{body} Remarks: {review.admin_remarks}"
    await _send(
        tokens,
        title="Attendance review decided",
        body=body,
        data={"type": "attendance_review", "review_id": str(review.id), "status": review.status.value},
    )
