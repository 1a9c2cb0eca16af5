"""Users: administrators and students."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import EmailStr, Field


class UserRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"


class User(Document):
    """User document; credentials live with the auth service."""

    email: Indexed(EmailStr, unique=True)
    role: UserRole
    full_name: str
    # Students: institution registration number, may be used as the attendance student id
    registration_number: Optional[str] = None
    department: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # FCM tokens for notifications
    fcm_tokens: list[str] = Field(default_factory=list)

    class Settings:
        name = "users"
        use_state_management = True

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def student_keys(self) -> set[str]:
        """Identifiers under which this user's attendance may be recorded."""
        keys = {str(self.id)}
        if self.registration_number:
            keys.add(self.registration_number)
        return keys
