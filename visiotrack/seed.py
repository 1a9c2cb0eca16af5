"""Seed the initial admin user if configured and not present."""
import logging

from visiotrack.config import settings
from visiotrack.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def seed_admin():
    if not settings.seed_admin_email:
        return
    existing = await User.find_one(User.email == settings.seed_admin_email)
    if existing:
        return
    admin = User(
        email=settings.seed_admin_email,
        role=UserRole.ADMIN,
        full_name=settings.seed_admin_name,
    )
    await admin.insert()
    logger.info("Seeded admin user %s (id=%s)", admin.email, admin.id)
