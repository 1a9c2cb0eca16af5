"""In-memory MongoDB (mongomock-motor) and an ASGI client with switchable identity."""
import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("FIREBASE_CREDENTIALS_PATH", "")

import pytest
import pytest_asyncio
from beanie import init_beanie
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from visiotrack.api.deps import get_current_user
from visiotrack.main import app
from visiotrack.models import DOCUMENT_MODELS, AttendanceCreate, User, UserRole


@pytest_asyncio.fixture(autouse=True)
async def db():
    client = AsyncMongoMockClient()
    await init_beanie(database=client["visiotrack_test"], document_models=DOCUMENT_MODELS)
    yield client


@pytest_asyncio.fixture
async def admin():
    user = User(email="admin@example.edu", role=UserRole.ADMIN, full_name="Ada Admin")
    await user.insert()
    return user


@pytest_asyncio.fixture
async def student():
    user = User(
        email="s1@example.edu",
        role=UserRole.STUDENT,
        full_name="Sam Student",
        registration_number="S1",
        department="HNDIT",
    )
    await user.insert()
    return user


@pytest_asyncio.fixture
async def other_student():
    user = User(
        email="s2@example.edu",
        role=UserRole.STUDENT,
        full_name="Jo Other",
        registration_number="S2",
    )
    await user.insert()
    return user


@pytest_asyncio.fixture
async def api():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    def _login(user: User) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    return _login


def submission(student_id="S1", date="2024-03-10", status="Present", **extra) -> AttendanceCreate:
    return AttendanceCreate(student_id=student_id, date=date, status=status, **extra)
