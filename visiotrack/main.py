"""VisioTrack Attendance - FastAPI entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ServerSelectionTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from visiotrack.api import attendance, reviews
from visiotrack.config import settings
from visiotrack.db import db_shutdown, db_startup
from visiotrack.errors import AttendanceError, StorageError, ValidationError, field_errors
from visiotrack.seed import seed_admin

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await db_startup()
        await seed_admin()
    except ServerSelectionTimeoutError as e:
        logger.error("MongoDB is not reachable at %s", settings.mongodb_url)
        raise RuntimeError("MongoDB connection failed.") from e
    yield
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Attendance recording, review and reporting for students and administrators",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": field_errors(exc.errors())},
    )


@app.exception_handler(AttendanceError)
async def attendance_exception_handler(request: Request, exc: AttendanceError):
    content = {"success": False, "message": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    if isinstance(exc, StorageError):
        content["correlationId"] = exc.correlation_id
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(reviews.router, prefix="/api/attendance/reviews", tags=["Attendance Reviews"])
app.include_router(attendance.router, prefix="/api/attendance", tags=["Attendance"])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}
