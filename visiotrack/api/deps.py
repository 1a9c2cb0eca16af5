"""Shared dependencies: bearer token verification and admin/self gating."""
from typing import Annotated, Any, Optional, TypeVar

from beanie import PydanticObjectId
from bson import ObjectId
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from visiotrack.config import settings
from visiotrack.errors import AuthorizationError, ValidationError, field_errors
from visiotrack.models.user import User

security = HTTPBearer(auto_error=False)

ModelT = TypeVar("ModelT", bound=BaseModel)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = credentials.credentials
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        user_id: str = payload.get("sub")
        if not user_id or not ObjectId.is_valid(user_id):
            raise HTTPException(status_code=401, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = await User.get(PydanticObjectId(user_id))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


async def require_admin(user: Annotated[User, Depends(get_current_user)]) -> User:
    if not user.is_admin:
        raise AuthorizationError("Access denied. Admin privileges required.")
    return user


def ensure_self_or_admin(user: User, student_id: str, what: str = "attendance") -> None:
    if not user.is_admin and student_id not in user.student_keys():
        raise AuthorizationError(f"Access denied. You can only view your own {what}.")


def envelope(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


# Type aliases for route injection
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminOnly = Annotated[User, Depends(require_admin)]


async def parse_body(request: Request, model: type[ModelT]) -> ModelT:
    """Read and validate a JSON body inside the handler.

    Admin-only routes call this after ``AdminOnly`` has resolved, so a
    non-admin gets 403 even for an unparseable body.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError.for_field("body", "Request body must be valid JSON")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(field_errors(e.errors()))


def json_body(model: type[BaseModel]) -> dict:
    """``openapi_extra`` documenting a body that ``parse_body`` reads."""
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": {"title": model.__name__, "type": "object"}}},
        }
    }
