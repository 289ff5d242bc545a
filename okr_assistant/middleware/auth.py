"""JWT authentication for the assistant API."""
from fastapi import HTTPException, Depends, status, Request
from jose import jwt, JWTError
from pydantic import BaseModel
from typing import Optional
import logging

from okr_assistant.config import Settings
from okr_assistant.dependencies import get_settings
from okr_assistant.models.user_context import UserContext

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    """User information extracted from JWT."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    organization_id: Optional[str] = None
    token: Optional[str] = None


def decode_token(token: str, secret: str) -> CurrentUser:
    """
    Verify an HS256 token and read its claims.

    Raises:
        HTTPException: If token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(
        user_id=str(user_id),
        email=payload.get("email"),
        name=payload.get("name"),
        role=payload.get("role"),
        organization_id=payload.get("organization_id"),
        token=token
    )


async def get_optional_user(
    request: Request,
    settings: Settings = Depends(get_settings)
) -> Optional[CurrentUser]:
    """
    Validate a bearer token when one is sent.

    Returns:
        CurrentUser, or None when no token is sent and AUTH_REQUIRED is off

    Raises:
        HTTPException: Missing token while AUTH_REQUIRED, or invalid token
    """
    # Skip authentication for OPTIONS requests (preflight CORS requests)
    if request.method == "OPTIONS":
        return None

    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        if settings.auth_required:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing or invalid Authorization header",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return None

    return decode_token(auth_header[7:], settings.jwt_secret)


def apply_claims(user_context: Optional[UserContext], current_user: Optional[CurrentUser]) -> UserContext:
    """Token claims take precedence over the user context sent in the body."""
    context = user_context or UserContext()
    if current_user is None:
        return context

    context.user_id = current_user.user_id
    context.access_token = current_user.token
    if current_user.email:
        context.email = current_user.email
    if current_user.name:
        context.user_name = current_user.name
    if current_user.role:
        context.role = current_user.role
    if current_user.organization_id:
        context.organization_id = current_user.organization_id
    return context
