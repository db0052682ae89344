"""
Authentication dependencies for FastAPI.

A session token is read from the `vah_session` cookie set at login, or from
an Authorization: Bearer header for API clients.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.core.config import settings
from backend.app.core.jwt import decode_access_token
from backend.app.core.token_revocation import is_token_revoked, are_user_tokens_revoked
from backend.app.db.session import get_db
from backend.app.models.user import User

# Bearer is optional: browser clients authenticate with the session cookie
security = HTTPBearer(auto_error=False)


@dataclass
class SessionContext:
    token: str
    payload: Dict[str, Any]
    user: User


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def extract_session_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name)


async def get_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> SessionContext:
    """
    Resolve and validate the caller's session.

    Checks, in order:
    1. A token is present (header or cookie) with a valid signature and expiry
    2. The token has not been revoked by logout
    3. The user's tokens have not been revoked wholesale (account suspended)
    4. The user still exists and is active

    Raises:
        HTTPException: 401 if authentication fails, 403 if the account is inactive
    """
    token = extract_session_token(request, credentials)
    if not token:
        raise _unauthorized("Not authenticated")

    payload = decode_access_token(token)
    if payload is None:
        raise _unauthorized("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise _unauthorized("Invalid token payload")

    if await is_token_revoked(token):
        raise _unauthorized("Token has been revoked")

    if await are_user_tokens_revoked(user_id):
        raise _unauthorized("User access has been revoked")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return SessionContext(token=token, payload=payload, user=user)


async def get_current_account(session: SessionContext = Depends(get_session)) -> User:
    """The authenticated caller's User row, loaded in the request's session."""
    return session.user
