"""
Authentication API endpoints.

Signup, login, logout and whoami. A successful login sets the httpOnly
vah_session cookie (the JWT) and the readable vah_csrf_token cookie that the
browser echoes back in X-CSRF-Token.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.models.enums import UserRole
from backend.app.schemas.auth import UserSignup, UserLogin, SessionResponse, UserResponse
from backend.app.core.config import settings
from backend.app.core.security import get_password_hash, verify_password, generate_csrf_token
from backend.app.core.jwt import create_access_token
from backend.app.core.dependencies import SessionContext, get_session, get_current_account
from backend.app.core.exceptions import AppException, AuthenticationError
from backend.app.core.token_revocation import revoke_token
from backend.app.services.audit import log_auth_event, log_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


def _issue_session(response: Response, user: User) -> SessionResponse:
    token = create_access_token(data={
        "sub": user.email,
        "user_id": user.id,
        "role": user.role.value,
    })
    csrf_token = generate_csrf_token()
    max_age = settings.access_token_expire_minutes * 60

    response.set_cookie(
        settings.session_cookie_name, token,
        max_age=max_age, httponly=True, secure=settings.cookie_secure, samesite="lax", path="/"
    )
    response.set_cookie(
        settings.csrf_cookie_name, csrf_token,
        max_age=max_age, httponly=False, secure=settings.cookie_secure, samesite="lax", path="/"
    )
    return SessionResponse(
        access_token=token,
        csrf_token=csrf_token,
        user=UserResponse.model_validate(user),
    )


@router.post("/signup", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    user_data: UserSignup,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new customer and start a session.

    Admin accounts cannot be created through the API.
    """
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise AppException(
            message="Email already registered",
            error_code="email_exists",
            status_code=status.HTTP_409_CONFLICT
        )

    new_user = User(
        email=email,
        first_name=user_data.first_name.strip(),
        last_name=user_data.last_name.strip(),
        company_name=user_data.company_name,
        phone=user_data.phone,
        hashed_password=get_password_hash(user_data.password),
        role=UserRole.CUSTOMER,
        is_active=True,
    )
    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)

    await log_event(
        db=db,
        action=AuditAction.USER_CREATED,
        actor_id=new_user.id,
        actor_email=new_user.email,
        target_type="user",
        target_id=new_user.id,
        ip_address=_client_ip(request)
    )

    return _issue_session(response, new_user)


@router.post("/login", response_model=SessionResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """
    Login and set the session cookies.

    Logs successful and failed login attempts for security monitoring.
    """
    email = credentials.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id if user else None,
            email=email,
            ip_address=_client_ip(request),
            metadata={"reason": "Invalid password" if user else "User not found"}
        )
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            email=email,
            ip_address=_client_ip(request),
            metadata={"reason": "Account is suspended"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account"
        )

    session = _issue_session(response, user)

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        email=user.email,
        ip_address=_client_ip(request)
    )

    return session


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the current session token and clear both cookies."""
    await revoke_token(session.token, session.user.id)

    response.delete_cookie(settings.session_cookie_name, path="/")
    response.delete_cookie(settings.csrf_cookie_name, path="/")

    await log_auth_event(
        db=db,
        action=AuditAction.LOGOUT,
        user_id=session.user.id,
        email=session.user.email,
        ip_address=_client_ip(request)
    )
    return {"ok": True}


@router.get("/whoami", response_model=UserResponse)
async def whoami(account: User = Depends(get_current_account)):
    """Current authenticated account."""
    return UserResponse.model_validate(account)
