"""
Admin API Endpoints.

Customer account management and the audit trail, admin-only.
"""

from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, desc
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.admin import (
    UserListResponse, UserListItem, AuditTrailResponse, AuditLogResponse
)
from backend.app.schemas.billing import AdminUserUpdate
from backend.app.core.guards import require_admin
from backend.app.core.exceptions import BadRequestError, ResourceNotFoundError
from backend.app.core.token_revocation import revoke_all_user_tokens, clear_user_token_revocation
from backend.app.domain.billing.billing_service import BillingService
from backend.app.services.audit import log_event, AuditAction, get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users", response_model=UserListResponse)
async def list_users(
    q: str = Query(None, description="Search email, name or company"),
    limit: int = Query(50, ge=1, le=100, description="Items per page"),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List accounts (admin-only), newest first.
    """
    query = select(User)
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        query = query.where(or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.company_name.ilike(pattern),
        ))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()

    result = await db.execute(
        query.order_by(desc(User.created_at), desc(User.id)).offset(offset).limit(limit)
    )
    users = result.scalars().all()

    return UserListResponse(
        users=[UserListItem.model_validate(user) for user in users],
        total=total,
        limit=limit,
        offset=offset
    )


@router.get("/users/{user_id}", response_model=UserListItem)
async def get_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    user = await db.get(User, user_id)
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return UserListItem.model_validate(user)


@router.patch("/users/{user_id}", response_model=UserListItem)
async def update_user(
    user_id: int,
    body: AdminUserUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply admin overrides to an account.

    Suspending (is_active=false) revokes every outstanding session of the
    user; reactivating clears that revocation.
    """
    user = await db.get(User, user_id)
    if not user:
        raise ResourceNotFoundError("User", user_id)

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise BadRequestError("no_changes", "No fields to update")

    if changes.get("is_active") is False and user.id == admin.id:
        raise BadRequestError("cannot_suspend_self", "Cannot suspend your own account")

    was_active = user.is_active
    applied = {}

    for field in ("first_name", "last_name", "company_name", "kyc_status", "is_active"):
        if field in changes and changes[field] is not None and getattr(user, field) != changes[field]:
            setattr(user, field, changes[field])
            applied[field] = changes[field].value if hasattr(changes[field], "value") else changes[field]

    if changes.get("plan_status") is not None:
        if await BillingService.set_plan_status(db, user, changes["plan_status"], reason="admin_override",
                                                meta={"admin_id": admin.id}):
            applied["plan_status"] = changes["plan_status"].value

    if "is_active" in applied:
        action = AuditAction.USER_REACTIVATED if user.is_active else AuditAction.USER_SUSPENDED
    else:
        action = AuditAction.USER_UPDATED

    await log_event(
        db=db,
        action=action,
        actor_id=admin.id,
        actor_email=admin.email,
        target_type="user",
        target_id=user.id,
        metadata={"changes": applied},
        ip_address=request.client.host if request.client else None,
        commit=False
    )
    await db.commit()
    await db.refresh(user)

    # Session revocation lives in Redis, outside the DB transaction
    if was_active and not user.is_active:
        await revoke_all_user_tokens(user.id)
    elif not was_active and user.is_active:
        await clear_user_token_revocation(user.id)

    return UserListItem.model_validate(user)


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    target_type: str = Query(None, description="Filter by target type"),
    target_id: int = Query(None, description="Filter by target ID"),
    action: str = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get audit trail with optional filtering (admin-only).
    """
    logs = await get_audit_trail(
        db=db,
        target_type=target_type,
        target_id=target_id,
        action=action,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
