"""
Audit logging service for tracking security events and admin actions.

Provides centralized logging for compliance and security monitoring.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_SUSPENDED = "USER_SUSPENDED"
    USER_REACTIVATED = "USER_REACTIVATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    # Mail
    MAIL_UPDATED = "MAIL_UPDATED"
    PHYSICAL_DESTRUCTION_CONFIRMED = "PHYSICAL_DESTRUCTION_CONFIRMED"

    # Forwarding
    FORWARDING_REQUESTED = "FORWARDING_REQUESTED"
    FORWARDING_REVIEWED = "FORWARDING_REVIEWED"
    FORWARDING_PROCESSING = "FORWARDING_PROCESSING"
    FORWARDING_DISPATCHED = "FORWARDING_DISPATCHED"
    FORWARDING_DELIVERED = "FORWARDING_DELIVERED"
    FORWARDING_CANCELLED = "FORWARDING_CANCELLED"

    # Webhook driven
    KYC_STATUS_CHANGED = "KYC_STATUS_CHANGED"
    PLAN_STATUS_CHANGED = "PLAN_STATUS_CHANGED"
    EMAIL_BOUNCED = "EMAIL_BOUNCED"

    @staticmethod
    def for_forwarding_status(status_value: str) -> str:
        return f"FORWARDING_{status_value.upper()}"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_email: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    commit: bool = True
) -> AuditLog:
    """
    Log a security or admin event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for system)
        actor_email: Email of actor
        target_type: Kind of row acted upon ("mail_item", "forwarding_request", ...)
        target_id: ID of that row
        metadata: Additional context as JSON
        ip_address: IP address of the request
        commit: Commit immediately; pass False to join the caller's transaction

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    if commit:
        await db.commit()
        await db.refresh(audit_log)
    else:
        await db.flush()

    return audit_log


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    email: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an authentication event (login success/failure, logout)."""
    return await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_email=email,
        target_type="user",
        target_id=user_id,
        ip_address=ip_address,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> List[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    if target_id:
        query = query.where(AuditLog.target_id == target_id)

    if action:
        query = query.where(AuditLog.action == action)

    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())
