"""
Destruction Service (Domain Logic).

Records the physical destruction of letters once the retention period has
passed, attributed either to the admin who shredded them or to the
automated retention job.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow, ensure_utc
from backend.app.core.config import settings
from backend.app.core.exceptions import BadRequestError, ResourceNotFoundError
from backend.app.domain.destruction.attribution import (
    DEFAULT_DESTRUCTION_METHOD,
    SYSTEM_STAFF_INITIALS,
    SYSTEM_STAFF_NAME,
    derive_staff_attribution,
    validate_staff_attribution,
)
from backend.app.models.destruction_log import DestructionLog
from backend.app.models.enums import UserRole
from backend.app.models.mail_item import MailItem
from backend.app.models.user import User
from backend.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

# Forwarding states in which the letter is still held in the mailroom
_DESTROYABLE_FORWARDING_STATES = ("No", "Cancelled")


def destruction_window(mail: MailItem) -> Tuple[datetime, datetime]:
    """
    Return (receipt_date, eligibility_date) for a letter.

    Raises:
        BadRequestError: the letter has no receipt or creation date
    """
    receipt = ensure_utc(mail.received_at or mail.created_at)
    if receipt is None:
        raise BadRequestError("missing_receipt_date", f"Mail item {mail.id} has no receipt date")
    return receipt, receipt + timedelta(days=settings.mail_retention_days)


class DestructionService:

    @staticmethod
    async def _existing_log(db: AsyncSession, mail_item_id: int) -> Optional[DestructionLog]:
        result = await db.execute(
            select(DestructionLog).where(DestructionLog.mail_item_id == mail_item_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_destroyed_by_admin(
        db: AsyncSession,
        mail_item_id: int,
        admin: User,
        notes: Optional[str] = None,
        method: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> DestructionLog:
        """
        Confirm that an admin physically destroyed a letter.

        Raises:
            ResourceNotFoundError: unknown mail item
            BadRequestError: invalid_destruction_target, missing_receipt_date,
                not_eligible_for_destruction, already_destroyed
            InvalidAttributionError: the admin's identity resolves to no name
        """
        mail = await db.get(MailItem, mail_item_id)
        if not mail:
            raise ResourceNotFoundError("Mail item", mail_item_id, error_code="mail_item_not_found")

        owner = await db.get(User, mail.user_id)
        if owner is None or owner.role == UserRole.ADMIN:
            raise BadRequestError(
                "invalid_destruction_target",
                "Only customer mail can be logged as destroyed"
            )

        receipt, eligible_at = destruction_window(mail)
        now = utcnow()
        if now < eligible_at:
            raise BadRequestError(
                "not_eligible_for_destruction",
                "Mail is still within the retention period",
                {"eligibility_date": eligible_at.isoformat()}
            )

        if await DestructionService._existing_log(db, mail.id):
            raise BadRequestError("already_destroyed", f"Mail item {mail.id} is already logged as destroyed")

        staff_name, staff_initials = derive_staff_attribution(admin.first_name, admin.last_name, admin.email)

        log = DestructionLog(
            mail_item_id=mail.id,
            user_id=owner.id,
            user_display_name=owner.company_name or owner.display_name,
            receipt_date=receipt,
            eligibility_date=eligible_at,
            recorded_at=now,
            actor_type="admin",
            action_source="admin_dashboard",
            staff_user_id=admin.id,
            staff_name=staff_name,
            staff_initials=staff_initials,
            notes=notes,
            destruction_method=method or DEFAULT_DESTRUCTION_METHOD,
        )
        db.add(log)

        mail.physical_destruction_date = now
        mail.status = "destroyed"

        await log_event(
            db=db,
            action=AuditAction.PHYSICAL_DESTRUCTION_CONFIRMED,
            actor_id=admin.id,
            actor_email=admin.email,
            target_type="mail_item",
            target_id=mail.id,
            metadata={"staff_initials": staff_initials, "method": log.destruction_method},
            ip_address=ip_address,
            commit=False
        )
        await db.commit()
        await db.refresh(log)

        logger.info("Mail %s destruction logged by %s (%s)", mail.id, staff_name, staff_initials)
        return log

    @staticmethod
    async def log_system_destruction(
        db: AsyncSession,
        mail: MailItem,
        owner: User,
        now: Optional[datetime] = None
    ) -> DestructionLog:
        """Add a destruction record attributed to the retention job. Caller commits."""
        validate_staff_attribution(SYSTEM_STAFF_NAME, SYSTEM_STAFF_INITIALS)
        now = now or utcnow()
        receipt, eligible_at = destruction_window(mail)

        log = DestructionLog(
            mail_item_id=mail.id,
            user_id=owner.id,
            user_display_name=owner.company_name or owner.display_name,
            receipt_date=receipt,
            eligibility_date=eligible_at,
            recorded_at=now,
            actor_type="system",
            action_source="retention_job",
            staff_user_id=None,
            staff_name=SYSTEM_STAFF_NAME,
            staff_initials=SYSTEM_STAFF_INITIALS,
            notes="Destroyed automatically after the retention period",
            destruction_method=DEFAULT_DESTRUCTION_METHOD,
        )
        db.add(log)
        mail.physical_destruction_date = now
        mail.status = "destroyed"

        await log_event(
            db=db,
            action=AuditAction.PHYSICAL_DESTRUCTION_CONFIRMED,
            target_type="mail_item",
            target_id=mail.id,
            metadata={"staff_initials": SYSTEM_STAFF_INITIALS, "source": "retention_job"},
            commit=False
        )
        return log

    @staticmethod
    async def destroy_expired(db: AsyncSession, now: Optional[datetime] = None) -> List[int]:
        """
        Log system destruction for every customer letter past retention that
        has not been destroyed or sent for forwarding.

        Returns:
            IDs of the mail items logged
        """
        now = now or utcnow()
        result = await db.execute(
            select(MailItem, User)
            .join(User, User.id == MailItem.user_id)
            .outerjoin(DestructionLog, DestructionLog.mail_item_id == MailItem.id)
            .where(
                DestructionLog.id.is_(None),
                MailItem.physical_destruction_date.is_(None),
                MailItem.forwarding_status.in_(_DESTROYABLE_FORWARDING_STATES),
                User.role == UserRole.CUSTOMER,
            )
            .order_by(MailItem.id)
        )

        destroyed = []
        for mail, owner in result.all():
            if (mail.received_at or mail.created_at) is None:
                logger.warning("Mail %s has no receipt date, skipping", mail.id)
                continue
            _, eligible_at = destruction_window(mail)
            if now < eligible_at:
                continue
            await DestructionService.log_system_destruction(db, mail, owner, now)
            destroyed.append(mail.id)

        await db.commit()
        logger.info("Retention job logged %d destroyed items", len(destroyed))
        return destroyed
