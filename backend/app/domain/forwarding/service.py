"""
Forwarding Service (Domain Logic).

Customer requests, the admin queue and admin status transitions.
Transitions are applied with a conditional UPDATE so two admins acting on
the same request cannot both succeed.
"""

import logging
import uuid
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func, or_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow, ensure_utc
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    BadRequestError,
    ConcurrentUpdateError,
    IdempotencyKeyConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
)
from backend.app.domain.forwarding.state import TIMESTAMP_COLUMNS, next_status
from backend.app.models.billing import ForwardingCharge
from backend.app.models.forwarding_enums import (
    ACTIVE_FORWARDING_STATUSES,
    ForwardingAction,
    ForwardingStatus,
)
from backend.app.models.forwarding_request import ForwardingRequest
from backend.app.models.mail_item import MailItem
from backend.app.models.user import User
from backend.app.schemas.forwarding import AdminForwardingUpdate, ForwardingRequestCreate
from backend.app.services import mailer
from backend.app.services.audit import AuditAction, log_event
from backend.app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def clamp_limit(limit: Optional[int], default: int = 50) -> int:
    if not limit:
        return default
    return max(1, min(MAX_PAGE_SIZE, limit))


def parse_status_filter(raw: Optional[str]) -> Optional[ForwardingStatus]:
    """Case-insensitive status filter; empty or "all" means no filter."""
    if raw is None or raw.strip().lower() in ("", "all"):
        return None
    wanted = raw.strip().lower()
    for status in ForwardingStatus:
        if status.value.lower() == wanted or status.name.lower() == wanted:
            return status
    raise BadRequestError("invalid_status", f"Unknown forwarding status '{raw}'")


class ForwardingService:

    @staticmethod
    async def create_request(
        db: AsyncSession,
        account: User,
        data: ForwardingRequestCreate,
        idem_key: Optional[str] = None
    ) -> Tuple[ForwardingRequest, bool]:
        """
        Create a forwarding request for one of the caller's letters.

        Flow:
        1. A repeated idempotency key returns the request it created
        2. Mail must belong to the caller and not be deleted
        3. Mail older than the retention window can no longer be forwarded
        4. An open request for the same letter is returned as-is
        5. Otherwise create the request, mirror the status on the mail item
           and raise a postage charge for non-official mail

        Without a client key a server key is generated, so every row has one.

        Returns:
            (request, created) where created is False for the idempotent case

        Raises:
            IdempotencyKeyConflictError: key already used for another letter or user
        """
        user_id = account.id
        actor_email = account.email

        if idem_key:
            replay = await ForwardingService._find_by_idem_key(db, idem_key, user_id, data.mail_item_id)
            if replay:
                return replay, False
        else:
            idem_key = f"srv-{uuid.uuid4()}"

        result = await db.execute(
            select(MailItem).where(
                MailItem.id == data.mail_item_id,
                MailItem.user_id == user_id,
                MailItem.deleted.is_(False)
            )
        )
        mail = result.scalar_one_or_none()
        if not mail:
            raise ResourceNotFoundError("Mail item", data.mail_item_id, error_code="mail_item_not_found")

        received = ensure_utc(mail.received_at or mail.created_at)
        if received and utcnow() - received > timedelta(days=settings.mail_retention_days):
            raise InsufficientPermissionsError(
                "Mail older than the retention period can no longer be forwarded",
                error_code="expired",
                details={"mail_item_id": mail.id, "retention_days": settings.mail_retention_days}
            )

        existing = await db.execute(
            select(ForwardingRequest).where(
                ForwardingRequest.mail_item_id == mail.id,
                ForwardingRequest.status.in_(ACTIVE_FORWARDING_STATUSES)
            ).order_by(desc(ForwardingRequest.id)).limit(1)
        )
        open_request = existing.scalar_one_or_none()
        if open_request:
            return open_request, False

        mail_id = mail.id
        request = ForwardingRequest(
            user_id=user_id,
            mail_item_id=mail_id,
            status=ForwardingStatus.REQUESTED,
            to_name=data.to_name,
            address1=data.address1,
            address2=data.address2,
            city=data.city,
            state=data.state,
            postal=data.postal,
            country=data.country,
            reason=data.reason,
            method=data.method,
            idem_key=idem_key,
        )
        db.add(request)
        try:
            await db.flush()
        except IntegrityError:
            # A concurrent create with the same key won the insert
            await db.rollback()
            replay = await ForwardingService._find_by_idem_key(db, idem_key, user_id, mail_id)
            if replay is None:
                raise
            return replay, False

        if not mail.is_official:
            db.add(ForwardingCharge(
                user_id=user_id,
                forwarding_request_id=request.id,
                amount_pence=settings.forwarding_charge_pence,
                description=f"Forwarding of mail item #{mail.id}"
            ))

        mail.forwarding_status = ForwardingStatus.REQUESTED.value

        await log_event(
            db=db,
            action=AuditAction.FORWARDING_REQUESTED,
            actor_id=user_id,
            actor_email=actor_email,
            target_type="forwarding_request",
            target_id=request.id,
            metadata={"mail_item_id": mail.id, "official": mail.is_official},
            commit=False
        )
        await db.commit()
        await db.refresh(request)

        logger.info("Forwarding request %s created for mail %s", request.id, mail.id)
        return request, True

    @staticmethod
    async def _find_by_idem_key(
        db: AsyncSession,
        idem_key: str,
        user_id: int,
        mail_item_id: int
    ) -> Optional[ForwardingRequest]:
        result = await db.execute(select(ForwardingRequest).where(ForwardingRequest.idem_key == idem_key))
        request = result.scalar_one_or_none()
        if request is None:
            return None
        if request.user_id != user_id or request.mail_item_id != mail_item_id:
            raise IdempotencyKeyConflictError()
        return request

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[ForwardingRequest], int]:
        base = select(ForwardingRequest).where(ForwardingRequest.user_id == user_id)
        total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
        result = await db.execute(
            base.order_by(desc(ForwardingRequest.created_at), desc(ForwardingRequest.id))
            .offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def get(db: AsyncSession, request_id: int) -> ForwardingRequest:
        result = await db.execute(select(ForwardingRequest).where(ForwardingRequest.id == request_id))
        request = result.scalar_one_or_none()
        if not request:
            raise ResourceNotFoundError("Forwarding request", request_id)
        return request

    @staticmethod
    async def admin_list(
        db: AsyncSession,
        status: Optional[str] = None,
        q: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[ForwardingRequest], int]:
        """
        Admin queue listing.

        Args:
            status: case-insensitive status name, "all" or None for every status
            q: free-text search over recipient, postcode, courier, tracking
               number, customer email and mail subject
        """
        stmt = (
            select(ForwardingRequest)
            .join(User, User.id == ForwardingRequest.user_id)
            .join(MailItem, MailItem.id == ForwardingRequest.mail_item_id)
        )

        status_filter = parse_status_filter(status)
        if status_filter:
            stmt = stmt.where(ForwardingRequest.status == status_filter)

        if q and q.strip():
            pattern = f"%{q.strip()}%"
            stmt = stmt.where(or_(
                ForwardingRequest.to_name.ilike(pattern),
                ForwardingRequest.postal.ilike(pattern),
                ForwardingRequest.courier.ilike(pattern),
                ForwardingRequest.tracking_number.ilike(pattern),
                User.email.ilike(pattern),
                MailItem.subject.ilike(pattern),
            ))

        total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
        result = await db.execute(
            stmt.order_by(desc(ForwardingRequest.created_at), desc(ForwardingRequest.id))
            .offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def apply_admin_action(
        db: AsyncSession,
        request_id: int,
        admin: User,
        body: AdminForwardingUpdate
    ) -> ForwardingRequest:
        """
        Move a request along the workflow.

        The UPDATE is conditioned on the status read here; if another admin
        changed it in between, no row matches and ConcurrentUpdateError is
        raised. Illegal (status, action) pairs never reach the database.

        Raises:
            ResourceNotFoundError: unknown request
            IllegalTransitionError: action not allowed from the current status
            ConcurrentUpdateError: status changed since it was read
        """
        request = await ForwardingService.get(db, request_id)
        expected = request.status
        new_status = next_status(expected, body.action)

        now = utcnow()
        values = {
            "status": new_status,
            "updated_at": now,
            TIMESTAMP_COLUMNS[new_status]: now,
        }
        if body.action == ForwardingAction.MARK_REVIEWED:
            values["reviewed_by"] = admin.id
        if new_status == ForwardingStatus.DISPATCHED:
            courier = (body.courier or "").strip()
            tracking_number = (body.tracking_number or "").strip()
            if courier:
                values["courier"] = courier
            if tracking_number:
                values["tracking_number"] = tracking_number
        if body.admin_notes is not None:
            values["admin_notes"] = body.admin_notes

        result = await db.execute(
            update(ForwardingRequest)
            .where(ForwardingRequest.id == request_id, ForwardingRequest.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise ConcurrentUpdateError("Forwarding request", expected.value)

        await db.execute(
            update(MailItem)
            .where(MailItem.id == request.mail_item_id)
            .values(forwarding_status=new_status.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        await log_event(
            db=db,
            action=AuditAction.for_forwarding_status(new_status.value),
            actor_id=admin.id,
            actor_email=admin.email,
            target_type="forwarding_request",
            target_id=request_id,
            metadata={
                "from": expected.value,
                "to": new_status.value,
                "action": body.action.value,
                "mail_item_id": request.mail_item_id,
            },
            commit=False
        )

        await NotificationService.notify_forwarding_update(
            db,
            user_id=request.user_id,
            request_id=request_id,
            status=new_status,
            courier=values.get("courier"),
            tracking_number=values.get("tracking_number"),
        )

        await db.commit()
        await db.refresh(request)

        logger.info(
            "Forwarding request %s moved %s -> %s by admin %s",
            request_id, expected.value, new_status.value, admin.id
        )

        if new_status == ForwardingStatus.DISPATCHED:
            owner = await db.get(User, request.user_id)
            if owner:
                await mailer.send_forwarding_dispatched(
                    owner.email, owner.first_name, request.courier, request.tracking_number
                )

        return request
