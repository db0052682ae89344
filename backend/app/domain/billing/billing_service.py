"""
Billing Service (Domain Logic).

Plan status changes, invoice numbering and invoice recording shared by the
Stripe and GoCardless webhook handlers. Methods add to the caller's
transaction; the caller commits.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.models.billing import Invoice, InvoiceSequence, PlanStatusEvent, Subscription
from backend.app.models.billing_enums import InvoiceStatus
from backend.app.models.enums import PlanStatus
from backend.app.models.user import User

logger = logging.getLogger(__name__)

PAYMENT_GRACE_DAYS = 7

# Stripe subscription status -> local plan status
STRIPE_STATUS_MAP = {
    "active": PlanStatus.ACTIVE,
    "trialing": PlanStatus.PENDING,
    "past_due": PlanStatus.PAST_DUE,
    "unpaid": PlanStatus.PAST_DUE,
    "canceled": PlanStatus.CANCELLED,
    "cancelled": PlanStatus.CANCELLED,
}


def map_stripe_status(raw: Optional[str]) -> PlanStatus:
    return STRIPE_STATUS_MAP.get((raw or "").lower(), PlanStatus.PENDING)


class BillingService:

    @staticmethod
    async def next_invoice_number(db: AsyncSession, issued_at: Optional[datetime] = None) -> str:
        """
        Allocate the next VAH-YYYY-NNNNNN number.

        The year row is locked for the rest of the transaction on PostgreSQL.
        """
        year = (issued_at or utcnow()).year
        result = await db.execute(
            select(InvoiceSequence).where(InvoiceSequence.year == year).with_for_update()
        )
        seq = result.scalar_one_or_none()
        if seq is None:
            seq = InvoiceSequence(year=year, sequence=0)
            db.add(seq)
        seq.sequence += 1
        await db.flush()
        return f"VAH-{year}-{seq.sequence:06d}"

    @staticmethod
    async def set_plan_status(
        db: AsyncSession,
        user: User,
        new_status: PlanStatus,
        reason: str,
        meta: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Update user.plan_status and append a PlanStatusEvent.

        Returns:
            True if the status actually changed
        """
        old_status = user.plan_status
        user.subscription_status = new_status
        if old_status == new_status:
            return False

        user.plan_status = new_status
        if new_status == PlanStatus.ACTIVE and user.plan_start_date is None:
            user.plan_start_date = utcnow()

        db.add(PlanStatusEvent(
            user_id=user.id,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            reason=reason,
            meta_data=meta,
        ))
        logger.info(
            "User %s plan %s -> %s (%s)",
            user.id, old_status.value if old_status else None, new_status.value, reason
        )
        return True

    @staticmethod
    async def upsert_subscription(
        db: AsyncSession,
        user: User,
        status: PlanStatus,
        stripe_subscription_id: Optional[str] = None,
        current_period_end: Optional[datetime] = None
    ) -> Subscription:
        result = await db.execute(select(Subscription).where(Subscription.user_id == user.id))
        sub = result.scalar_one_or_none()
        if sub is None:
            sub = Subscription(user_id=user.id)
            db.add(sub)
        sub.status = status
        if stripe_subscription_id:
            sub.stripe_subscription_id = stripe_subscription_id
        if current_period_end:
            sub.current_period_end = current_period_end
        await db.flush()
        return sub

    @staticmethod
    def clear_payment_failure(user: User) -> None:
        user.payment_failed_at = None
        user.payment_retry_count = 0
        user.payment_grace_until = None

    @staticmethod
    async def mark_payment_failed(db: AsyncSession, user: User, reason: str, meta: Optional[Dict[str, Any]] = None):
        now = utcnow()
        user.payment_failed_at = now
        user.payment_retry_count = (user.payment_retry_count or 0) + 1
        user.payment_grace_until = now + timedelta(days=PAYMENT_GRACE_DAYS)
        await BillingService.set_plan_status(db, user, PlanStatus.PAST_DUE, reason, meta)

    @staticmethod
    async def record_paid_invoice(
        db: AsyncSession,
        user: User,
        amount_pence: int,
        currency: str = "GBP",
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        paid_at: Optional[datetime] = None,
        stripe_invoice_id: Optional[str] = None,
        stripe_payment_intent_id: Optional[str] = None,
        gocardless_payment_id: Optional[str] = None
    ) -> Invoice:
        """
        Create or update the invoice for a provider payment.

        The invoice is looked up by its provider id first, so redelivered
        events update the existing row and keep its number.
        """
        invoice = None
        if stripe_invoice_id:
            result = await db.execute(select(Invoice).where(Invoice.stripe_invoice_id == stripe_invoice_id))
            invoice = result.scalar_one_or_none()
        elif gocardless_payment_id:
            result = await db.execute(select(Invoice).where(Invoice.gocardless_payment_id == gocardless_payment_id))
            invoice = result.scalar_one_or_none()

        paid_at = paid_at or utcnow()
        if invoice is None:
            invoice = Invoice(
                user_id=user.id,
                stripe_invoice_id=stripe_invoice_id,
                gocardless_payment_id=gocardless_payment_id,
                invoice_number=await BillingService.next_invoice_number(db, paid_at),
            )
            db.add(invoice)

        invoice.amount_pence = amount_pence
        invoice.currency = (currency or "GBP").upper()
        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = paid_at
        invoice.period_start = period_start or invoice.period_start or paid_at
        invoice.period_end = period_end or invoice.period_end or (paid_at + timedelta(days=30))
        if stripe_payment_intent_id:
            invoice.stripe_payment_intent_id = stripe_payment_intent_id

        await db.flush()
        return invoice

    @staticmethod
    async def has_active_plan(db: AsyncSession, user: User) -> bool:
        """
        Entitlement check used by the registered office address.

        Active when the user's plan is active or their subscription row is.
        """
        if user.plan_status == PlanStatus.ACTIVE:
            return True
        result = await db.execute(
            select(Subscription.id).where(
                Subscription.user_id == user.id,
                Subscription.status == PlanStatus.ACTIVE
            )
        )
        return result.scalar_one_or_none() is not None
