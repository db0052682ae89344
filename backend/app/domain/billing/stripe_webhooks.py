"""
Stripe webhook processing.

Verifies the Stripe-Signature header, records the event for idempotency and
dispatches to one handler per event type.
"""

import json
import logging
from typing import Any, Dict, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import from_unix, utcnow
from backend.app.core.config import settings
from backend.app.core.exceptions import WebhookPayloadError, WebhookSignatureError
from backend.app.domain.billing.billing_service import BillingService, map_stripe_status
from backend.app.models.billing import Subscription
from backend.app.models.billing_enums import WebhookStatus
from backend.app.models.enums import PlanStatus
from backend.app.models.notification import NotificationType
from backend.app.models.user import User
from backend.app.services import mailer
from backend.app.services.notification_service import NotificationService
from backend.app.services.webhook_log import finish_event, record_event

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


def verify_stripe_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """
    Check the signature of a raw Stripe payload and return the parsed event.

    Raises:
        WebhookSignatureError: secret not configured, header missing or
            signature invalid
        WebhookPayloadError: body is not JSON
    """
    secret = settings.stripe_webhook_secret
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured, rejecting webhook")
        raise WebhookSignatureError(PROVIDER, "Webhook secret not configured")
    if not sig_header:
        raise WebhookSignatureError(PROVIDER, "Missing Stripe-Signature header")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise WebhookPayloadError(PROVIDER)

    try:
        stripe.WebhookSignature.verify_header(body, sig_header, secret, settings.stripe_webhook_tolerance)
    except (stripe.SignatureVerificationError, ValueError) as exc:
        logger.warning("Stripe signature verification failed: %s", exc)
        raise WebhookSignatureError(PROVIDER)

    try:
        event = json.loads(body)
    except ValueError:
        raise WebhookPayloadError(PROVIDER)
    if not isinstance(event, dict):
        raise WebhookPayloadError(PROVIDER)
    return event


class StripeWebhookService:

    @staticmethod
    async def resolve_user(db: AsyncSession, obj: Dict[str, Any]) -> Optional[User]:
        """
        Find the local user an event object belongs to.

        Order: metadata.userId, the subscription id, the customer id.
        """
        metadata = obj.get("metadata") or {}
        raw_user_id = metadata.get("userId") or metadata.get("user_id") or obj.get("client_reference_id")
        if raw_user_id:
            try:
                user = await db.get(User, int(raw_user_id))
            except (TypeError, ValueError):
                user = None
            if user:
                return user

        subscription_id = obj.get("subscription")
        if obj.get("object") == "subscription":
            subscription_id = obj.get("id")
        if isinstance(subscription_id, str):
            result = await db.execute(
                select(User).join(Subscription, Subscription.user_id == User.id)
                .where(Subscription.stripe_subscription_id == subscription_id)
            )
            user = result.scalar_one_or_none()
            if user:
                return user

        customer_id = obj.get("customer")
        if isinstance(customer_id, str):
            result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
            return result.scalar_one_or_none()

        return None

    @staticmethod
    def _link_customer(user: User, obj: Dict[str, Any]) -> None:
        customer_id = obj.get("customer")
        if isinstance(customer_id, str) and not user.stripe_customer_id:
            user.stripe_customer_id = customer_id

    @staticmethod
    async def handle_checkout_completed(db: AsyncSession, user: User, obj: Dict[str, Any]) -> None:
        if obj.get("mode") != "subscription":
            return
        StripeWebhookService._link_customer(user, obj)
        subscription_id = obj.get("subscription")
        if isinstance(subscription_id, str):
            await BillingService.upsert_subscription(
                db, user, user.subscription_status or PlanStatus.PENDING, stripe_subscription_id=subscription_id
            )

    @staticmethod
    async def handle_subscription_changed(db: AsyncSession, user: User, obj: Dict[str, Any], deleted: bool) -> None:
        status = PlanStatus.CANCELLED if deleted else map_stripe_status(obj.get("status"))
        StripeWebhookService._link_customer(user, obj)
        await BillingService.upsert_subscription(
            db, user, status,
            stripe_subscription_id=obj.get("id"),
            current_period_end=from_unix(obj.get("current_period_end")),
        )
        await BillingService.set_plan_status(
            db, user, status,
            reason="subscription_deleted" if deleted else "subscription_updated",
            meta={"stripe_subscription_id": obj.get("id"), "stripe_status": obj.get("status")}
        )

    @staticmethod
    async def handle_invoice_paid(db: AsyncSession, user: User, obj: Dict[str, Any]) -> Dict[str, Any]:
        StripeWebhookService._link_customer(user, obj)
        transitions = obj.get("status_transitions") or {}

        invoice = await BillingService.record_paid_invoice(
            db, user,
            amount_pence=int(obj.get("amount_paid") or obj.get("total") or 0),
            currency=obj.get("currency") or "GBP",
            period_start=from_unix(obj.get("period_start")),
            period_end=from_unix(obj.get("period_end")),
            paid_at=from_unix(transitions.get("paid_at")) or utcnow(),
            stripe_invoice_id=obj.get("id"),
            stripe_payment_intent_id=obj.get("payment_intent") if isinstance(obj.get("payment_intent"), str) else None,
        )

        BillingService.clear_payment_failure(user)
        await BillingService.set_plan_status(
            db, user, PlanStatus.ACTIVE, reason="invoice_paid",
            meta={"stripe_invoice_id": obj.get("id")}
        )
        subscription_id = obj.get("subscription")
        await BillingService.upsert_subscription(
            db, user, PlanStatus.ACTIVE,
            stripe_subscription_id=subscription_id if isinstance(subscription_id, str) else None
        )
        await NotificationService.create_notification(
            db, user.id,
            title="Payment received",
            message=f"Invoice {invoice.invoice_number} has been paid",
            type=NotificationType.BILLING_UPDATE,
            metadata={"invoice_id": invoice.id}
        )
        return {"invoice_number": invoice.invoice_number, "amount_pence": invoice.amount_pence}

    @staticmethod
    async def handle_payment_failed(db: AsyncSession, user: User, obj: Dict[str, Any]) -> None:
        await BillingService.mark_payment_failed(
            db, user, reason="invoice_payment_failed",
            meta={"stripe_invoice_id": obj.get("id"), "attempt_count": obj.get("attempt_count")}
        )
        await NotificationService.create_notification(
            db, user.id,
            title="Payment failed",
            message="We couldn't take your subscription payment. Please update your payment method.",
            type=NotificationType.BILLING_UPDATE,
        )

    @staticmethod
    async def process(db: AsyncSession, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """
        Verify, record and apply one Stripe event.

        Returns:
            Response body for the webhook endpoint. Handler errors mark the
            event failed and propagate (the endpoint answers 500 so Stripe
            retries).
        """
        event = verify_stripe_event(payload, sig_header)
        event_type = event.get("type")
        obj = ((event.get("data") or {}).get("object")) or {}

        log, duplicate = await record_event(db, PROVIDER, event_type, event.get("id"), event)
        if duplicate:
            return {"received": True, "duplicate": True}

        handled_types = (
            "checkout.session.completed",
            "customer.subscription.created",
            "customer.subscription.updated",
            "customer.subscription.deleted",
            "invoice.paid",
            "invoice.payment_succeeded",
            "invoice.payment_failed",
        )
        if event_type not in handled_types:
            await finish_event(db, log, WebhookStatus.IGNORED)
            return {"received": True, "status": WebhookStatus.IGNORED.value}

        try:
            user = await StripeWebhookService.resolve_user(db, obj)
            if user is None:
                logger.warning("Stripe event %s (%s) matched no user", event.get("id"), event_type)
                await finish_event(db, log, WebhookStatus.UNMATCHED)
                return {"received": True, "status": WebhookStatus.UNMATCHED.value}

            email_job = None
            if event_type == "checkout.session.completed":
                await StripeWebhookService.handle_checkout_completed(db, user, obj)
            elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
                await StripeWebhookService.handle_subscription_changed(db, user, obj, deleted=False)
            elif event_type == "customer.subscription.deleted":
                await StripeWebhookService.handle_subscription_changed(db, user, obj, deleted=True)
            elif event_type in ("invoice.paid", "invoice.payment_succeeded"):
                paid = await StripeWebhookService.handle_invoice_paid(db, user, obj)
                email_job = (mailer.send_invoice_paid, (
                    user.email, user.first_name, paid["invoice_number"], paid["amount_pence"]
                ))
            elif event_type == "invoice.payment_failed":
                await StripeWebhookService.handle_payment_failed(db, user, obj)
                email_job = (mailer.send_payment_failed, (user.email, user.first_name))

            await finish_event(db, log, WebhookStatus.PROCESSED, user_id=user.id)
        except Exception as exc:
            await db.rollback()
            logger.exception("Stripe event %s (%s) failed", event.get("id"), event_type)
            await finish_event(db, log, WebhookStatus.FAILED, error=str(exc))
            raise

        if email_job is not None:
            send, args = email_job
            await send(*args)
        return {"received": True, "status": WebhookStatus.PROCESSED.value}
