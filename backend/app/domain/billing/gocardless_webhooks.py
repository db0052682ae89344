"""
GoCardless webhook processing.

A delivery carries a batch: {"events": [{id, resource_type, action, links, details}, ...]}.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import WebhookPayloadError, WebhookSignatureError
from backend.app.core.signatures import verify_hmac_sha256
from backend.app.domain.billing.billing_service import BillingService
from backend.app.models.billing_enums import WebhookStatus
from backend.app.models.enums import PlanStatus
from backend.app.models.user import User
from backend.app.services import mailer
from backend.app.services.webhook_log import finish_event, record_event

logger = logging.getLogger(__name__)

PROVIDER = "gocardless"
DEFAULT_PAYMENT_PENCE = 999


def parse_gocardless_events(raw: bytes, signature: Optional[str]) -> List[Dict[str, Any]]:
    """
    Verify the Webhook-Signature header and return the event list.

    Without a configured secret, verification is skipped outside production
    only.
    """
    secret = settings.gc_webhook_secret
    if not secret and not settings.is_production:
        logger.warning("GC_WEBHOOK_SECRET not set, skipping GoCardless signature check")
    elif not verify_hmac_sha256(raw, signature, secret):
        raise WebhookSignatureError(PROVIDER)

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise WebhookPayloadError(PROVIDER)

    events = payload.get("events") if isinstance(payload, dict) else None
    return [ev for ev in events if isinstance(ev, dict)] if isinstance(events, list) else []


class GoCardlessWebhookService:

    @staticmethod
    async def _user_for_customer(db: AsyncSession, customer_id: Optional[str]) -> Optional[User]:
        if not customer_id:
            return None
        result = await db.execute(select(User).where(User.gocardless_customer_id == customer_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def handle_payment_confirmed(db: AsyncSession, event: Dict[str, Any]) -> Optional[User]:
        links = event.get("links") or {}
        payment_id = links.get("payment")
        user = await GoCardlessWebhookService._user_for_customer(db, links.get("customer"))
        if not payment_id or user is None:
            return None

        details = event.get("details") or {}
        await BillingService.record_paid_invoice(
            db, user,
            amount_pence=int(details.get("amount") or DEFAULT_PAYMENT_PENCE),
            currency=details.get("currency") or "GBP",
            gocardless_payment_id=payment_id,
        )
        BillingService.clear_payment_failure(user)
        await BillingService.set_plan_status(
            db, user, PlanStatus.ACTIVE, reason="gocardless_payment_confirmed",
            meta={"gocardless_payment_id": payment_id}
        )
        return user

    @staticmethod
    async def handle_mandate(db: AsyncSession, event: Dict[str, Any]) -> Optional[User]:
        links = event.get("links") or {}
        mandate_id = links.get("mandate")
        user = await GoCardlessWebhookService._user_for_customer(db, links.get("customer"))
        if not mandate_id or user is None:
            return None
        if event.get("action") in ("cancelled", "failed", "expired"):
            if user.gocardless_mandate_id == mandate_id:
                user.gocardless_mandate_id = None
        else:
            user.gocardless_mandate_id = mandate_id
        return user

    @staticmethod
    async def process(db: AsyncSession, raw: bytes, signature: Optional[str]) -> Dict[str, Any]:
        events = parse_gocardless_events(raw, signature)

        for event in events:
            event_type = f"{event.get('resource_type')}.{event.get('action')}"
            log, duplicate = await record_event(db, PROVIDER, event_type, event.get("id"), event)
            if duplicate:
                continue

            try:
                user = None
                if event.get("resource_type") == "payments" and event.get("action") == "confirmed":
                    user = await GoCardlessWebhookService.handle_payment_confirmed(db, event)
                elif event.get("resource_type") == "mandates":
                    user = await GoCardlessWebhookService.handle_mandate(db, event)
                else:
                    await finish_event(db, log, WebhookStatus.IGNORED)
                    continue

                if user is None:
                    await finish_event(db, log, WebhookStatus.UNMATCHED)
                    continue
                await finish_event(db, log, WebhookStatus.PROCESSED, user_id=user.id)
            except Exception as exc:
                await db.rollback()
                logger.exception("GoCardless event %s failed", event.get("id"))
                await finish_event(db, log, WebhookStatus.FAILED, error=str(exc))
                raise

            if event_type == "payments.confirmed":
                invoice_note = (event.get("links") or {}).get("payment")
                await mailer.send_email(
                    user.email,
                    "Payment received",
                    f"Hi {user.first_name or 'there'},\n\nYour Direct Debit payment {invoice_note} has been confirmed.\n",
                    tag="invoice-paid"
                )

        return {"ok": True, "received": len(events)}
