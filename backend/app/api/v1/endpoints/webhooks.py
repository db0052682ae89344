"""
Inbound provider webhooks.

Each handler reads the raw body first: signatures are computed over the exact
bytes the provider sent. Webhook paths are exempt from CSRF.
"""

import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.exceptions import WebhookPayloadError, WebhookSignatureError
from backend.app.domain.billing.stripe_webhooks import StripeWebhookService
from backend.app.domain.billing.gocardless_webhooks import GoCardlessWebhookService
from backend.app.models.billing_enums import WebhookStatus
from backend.app.models.user import User
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.kyc import KycService
from backend.app.services.webhook_log import record_event, finish_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

# GoCardless and Postmark were registered with the providers on top-level paths
provider_router = APIRouter(tags=["Webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db)
):
    """
    Stripe billing events.

    401 on a missing or invalid signature, 200 for duplicates and unmatched
    customers, 500 when a handler fails so Stripe redelivers.
    """
    payload = await request.body()
    return await StripeWebhookService.process(db, payload, stripe_signature)


@router.post("/sumsub")
async def sumsub_webhook(
    request: Request,
    payload_digest: Optional[str] = Header(None, alias="X-Payload-Digest"),
    db: AsyncSession = Depends(get_db)
):
    """Sumsub applicant review results."""
    raw = await request.body()
    return await KycService.process_webhook(db, raw, payload_digest)


@provider_router.post("/webhooks-gc")
async def gocardless_webhook(
    request: Request,
    webhook_signature: Optional[str] = Header(None, alias="Webhook-Signature"),
    db: AsyncSession = Depends(get_db)
):
    """GoCardless payment and mandate events (batched)."""
    raw = await request.body()
    return await GoCardlessWebhookService.process(db, raw, webhook_signature)


@provider_router.post("/webhooks-postmark")
async def postmark_webhook(
    request: Request,
    postmark_token: Optional[str] = Header(None, alias="X-Postmark-Token"),
    db: AsyncSession = Depends(get_db)
):
    """
    Postmark delivery events.

    Every event is logged; bounces are also written to the audit trail
    against the account that owns the address.
    """
    if settings.postmark_webhook_token:
        if not postmark_token or not hmac.compare_digest(postmark_token, settings.postmark_webhook_token):
            raise WebhookSignatureError("postmark", "Invalid Postmark webhook token")

    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError:
        raise WebhookPayloadError("postmark")
    if not isinstance(payload, dict):
        raise WebhookPayloadError("postmark")

    record_type = payload.get("RecordType") or "Unknown"
    external_id = payload.get("ID") or payload.get("MessageID")
    log, duplicate = await record_event(
        db, "postmark", record_type,
        f"{record_type}:{external_id}" if external_id else None,
        payload
    )
    if duplicate:
        return {"ok": True, "duplicate": True}

    if record_type != "Bounce":
        await finish_event(db, log, WebhookStatus.IGNORED)
        return {"ok": True}

    email = (payload.get("Email") or payload.get("Recipient") or "").strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    await log_event(
        db=db,
        action=AuditAction.EMAIL_BOUNCED,
        actor_id=None,
        actor_email=email or None,
        target_type="user" if user else None,
        target_id=user.id if user else None,
        metadata={
            "bounce_type": payload.get("Type"),
            "message_id": payload.get("MessageID"),
            "description": payload.get("Description"),
        },
        commit=False
    )
    logger.warning("Postmark bounce for %s (%s)", email or "unknown address", payload.get("Type"))
    await finish_event(
        db, log,
        WebhookStatus.PROCESSED if user else WebhookStatus.UNMATCHED,
        user_id=user.id if user else None
    )
    return {"ok": True}
