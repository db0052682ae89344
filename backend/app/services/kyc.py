"""
KYC service.

Applies Sumsub review results to users. Sumsub signs the raw body with
hex(HMAC-SHA256(secret, body)) in the X-Payload-Digest header.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.config import settings
from backend.app.core.exceptions import WebhookPayloadError, WebhookSignatureError
from backend.app.core.signatures import verify_hmac_sha256
from backend.app.models.billing_enums import WebhookStatus
from backend.app.models.enums import KycStatus
from backend.app.models.notification import NotificationType
from backend.app.models.user import User
from backend.app.services import mailer
from backend.app.services.audit import AuditAction, log_event
from backend.app.services.notification_service import NotificationService
from backend.app.services.webhook_log import finish_event, record_event

logger = logging.getLogger(__name__)

PROVIDER = "sumsub"


def map_review_to_kyc_status(review_answer: Optional[str], review_status: Optional[str]) -> KycStatus:
    """
    GREEN, or a completed review without an answer, approves; RED or a
    rejected review rejects; anything else is still pending.
    """
    answer = (review_answer or "").upper()
    status = (review_status or "").lower()
    if answer == "RED" or status == "rejected":
        return KycStatus.REJECTED
    if answer == "GREEN" or (status == "completed" and not answer):
        return KycStatus.APPROVED
    return KycStatus.PENDING


def parse_sumsub_payload(raw: bytes, digest: Optional[str]) -> Dict[str, Any]:
    if not verify_hmac_sha256(raw, digest, settings.sumsub_webhook_secret):
        raise WebhookSignatureError(PROVIDER)
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise WebhookPayloadError(PROVIDER)
    if not isinstance(payload, dict):
        raise WebhookPayloadError(PROVIDER)
    return payload


class KycService:

    @staticmethod
    async def resolve_user(db: AsyncSession, external_user_id: Any, applicant_id: Optional[str]) -> Optional[User]:
        """Look up by externalUserId (our user id), then by Sumsub applicant id."""
        if external_user_id is not None:
            try:
                user = await db.get(User, int(external_user_id))
            except (TypeError, ValueError):
                user = None
            if user:
                return user
        if applicant_id:
            result = await db.execute(select(User).where(User.sumsub_applicant_id == applicant_id))
            return result.scalar_one_or_none()
        return None

    @staticmethod
    async def apply_review(
        db: AsyncSession,
        user: User,
        new_status: KycStatus,
        applicant_id: Optional[str] = None,
        review_status: Optional[str] = None,
        review_answer: Optional[str] = None,
        reject_reason: Optional[str] = None
    ) -> bool:
        """
        Update the user's KYC fields. Caller commits.

        Returns:
            True if kyc_status changed
        """
        previous = user.kyc_status
        if applicant_id and not user.sumsub_applicant_id:
            user.sumsub_applicant_id = applicant_id
        user.sumsub_review_status = review_status
        user.sumsub_review_answer = review_answer
        user.kyc_status = new_status

        if new_status == KycStatus.APPROVED:
            if previous != KycStatus.APPROVED:
                user.kyc_approved_at = utcnow()
            user.kyc_rejection_reason = None
        elif new_status == KycStatus.REJECTED:
            user.kyc_rejection_reason = reject_reason

        if previous == new_status:
            return False

        await log_event(
            db=db,
            action=AuditAction.KYC_STATUS_CHANGED,
            target_type="user",
            target_id=user.id,
            metadata={"from": previous.value if previous else None, "to": new_status.value, "source": PROVIDER},
            commit=False
        )
        if new_status in (KycStatus.APPROVED, KycStatus.REJECTED):
            approved = new_status == KycStatus.APPROVED
            await NotificationService.create_notification(
                db, user.id,
                title="Identity verified" if approved else "Identity verification unsuccessful",
                message=(
                    "Your registered office address is now available."
                    if approved else (reject_reason or "Please check your documents and try again.")
                ),
                type=NotificationType.KYC_UPDATE,
            )
        return True

    @staticmethod
    async def process_webhook(db: AsyncSession, raw: bytes, digest: Optional[str]) -> Dict[str, Any]:
        payload = parse_sumsub_payload(raw, digest)

        review = payload.get("reviewResult") or {}
        applicant_id = payload.get("applicantId") or (payload.get("applicant") or {}).get("id")
        review_status = payload.get("reviewStatus") or payload.get("eventType")
        review_answer = review.get("reviewAnswer") or review.get("answer")
        reject_reason = review.get("moderationComment") or review.get("clientComment") or review.get("rejectReason")
        external_id = payload.get("externalUserId") or (payload.get("metadata") or {}).get("externalUserId")

        event_id = payload.get("correlationId")
        if event_id:
            event_id = f"{event_id}:{payload.get('type') or review_status}"
        log, duplicate = await record_event(db, PROVIDER, payload.get("type"), event_id, payload)
        if duplicate:
            return {"ok": True, "duplicate": True}

        user = await KycService.resolve_user(db, external_id, applicant_id)
        if user is None:
            logger.warning("Sumsub webhook matched no user (applicant=%s, external=%s)", applicant_id, external_id)
            await finish_event(db, log, WebhookStatus.IGNORED)
            return {"ok": True, "ignored": True}

        new_status = map_review_to_kyc_status(review_answer, review_status)
        user_id = user.id
        try:
            changed = await KycService.apply_review(
                db, user, new_status,
                applicant_id=applicant_id,
                review_status=review_status,
                review_answer=review_answer,
                reject_reason=reject_reason,
            )
            await finish_event(db, log, WebhookStatus.PROCESSED, user_id=user.id)
        except Exception as exc:
            await db.rollback()
            logger.exception("Sumsub webhook for user %s failed", user_id)
            await finish_event(db, log, WebhookStatus.FAILED, error=str(exc))
            raise

        logger.info("User %s KYC status %s", user_id, new_status.value)
        if changed and new_status == KycStatus.APPROVED:
            await mailer.send_kyc_approved(user.email, user.first_name)
        elif changed and new_status == KycStatus.REJECTED:
            await mailer.send_kyc_rejected(user.email, user.first_name, reject_reason)

        return {"ok": True, "kyc_status": new_status.value}
