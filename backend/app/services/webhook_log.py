"""
Webhook log service.

Records inbound provider events and detects redeliveries by
(provider, external_event_id).
"""

import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.models.billing_enums import WebhookStatus
from backend.app.models.webhook_log import WebhookLog

logger = logging.getLogger(__name__)

# Events in these states are not processed again
_FINAL_STATES = (WebhookStatus.PROCESSED, WebhookStatus.UNMATCHED, WebhookStatus.IGNORED)


async def record_event(
    db: AsyncSession,
    provider: str,
    event_type: Optional[str],
    external_event_id: Optional[str],
    payload: Optional[Dict[str, Any]]
) -> Tuple[WebhookLog, bool]:
    """
    Store an inbound event before processing it.

    Returns:
        (log, duplicate) where duplicate is True when the same event was
        already handled. Failed events are handed back for another attempt.
    """
    if external_event_id:
        result = await db.execute(
            select(WebhookLog).where(
                WebhookLog.provider == provider,
                WebhookLog.external_event_id == external_event_id
            )
        )
        existing = result.scalar_one_or_none()
        if existing:
            if existing.status in _FINAL_STATES:
                logger.info("Duplicate %s event %s ignored", provider, external_event_id)
                return existing, True
            existing.status = WebhookStatus.RECEIVED
            existing.error = None
            await db.commit()
            return existing, False

    log = WebhookLog(
        provider=provider,
        event_type=event_type,
        external_event_id=external_event_id,
        status=WebhookStatus.RECEIVED,
        payload=payload,
    )
    db.add(log)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent delivery of the same event won the insert
        await db.rollback()
        result = await db.execute(
            select(WebhookLog).where(
                WebhookLog.provider == provider,
                WebhookLog.external_event_id == external_event_id
            )
        )
        return result.scalar_one(), True

    await db.refresh(log)
    return log, False


async def finish_event(
    db: AsyncSession,
    log: WebhookLog,
    status: WebhookStatus,
    user_id: Optional[int] = None,
    error: Optional[str] = None
) -> WebhookLog:
    """Set the outcome of an event. Commits."""
    log.status = status
    log.processed_at = utcnow()
    if user_id is not None:
        log.user_id = user_id
    if error is not None:
        log.error = error[:2000]
    await db.commit()
    return log
