"""
Transactional email via the Postmark HTTP API.

Email is a best-effort side effect: failures are logged and reported as
False, never raised into the request that triggered them.
"""

import logging
from typing import Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.reliability import CircuitOpenError, mailer_circuit_breaker

logger = logging.getLogger(__name__)


async def _post_to_postmark(message: dict) -> None:
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.post(
            settings.postmark_api_url,
            json=message,
            headers={
                "Accept": "application/json",
                "X-Postmark-Server-Token": settings.postmark_token,
            },
        )
        response.raise_for_status()


async def send_email(to: str, subject: str, text_body: str, tag: Optional[str] = None) -> bool:
    if not settings.postmark_token:
        logger.info("Postmark disabled, not sending '%s' to %s", subject, to)
        return False

    message = {
        "From": settings.postmark_from,
        "To": to,
        "Subject": subject,
        "TextBody": text_body,
        "MessageStream": "outbound",
    }
    if tag:
        message["Tag"] = tag

    try:
        await mailer_circuit_breaker.call(_post_to_postmark, message)
    except (httpx.HTTPError, CircuitOpenError) as exc:
        logger.error("Failed to send '%s' to %s: %s", subject, to, exc)
        return False
    return True


def _greeting(first_name: Optional[str]) -> str:
    return f"Hi {first_name or 'there'},"


async def send_invoice_paid(to: str, first_name: Optional[str], invoice_number: str, amount_pence: int) -> bool:
    body = (
        f"{_greeting(first_name)}\n\n"
        f"Thanks for your payment of £{amount_pence / 100:.2f}. "
        f"Invoice {invoice_number} is available in your dashboard:\n"
        f"{settings.app_url}/billing\n"
    )
    return await send_email(to, f"Payment received: {invoice_number}", body, tag="invoice-paid")


async def send_payment_failed(to: str, first_name: Optional[str]) -> bool:
    body = (
        f"{_greeting(first_name)}\n\n"
        "We couldn't take your latest subscription payment. Please update your "
        f"payment details within 7 days to keep your address active:\n{settings.app_url}/billing\n"
    )
    return await send_email(to, "Payment failed", body, tag="payment-failed")


async def send_kyc_approved(to: str, first_name: Optional[str]) -> bool:
    body = (
        f"{_greeting(first_name)}\n\n"
        "Your identity verification has been approved. Your registered office "
        f"address is now available in your dashboard:\n{settings.app_url}/account\n"
    )
    return await send_email(to, "Identity verification approved", body, tag="kyc-approved")


async def send_kyc_rejected(to: str, first_name: Optional[str], reason: Optional[str]) -> bool:
    body = (
        f"{_greeting(first_name)}\n\n"
        "Unfortunately we could not verify your identity"
        f"{f': {reason}' if reason else '.'}\n"
        f"You can retry from your dashboard: {settings.app_url}/account\n"
    )
    return await send_email(to, "Identity verification unsuccessful", body, tag="kyc-rejected")


async def send_forwarding_dispatched(
    to: str,
    first_name: Optional[str],
    courier: Optional[str],
    tracking_number: Optional[str]
) -> bool:
    lines = [_greeting(first_name), "", "Your mail is on its way."]
    if courier:
        lines.append(f"Courier: {courier}")
    if tracking_number:
        lines.append(f"Tracking number: {tracking_number}")
    return await send_email(to, "Your mail has been dispatched", "\n".join(lines) + "\n", tag="forwarding-dispatched")
