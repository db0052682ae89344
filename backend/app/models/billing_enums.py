"""
Billing enumerations.
"""

import enum


class InvoiceStatus(str, enum.Enum):
    """Invoice status enumeration."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    VOID = "void"


class ChargeStatus(str, enum.Enum):
    """One-off charge (e.g. forwarding postage) status."""
    PENDING = "pending"  # Collected with the next invoice
    BILLED = "billed"
    WAIVED = "waived"


class WebhookStatus(str, enum.Enum):
    """Processing outcome recorded for every provider event."""
    RECEIVED = "received"
    PROCESSED = "processed"
    UNMATCHED = "unmatched"  # No user could be resolved
    IGNORED = "ignored"
    FAILED = "failed"
