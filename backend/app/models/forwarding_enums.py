"""
Forwarding request enumerations.
"""

import enum


class ForwardingStatus(str, enum.Enum):
    """
    Forwarding request status enumeration.

    Status flow:
        REQUESTED → REVIEWED → PROCESSING → DISPATCHED → DELIVERED
        REQUESTED → PROCESSING (review skipped)
        REQUESTED | REVIEWED | PROCESSING → CANCELLED
    """
    REQUESTED = "Requested"
    REVIEWED = "Reviewed"
    PROCESSING = "Processing"
    DISPATCHED = "Dispatched"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class ForwardingAction(str, enum.Enum):
    """Admin actions accepted by the forwarding queue."""
    MARK_REVIEWED = "mark_reviewed"
    START_PROCESSING = "start_processing"
    MARK_DISPATCHED = "mark_dispatched"
    MARK_DELIVERED = "mark_delivered"
    CANCEL = "cancel"


# Requests in these states block a second request for the same letter
ACTIVE_FORWARDING_STATUSES = (
    ForwardingStatus.REQUESTED,
    ForwardingStatus.REVIEWED,
    ForwardingStatus.PROCESSING,
)
