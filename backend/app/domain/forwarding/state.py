"""
Forwarding workflow transitions.

The workflow is a closed lookup table from (current status, action) to the
next status. Anything not listed is an illegal transition.
"""

from typing import Dict, Tuple

from backend.app.core.exceptions import IllegalTransitionError
from backend.app.models.forwarding_enums import ForwardingAction, ForwardingStatus

S = ForwardingStatus
A = ForwardingAction

TRANSITIONS: Dict[Tuple[ForwardingStatus, ForwardingAction], ForwardingStatus] = {
    (S.REQUESTED, A.MARK_REVIEWED): S.REVIEWED,
    (S.REQUESTED, A.START_PROCESSING): S.PROCESSING,
    (S.REQUESTED, A.CANCEL): S.CANCELLED,
    (S.REVIEWED, A.START_PROCESSING): S.PROCESSING,
    (S.REVIEWED, A.CANCEL): S.CANCELLED,
    (S.PROCESSING, A.MARK_DISPATCHED): S.DISPATCHED,
    (S.PROCESSING, A.CANCEL): S.CANCELLED,
    (S.DISPATCHED, A.MARK_DELIVERED): S.DELIVERED,
}

# Column stamped when a request enters each status
TIMESTAMP_COLUMNS: Dict[ForwardingStatus, str] = {
    S.REVIEWED: "reviewed_at",
    S.PROCESSING: "processing_at",
    S.DISPATCHED: "dispatched_at",
    S.DELIVERED: "delivered_at",
    S.CANCELLED: "cancelled_at",
}


def next_status(current: ForwardingStatus, action: ForwardingAction) -> ForwardingStatus:
    """
    Resolve the status an action moves a request to.

    Raises:
        IllegalTransitionError: the pair is not in TRANSITIONS
    """
    try:
        return TRANSITIONS[(ForwardingStatus(current), ForwardingAction(action))]
    except (KeyError, ValueError):
        raise IllegalTransitionError(
            getattr(current, "value", str(current)),
            getattr(action, "value", str(action)),
        )


def allowed_actions(current: ForwardingStatus) -> list:
    """Actions an admin may apply to a request in `current`, in table order."""
    return [action for (status, action) in TRANSITIONS if status == current]


def is_terminal(current: ForwardingStatus) -> bool:
    return not allowed_actions(current)
