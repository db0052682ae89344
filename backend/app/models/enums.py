"""
Account enumerations.

Defines roles, KYC states and plan states for customer accounts.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        CUSTOMER: Mailbox subscriber (default role)
        ADMIN: Mailroom staff with back-office access
    """
    CUSTOMER = "customer"
    ADMIN = "admin"


class KycStatus(str, enum.Enum):
    """
    Identity verification state, driven by Sumsub webhooks.

    Status flow:
        NOT_STARTED → PENDING → APPROVED | REJECTED
        REJECTED → PENDING (applicant resubmits)
    """
    NOT_STARTED = "not_started"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PlanStatus(str, enum.Enum):
    """Subscription state shared by users and subscriptions."""
    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
