"""
Billing database models.

Subscriptions, invoices, per-year invoice numbering, one-off forwarding
charges and the plan status history.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import PlanStatus
from backend.app.models.billing_enums import InvoiceStatus, ChargeStatus


class Subscription(Base):
    """One subscription row per user, kept in sync with Stripe."""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    status = Column(Enum(PlanStatus), default=PlanStatus.PENDING, nullable=False)
    stripe_subscription_id = Column(String(100), unique=True, index=True, nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Subscription(user={self.user_id}, status='{self.status.value}')>"


class Invoice(Base):
    """
    Invoice model.

    Provider ids are unique so that replayed webhooks update the same row.
    """
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invoice_number = Column(String(32), unique=True, nullable=True)

    amount_pence = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="GBP")
    status = Column(Enum(InvoiceStatus), default=InvoiceStatus.PENDING, nullable=False, index=True)
    period_start = Column(DateTime(timezone=True), nullable=True)
    period_end = Column(DateTime(timezone=True), nullable=True)

    stripe_invoice_id = Column(String(100), unique=True, nullable=True)
    stripe_payment_intent_id = Column(String(100), nullable=True)
    gocardless_payment_id = Column(String(100), unique=True, nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status='{self.status.value}')>"


class InvoiceSequence(Base):
    """Per-year counter behind VAH-YYYY-NNNNNN invoice numbers."""
    __tablename__ = "invoice_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    sequence = Column(Integer, nullable=False, default=0)


class ForwardingCharge(Base):
    """Postage charge for forwarding non-official mail."""
    __tablename__ = "forwarding_charges"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    forwarding_request_id = Column(Integer, ForeignKey("forwarding_requests.id"), nullable=False, unique=True)
    amount_pence = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="GBP")
    status = Column(Enum(ChargeStatus), default=ChargeStatus.PENDING, nullable=False)
    description = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PlanStatusEvent(Base):
    """Append-only history of plan status changes."""
    __tablename__ = "plan_status_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    old_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=False)
    reason = Column(String(100), nullable=False)
    meta_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
