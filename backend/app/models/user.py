"""
User database model.

A user is a mailbox customer (or mailroom admin) together with the KYC and
billing state that gate access to the registered office address.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import UserRole, KycStatus, PlanStatus


class User(Base):
    """User model for authentication, identity verification and billing."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    company_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)

    # KYC (Sumsub)
    kyc_status = Column(Enum(KycStatus), default=KycStatus.NOT_STARTED, nullable=False, index=True)
    kyc_approved_at = Column(DateTime(timezone=True), nullable=True)
    kyc_rejection_reason = Column(Text, nullable=True)
    sumsub_applicant_id = Column(String(100), unique=True, index=True, nullable=True)
    sumsub_review_status = Column(String(50), nullable=True)
    sumsub_review_answer = Column(String(20), nullable=True)

    # Billing
    plan_status = Column(Enum(PlanStatus), default=PlanStatus.PENDING, nullable=False, index=True)
    subscription_status = Column(Enum(PlanStatus), default=PlanStatus.PENDING, nullable=False)
    plan_start_date = Column(DateTime(timezone=True), nullable=True)
    stripe_customer_id = Column(String(100), unique=True, index=True, nullable=True)
    gocardless_customer_id = Column(String(100), unique=True, index=True, nullable=True)
    gocardless_mandate_id = Column(String(100), nullable=True)
    payment_failed_at = Column(DateTime(timezone=True), nullable=True)
    payment_retry_count = Column(Integer, default=0, nullable=False)
    payment_grace_until = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"
