"""
Billing, profile and admin user Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.enums import KycStatus, PlanStatus
from backend.app.models.billing_enums import InvoiceStatus


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: Optional[str]
    amount_pence: int
    currency: str
    status: InvoiceStatus
    period_start: Optional[datetime]
    period_end: Optional[datetime]
    paid_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class BillingOverviewResponse(BaseModel):
    plan_status: PlanStatus
    subscription_status: Optional[PlanStatus]
    plan_start_date: Optional[datetime]
    payment_failed_at: Optional[datetime]
    payment_retry_count: int
    payment_grace_until: Optional[datetime]
    pending_charges_pence: int
    latest_invoice: Optional[InvoiceResponse]


class KycStatusResponse(BaseModel):
    kyc_status: KycStatus
    kyc_approved_at: Optional[datetime]
    rejection_reason: Optional[str]
    applicant_id: Optional[str]


class RegisteredOfficeAddress(BaseModel):
    line1: str
    line2: Optional[str] = None
    city: str
    postcode: str
    country: str
    formatted: str
    inline: str


class RegisteredOfficeAddressResponse(BaseModel):
    ok: bool = True
    data: RegisteredOfficeAddress


class AdminUserUpdate(BaseModel):
    """Admin overrides; every field optional."""
    is_active: Optional[bool] = None
    kyc_status: Optional[KycStatus] = None
    plan_status: Optional[PlanStatus] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    company_name: Optional[str] = Field(None, max_length=255)
