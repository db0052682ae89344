"""
Forwarding Pydantic schemas.

Defines request and response models for customer forwarding requests and
the admin forwarding queue.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List
from backend.app.models.forwarding_enums import ForwardingStatus, ForwardingAction


class ForwardingRequestCreate(BaseModel):
    """Schema for a customer asking for a letter to be posted on."""
    mail_item_id: int = Field(..., gt=0, description="Mail item to forward")
    to_name: str = Field(..., min_length=1, max_length=255, description="Recipient name")
    address1: str = Field(..., min_length=1, max_length=255)
    address2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=120)
    state: Optional[str] = Field(None, max_length=120)
    postal: str = Field(..., min_length=1, max_length=30)
    country: str = Field(default="GB", min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    reason: Optional[str] = Field(None, max_length=500)
    method: str = Field(default="standard", max_length=30)

    @field_validator("to_name", "address1", "city", "postal")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("country")
    @classmethod
    def upper_country(cls, value: str) -> str:
        return value.strip().upper()


class AdminForwardingUpdate(BaseModel):
    """Body of PATCH /admin/forwarding/requests/{id}."""
    action: ForwardingAction
    courier: Optional[str] = Field(None, max_length=100)
    tracking_number: Optional[str] = Field(None, max_length=120)
    admin_notes: Optional[str] = Field(None, max_length=2000)


class ForwardingRequestResponse(BaseModel):
    """Schema for forwarding request response."""
    id: int
    user_id: int
    mail_item_id: int
    status: ForwardingStatus
    to_name: str
    address: str
    address1: str
    address2: Optional[str]
    city: str
    state: Optional[str]
    postal: str
    country: str
    reason: Optional[str]
    method: str
    courier: Optional[str]
    tracking_number: Optional[str]
    admin_notes: Optional[str]
    reviewed_by: Optional[int]
    created_at: datetime
    updated_at: datetime
    reviewed_at: Optional[datetime]
    processing_at: Optional[datetime]
    dispatched_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    allowed_actions: List[ForwardingAction] = []

    class Config:
        from_attributes = True


class ForwardingRequestListResponse(BaseModel):
    """Schema for paginated forwarding request list."""
    items: List[ForwardingRequestResponse]
    total: int
    limit: int
    offset: int
