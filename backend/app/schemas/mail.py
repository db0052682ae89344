"""
Mail item Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List


class MailItemResponse(BaseModel):
    id: int
    subject: Optional[str]
    sender_name: Optional[str]
    tag: Optional[str]
    status: str
    is_read: bool
    forwarding_status: str
    received_at: Optional[datetime]
    physical_destruction_date: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class MailItemListResponse(BaseModel):
    items: List[MailItemResponse]
    total: int
    limit: int
    offset: int


class MailItemUpdate(BaseModel):
    """Customers may only toggle the read flag."""
    is_read: Optional[bool] = None


class ScanUrlResponse(BaseModel):
    ok: bool = True
    url: str


class MarkDestroyedRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)
    destruction_method: Optional[str] = Field(None, max_length=100)


class DestructionLogResponse(BaseModel):
    id: int
    mail_item_id: int
    user_id: int
    user_display_name: Optional[str]
    receipt_date: datetime
    eligibility_date: datetime
    recorded_at: datetime
    actor_type: str
    action_source: str
    staff_user_id: Optional[int]
    staff_name: str
    staff_initials: str
    notes: Optional[str]
    destruction_method: str

    class Config:
        from_attributes = True
