"""
Admin API Schema Definitions.

Pydantic schemas for admin user management and the audit trail.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List
from backend.app.models.enums import UserRole, KycStatus, PlanStatus


class UserListItem(BaseModel):
    """Schema for user in list response."""
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    role: UserRole
    is_active: bool
    kyc_status: KycStatus
    plan_status: PlanStatus
    payment_grace_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    """Schema for list users response."""
    users: List[UserListItem]
    total: int
    limit: int
    offset: int


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_email: Optional[str]
    action: str
    target_type: Optional[str]
    target_id: Optional[int]
    meta_data: Optional[dict]
    ip_address: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for audit trail list."""
    logs: List[AuditLogResponse]
    total: int
