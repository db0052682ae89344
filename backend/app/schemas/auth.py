"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from backend.app.models.enums import UserRole, KycStatus, PlanStatus


class UserSignup(BaseModel):
    """
    Schema for customer signup.

    Used by POST /auth/signup. Admin accounts are never created here.
    """
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=8, max_length=128, description="Password (min 8 characters)")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)


class UserLogin(BaseModel):
    """Schema for user login (POST /auth/login)."""
    email: EmailStr = Field(..., description="Account email")
    password: str = Field(..., description="Password")


class UserResponse(BaseModel):
    """Account as returned by whoami and profile."""
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    kyc_status: KycStatus
    plan_status: PlanStatus
    kyc_approved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    """
    Returned by login and signup.

    The token is also set as the vah_session cookie; API clients may send
    it as a Bearer token instead.
    """
    ok: bool = True
    access_token: str
    token_type: str = "bearer"
    csrf_token: str
    user: UserResponse
