"""
Profile endpoints, including the KYC- and billing-gated registered office address.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.models.enums import KycStatus
from backend.app.schemas.auth import UserResponse
from backend.app.schemas.billing import RegisteredOfficeAddress, RegisteredOfficeAddressResponse
from backend.app.core.config import settings
from backend.app.core.dependencies import get_current_account
from backend.app.core.exceptions import KycRequiredError, BillingRequiredError
from backend.app.domain.billing.billing_service import BillingService

router = APIRouter(prefix="/profile", tags=["Profile"])


def registered_office_address() -> RegisteredOfficeAddress:
    """Build the configured address with its multi-line and one-line renderings."""
    parts = [
        settings.registered_office_line1,
        settings.registered_office_line2,
        settings.registered_office_city,
        settings.registered_office_postcode,
        settings.registered_office_country,
    ]
    parts = [p.strip() for p in parts if p and p.strip()]
    return RegisteredOfficeAddress(
        line1=settings.registered_office_line1,
        line2=settings.registered_office_line2 or None,
        city=settings.registered_office_city,
        postcode=settings.registered_office_postcode,
        country=settings.registered_office_country,
        formatted="\n".join(parts),
        inline=", ".join(parts),
    )


@router.get("", response_model=UserResponse)
async def get_profile(account: User = Depends(get_current_account)):
    return UserResponse.model_validate(account)


@router.get("/registered-office-address", response_model=RegisteredOfficeAddressResponse)
async def get_registered_office_address(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """
    The registered office address customers may use for their company.

    Identity verification is checked first, then billing, so an unverified
    user without a plan sees KYC_REQUIRED.
    """
    if account.kyc_status != KycStatus.APPROVED:
        raise KycRequiredError(account.kyc_status.value if account.kyc_status else KycStatus.NOT_STARTED.value)

    if not await BillingService.has_active_plan(db, account):
        raise BillingRequiredError(account.plan_status.value if account.plan_status else "none")

    return RegisteredOfficeAddressResponse(data=registered_office_address())
