"""
KYC status endpoint.
"""

from fastapi import APIRouter, Depends
from backend.app.models.enums import KycStatus
from backend.app.models.user import User
from backend.app.schemas.billing import KycStatusResponse
from backend.app.core.dependencies import get_current_account

router = APIRouter(prefix="/kyc", tags=["KYC"])


@router.get("/status", response_model=KycStatusResponse)
async def kyc_status(account: User = Depends(get_current_account)):
    return KycStatusResponse(
        kyc_status=account.kyc_status or KycStatus.NOT_STARTED,
        kyc_approved_at=account.kyc_approved_at,
        rejection_reason=account.kyc_rejection_reason,
        applicant_id=account.sumsub_applicant_id,
    )
