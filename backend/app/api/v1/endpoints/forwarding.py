"""
Customer forwarding request endpoints.
"""

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.forwarding import (
    ForwardingRequestCreate, ForwardingRequestResponse, ForwardingRequestListResponse
)
from backend.app.core.dependencies import get_current_account
from backend.app.core.guards import ownership_guard
from backend.app.domain.forwarding.service import ForwardingService, clamp_limit

router = APIRouter(prefix="/forwarding", tags=["Forwarding"])


@router.post("/requests", response_model=ForwardingRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_forwarding_request(
    data: ForwardingRequestCreate,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=64),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """
    Ask for a letter to be posted on.

    Returns 201 for a new request, or 200 with the existing request when the
    letter already has one in progress or the Idempotency-Key was seen before.
    """
    request, created = await ForwardingService.create_request(db, account, data, idempotency_key)
    if not created:
        response.status_code = status.HTTP_200_OK
    return ForwardingRequestResponse.model_validate(request)


@router.get("/requests", response_model=ForwardingRequestListResponse)
async def list_forwarding_requests(
    limit: Optional[int] = Query(None, description="Page size, clamped to 1..100"),
    offset: int = Query(0, ge=0),
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    limit = clamp_limit(limit)
    items, total = await ForwardingService.list_for_user(db, account.id, limit, offset)
    return ForwardingRequestListResponse(
        items=[ForwardingRequestResponse.model_validate(r) for r in items],
        total=total,
        limit=limit,
        offset=offset
    )


@router.get("/requests/{request_id}", response_model=ForwardingRequestResponse)
async def get_forwarding_request(
    request_id: int,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    request = await ForwardingService.get(db, request_id)
    ownership_guard.enforce(request.user_id, account, "forwarding request")
    return ForwardingRequestResponse.model_validate(request)
