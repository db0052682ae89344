"""
API Router.

Aggregates all API endpoints; mounted under settings.api_prefix.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    auth, profile, mail_items, forwarding, billing, kyc, notifications,
    admin, admin_forwarding, admin_mail_items, webhooks
)
from backend.app.bff import proxy

router = APIRouter()

# Customer endpoints
router.include_router(auth.router)
router.include_router(profile.router)
router.include_router(mail_items.router)
router.include_router(forwarding.router)
router.include_router(billing.router)
router.include_router(kyc.router)
router.include_router(notifications.router)

# Admin endpoints
router.include_router(admin.router)
router.include_router(admin_forwarding.router)
router.include_router(admin_mail_items.router)

# Provider webhooks
router.include_router(webhooks.router)
router.include_router(webhooks.provider_router)

# Browser-facing proxy
router.include_router(proxy.router)
