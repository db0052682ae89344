"""
Security guards for admin-only and ownership-scoped access.
"""

from fastapi import Depends, HTTPException, status
from backend.app.models.user import User
from backend.app.core.dependencies import get_current_account


async def require_admin(account: User = Depends(get_current_account)) -> User:
    """
    Dependency for admin-only endpoints.

    Checks the stored role, not the token claim.
    """
    if not account.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return account


class OwnershipGuard:
    """
    Ownership guard for customer-scoped resources.

    Usage:
        ownership_guard = OwnershipGuard()
        ownership_guard.enforce(mail_item.user_id, account, "mail item")
    """

    def enforce(self, resource_owner_id: int, account: User, resource_name: str = "resource"):
        """
        Raise 404 (not 403) unless the account owns the resource or is an admin.
        """
        if account.is_admin:
            return
        if resource_owner_id != account.id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{resource_name.capitalize()} not found"
            )


ownership_guard = OwnershipGuard()
