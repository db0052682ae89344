"""
Session revocation using Redis.

Logout blacklists the session token; deactivating an account revokes every
token the user holds.
"""

import logging

from redis.exceptions import RedisError

from backend.app.core import redis_client as redis_client_module
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "vah:blacklist:token:"
USER_TOKENS_PREFIX = "vah:user:tokens:"


def _ttl_seconds() -> int:
    return settings.access_token_expire_minutes * 60


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a session token by adding it to the blacklist.

    Tokens expire on their own, so the key only lives as long as the token.
    """
    try:
        await redis_client_module.redis_client.setex(
            f"{TOKEN_BLACKLIST_PREFIX}{token}",
            _ttl_seconds(),
            str(user_id)
        )
        return True
    except RedisError:
        logger.exception("Failed to revoke token for user %s", user_id)
        return False


async def is_token_revoked(token: str) -> bool:
    try:
        exists = await redis_client_module.redis_client.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}")
        return exists > 0
    except RedisError:
        # Fail open
        logger.warning("Token revocation check unavailable, allowing request")
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """Mark every token of a user as revoked (used when an admin suspends an account)."""
    try:
        await redis_client_module.redis_client.setex(
            f"{USER_TOKENS_PREFIX}{user_id}:revoked",
            _ttl_seconds(),
            "1"
        )
        return True
    except RedisError:
        logger.exception("Failed to revoke all tokens for user %s", user_id)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    try:
        exists = await redis_client_module.redis_client.exists(f"{USER_TOKENS_PREFIX}{user_id}:revoked")
        return exists > 0
    except RedisError:
        logger.warning("User revocation check unavailable for user %s", user_id)
        return False


async def clear_user_token_revocation(user_id: int) -> bool:
    """Called when a suspended account is re-activated."""
    try:
        await redis_client_module.redis_client.delete(f"{USER_TOKENS_PREFIX}{user_id}:revoked")
        return True
    except RedisError:
        logger.exception("Failed to clear token revocation for user %s", user_id)
        return False
