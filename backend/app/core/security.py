"""
Password hashing helpers.
"""

import secrets

import bcrypt


def get_password_hash(password: str) -> str:
    """Hash a plaintext password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash stored for the account
        return False


def generate_csrf_token() -> str:
    """64 hex characters, matched against the X-CSRF-Token header."""
    return secrets.token_hex(32)
