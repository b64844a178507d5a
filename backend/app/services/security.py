"""Password hashing and session token helpers."""
import secrets

import bcrypt

from app.config import settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode()


def verify_password(password: str | None, hashed: str | None) -> bool:
    """Constant-time bcrypt comparison. Missing input on either side never matches."""
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # Malformed stored hash
        return False


def new_session_token() -> str:
    return secrets.token_urlsafe(32)
