"""
Ambassador token helpers.

Users authenticate against the identity platform; the platform (or the admin
panel) issues an HS256 JWT whose subject is the profile's user_id. The backend
only verifies it.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from backend.app.core.settings import get_settings

JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 24 * 7  # 7 days
TOKEN_ROLE = "ambassador"


def create_ambassador_token(user_id: int, expires_in_hours: int = JWT_EXPIRY_HOURS) -> str:
    """Create JWT for an ambassador session."""
    secret = get_settings().JWT_SECRET
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": TOKEN_ROLE,
        "exp": now + timedelta(hours=expires_in_hours),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_ambassador_token(token: str) -> Optional[int]:
    """Decode JWT and return user_id, or None when invalid/expired/misconfigured."""
    secret = get_settings().JWT_SECRET
    if not secret:
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        if payload.get("role") != TOKEN_ROLE:
            return None
        return int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError, KeyError):
        return None
