from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from app.core.config import settings

ALGORITHM = "HS256"

# OAuth round trips are short; a stale state is treated as a failed login.
STATE_TOKEN_EXPIRE = timedelta(minutes=10)


def create_access_token(subject: str | Any, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject)}
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> dict[str, Any]:
    """Raises jwt.InvalidTokenError for bad signatures and expired tokens."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])


def create_state_token(data: dict[str, str | None]) -> str:
    expire = datetime.now(timezone.utc) + STATE_TOKEN_EXPIRE
    payload = {k: v for k, v in data.items() if v}
    payload.update({"exp": expire, "typ": "oauth_state"})
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def read_state_token(token: str | None) -> dict[str, Any] | None:
    """Decode an OAuth state; None when it is absent, forged or expired."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if payload.get("typ") != "oauth_state":
        return None
    return payload
