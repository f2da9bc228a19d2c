from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from core.config import settings


def _encode(payload: Dict[str, Any], secret: str, minutes: int) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes)
    to_encode = {"iat": int(now.timestamp()), "exp": int(exp.timestamp()), **payload}
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALG)


def create_access_token(sub: str, role: str = "customer", extra: Dict[str, Any] | None = None) -> str:
    """Issue a token the way the identity service does; used by tooling and tests."""
    payload = {"sub": sub, "role": role, "type": "access"}
    if extra:
        payload.update(extra)
    return _encode(payload, settings.JWT_SECRET, settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def decode_access(token: str) -> Dict[str, Any]:
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Not an access token")
    return payload
