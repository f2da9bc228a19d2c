from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header

from core.errors import AuthenticationError
from security import jwt as jwt_utils


class Role(str, Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"
    SYSTEM = "system"


OPERATOR_ROLES = frozenset({Role.VENDOR, Role.ADMIN})

# Roles a bearer token may claim; "system" is reserved for gateway callbacks
TOKEN_ROLES = frozenset({Role.CUSTOMER, Role.VENDOR, Role.ADMIN})


@dataclass(frozen=True)
class Actor:
    """Who is calling: supplied by the identity collaborator, trusted as-is."""

    user_id: str
    role: Role

    @property
    def is_operator(self) -> bool:
        return self.role in OPERATOR_ROLES

    @property
    def label(self) -> str:
        return f"{self.role.value}:{self.user_id}"


SYSTEM_ACTOR = Actor(user_id="payment-gateway", role=Role.SYSTEM)


def actor_from_token(token: str) -> Actor:
    try:
        payload = jwt_utils.decode_access(token)
    except Exception:
        raise AuthenticationError("Invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    try:
        role = Role(payload.get("role", Role.CUSTOMER.value))
    except ValueError:
        raise AuthenticationError("Unknown role in token")
    if role not in TOKEN_ROLES:
        raise AuthenticationError("Role cannot be claimed by a token")
    return Actor(user_id=str(user_id), role=role)


def get_current_actor(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> Actor:
    """FastAPI dependency that resolves the calling actor from the bearer token."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Not authenticated")
    token = authorization.split(" ", 1)[1]
    return actor_from_token(token)
