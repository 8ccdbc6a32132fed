"""
Auth gate for write requests.

Reads (GET/HEAD/OPTIONS) always pass. Writes pass when no ADMIN_TOKEN is
configured, or when the request carries it either as
``Authorization: Bearer <token>`` or ``X-Admin-Token: <token>``.
The gate also resolves the owner identity every store call is scoped to.
"""

import hmac
from typing import Optional

from fastapi import Header, Request

from errors import Unauthorized

ADMIN_TOKEN_HEADER = "X-Admin-Token"
_SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not isinstance(authorization, str):
        return None
    value = authorization.strip()
    if not value:
        return None
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token if token else None


class AuthGate:
    def __init__(self, admin_token: str = "", owner_id: str = "admin") -> None:
        self.admin_token = (admin_token or "").strip()
        self.owner_id = owner_id

    def authorize(
        self,
        method: str,
        x_admin_token: Optional[str] = None,
        authorization: Optional[str] = None,
    ) -> Optional[str]:
        """Owner identity for an allowed request, None for a denied one."""
        if method.upper() in _SAFE_METHODS or not self.admin_token:
            return self.owner_id
        provided = str(x_admin_token or "").strip() or _extract_bearer_token(authorization)
        if not provided or not hmac.compare_digest(provided, self.admin_token):
            return None
        return self.owner_id


async def require_owner(
    request: Request,
    x_admin_token: Optional[str] = Header(default=None, alias=ADMIN_TOKEN_HEADER),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> str:
    gate: AuthGate = request.app.state.services.auth_gate
    owner_id = gate.authorize(request.method, x_admin_token, authorization)
    if owner_id is None:
        raise Unauthorized("Invalid or missing admin token")
    return owner_id
