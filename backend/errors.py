"""
Error taxonomy shared by the store, the proxies and the HTTP layer.

Every error carries a stable machine-readable ``code`` and the HTTP status
it maps to. The FastAPI exception handlers in ``main`` render them as
``{"code": ..., "message": ...}``.
"""

from typing import Any, Dict, Optional


class CodeFlowError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "INTERNAL"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidInput(CodeFlowError):
    code = "INVALID_INPUT"
    status_code = 400


class InvalidReference(InvalidInput):
    """A referenced ID (spaceId, vaultId, parentId) is absent or malformed."""

    code = "INVALID_REFERENCE"


class Unauthorized(CodeFlowError):
    code = "UNAUTHORIZED"
    status_code = 401


class NotFound(CodeFlowError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(CodeFlowError):
    code = "CONFLICT"
    status_code = 409


class RateLimited(CodeFlowError):
    code = "RATE_LIMITED"
    status_code = 429


class ProviderUnavailable(CodeFlowError):
    code = "PROVIDER_UNAVAILABLE"
    status_code = 502


class Internal(CodeFlowError):
    code = "INTERNAL"
    status_code = 500
