"""Error taxonomy for the archive API client and credential handling."""

from __future__ import annotations

import json
from typing import Any


class ArchiveError(RuntimeError):
    """Base class for archive gateway errors."""


class ConfigurationError(ArchiveError):
    """Raised when required settings are missing or invalid."""


class JWKSError(ArchiveError):
    """Raised when the public key set cannot be fetched or parsed."""


class VerificationError(ArchiveError):
    """Raised when a token signature or its claims fail verification."""


class APIError(ArchiveError):
    """Raised when the upstream API returns an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        error_code: str | None = None,
        details: Any | None = None,
    ) -> None:
        self.message = message
        self.status = status
        self.error_code = error_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": type(self).__name__,
            "message": self.message,
            "status": self.status,
        }
        if self.error_code is not None:
            payload["error_code"] = self.error_code
        if self.details is not None:
            payload["details"] = self.details
        return payload


class AuthenticationError(APIError):
    """HTTP 401, or the credential fetch against /auth failed."""


class AuthorizationError(APIError):
    """HTTP 403: the configured role may not perform the operation."""


class NotFoundError(APIError):
    """HTTP 404."""


class ValidationError(APIError):
    """HTTP 422, or input rejected before reaching the API."""


class ServerError(APIError):
    """HTTP 5xx after retries were exhausted."""


_CLIENT_ERRORS: dict[int, type[APIError]] = {
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    422: ValidationError,
}


def parse_error_body(raw: str) -> dict[str, Any]:
    """Best-effort decode of an error body into a dict."""
    try:
        data = json.loads(raw)
    except ValueError:
        return {"error": "unknown", "message": raw}
    if isinstance(data, dict):
        return data
    return {"error": "unknown", "message": raw}


def error_for_status(status: int, payload: dict[str, Any] | None = None) -> APIError:
    """Build the typed error for a non-2xx upstream response."""
    data = payload or {}
    error_code = data.get("error")
    error_code = error_code if isinstance(error_code, str) else None

    if 500 <= status <= 599:
        message = data.get("message") or error_code or "Server error"
        return ServerError(
            str(message),
            status=status,
            error_code=error_code,
            details=data.get("details"),
        )

    if 400 <= status <= 499:
        message = data.get("message") or error_code or "Request failed"
        error_class = _CLIENT_ERRORS.get(status, APIError)
        return error_class(
            str(message),
            status=status,
            error_code=error_code,
            details=data.get("details"),
        )

    return APIError(f"Unexpected HTTP status: {status}", status=status)
