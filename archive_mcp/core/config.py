"""Configuration for the archive API client.

Settings come from environment variables (a local ``.env`` file is honoured).
Two credential shapes are supported:

1. Username/password (``MCP_USERNAME`` + ``MCP_PASSWORD``, optional ``MCP_ROLE``)
2. API key (``MCP_API_KEY`` + required ``MCP_ROLE``)

Common optional variables:

- ``ARCHIVE_API_BASE_URL``: base URL of the archive API
- ``JWT_ISSUER``: expected ``iss`` claim of issued tokens
- ``JWKS_CACHE_TTL``: seconds to cache the public key set
- ``ARCHIVE_API_TIMEOUT``: per-request timeout in seconds
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from dotenv import load_dotenv

from archive_mcp.core.errors import ConfigurationError

VALID_ROLES = ("user", "gm", "admin")

DEFAULT_BASE_URL = "https://wiki.magi-agi.org/api/mcp"
DEFAULT_ROLE = "user"
DEFAULT_ISSUER = "magi-archive"
DEFAULT_JWKS_CACHE_TTL = 3600
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class ArchiveConfig:
    base_url: str = DEFAULT_BASE_URL
    username: str | None = None
    password: str | None = None
    api_key: str | None = None
    role: str | None = DEFAULT_ROLE
    issuer: str = DEFAULT_ISSUER
    jwks_cache_ttl: int = DEFAULT_JWKS_CACHE_TTL
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ArchiveConfig":
        """Build a validated config from the process environment (or a mapping)."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        ttl_raw = environ.get("JWKS_CACHE_TTL", str(DEFAULT_JWKS_CACHE_TTL))
        timeout_raw = environ.get("ARCHIVE_API_TIMEOUT", str(DEFAULT_TIMEOUT))
        try:
            ttl = int(ttl_raw)
        except ValueError as e:
            raise ConfigurationError(f"JWKS_CACHE_TTL must be an integer (got: {ttl_raw})") from e
        try:
            timeout = float(timeout_raw)
        except ValueError as e:
            raise ConfigurationError(
                f"ARCHIVE_API_TIMEOUT must be a number (got: {timeout_raw})"
            ) from e

        config = cls(
            base_url=environ.get("ARCHIVE_API_BASE_URL", DEFAULT_BASE_URL),
            username=environ.get("MCP_USERNAME") or None,
            password=environ.get("MCP_PASSWORD") or None,
            api_key=environ.get("MCP_API_KEY") or None,
            role=environ.get("MCP_ROLE", DEFAULT_ROLE),
            issuer=environ.get("JWT_ISSUER", DEFAULT_ISSUER),
            jwks_cache_ttl=ttl,
            timeout=timeout,
        )
        config.validate()
        return config

    @property
    def auth_method(self) -> str | None:
        if self.username and self.password:
            return "username"
        if self.api_key:
            return "api_key"
        return None

    def validate(self) -> None:
        """Raise ConfigurationError if the settings cannot be used."""
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"Invalid archive API base URL: {self.base_url!r}")

        method = self.auth_method
        if method is None:
            if self.username and not self.password:
                raise ConfigurationError("MCP_PASSWORD is required for username authentication")
            raise ConfigurationError(
                "Must provide either (MCP_USERNAME + MCP_PASSWORD) or MCP_API_KEY"
            )

        if method == "api_key" and not self.role:
            raise ConfigurationError("MCP_ROLE is required when using API key authentication")

        if self.role and self.role not in VALID_ROLES:
            raise ConfigurationError(
                f"MCP_ROLE must be one of: {', '.join(VALID_ROLES)} (got: {self.role})"
            )

        if self.jwks_cache_ttl <= 0:
            raise ConfigurationError(
                f"JWKS_CACHE_TTL must be positive (got: {self.jwks_cache_ttl})"
            )

    def auth_payload(self) -> dict[str, Any]:
        """Credentials body for POST /auth."""
        method = self.auth_method
        if method == "username":
            payload: dict[str, Any] = {"username": self.username, "password": self.password}
            # Role is optional here; the API derives it from the account when omitted.
            if self.role and self.role != DEFAULT_ROLE:
                payload["role"] = self.role
            return payload
        if method == "api_key":
            return {"api_key": self.api_key, "role": self.role}
        raise ConfigurationError(f"Invalid auth method: {method}")

    def url_for(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
