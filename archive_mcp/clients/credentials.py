"""Bearer token acquisition, caching and verification.

Tokens are fetched from ``POST {base}/auth`` and reused until they are within
``REFRESH_BUFFER_SECONDS`` of expiry, so calls started near expiry never race
an upstream 401. Verification resolves the token's ``kid`` against the cached
JWKS and checks the RS256 signature plus the ``iss``/``exp``/``iat`` claims.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import requests
from jose import JWTError, jwt

from archive_mcp.clients.keyset import KeySetCache, jwk_to_public_key
from archive_mcp.core.config import ArchiveConfig
from archive_mcp.core.errors import AuthenticationError, VerificationError

logger = logging.getLogger("archive_mcp.credentials")

AUTH_PATH = "/auth"
REFRESH_BUFFER_SECONDS = 300
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class Token:
    """An issued bearer token. Replaced wholesale on refresh."""

    value: str
    expires_at: float
    issued_at: float

    def is_valid(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current < self.expires_at - REFRESH_BUFFER_SECONDS


class CredentialStore:
    """Owns the current bearer token and the key set used to verify it.

    Concurrent callers that see an expired token may each fetch a new one;
    the fetch is idempotent, so no lock is held across the network call.
    """

    def __init__(
        self,
        config: ArchiveConfig,
        session: requests.Session | None = None,
        key_set: KeySetCache | None = None,
    ) -> None:
        self.config = config
        self._session = session or requests.Session()
        self.key_set = key_set or KeySetCache(config, session=self._session)
        self._token: Token | None = None

    def token_valid(self) -> bool:
        current = self._token
        return current is not None and current.is_valid()

    def token(self) -> Token:
        """Return the cached token, fetching a new one if needed."""
        current = self._token
        if current is not None and current.is_valid():
            return current
        return self._fetch_token()

    def refresh(self) -> Token:
        """Discard the current token and fetch a new one."""
        self._token = None
        return self._fetch_token()

    def clear_cache(self) -> None:
        self._token = None
        self.key_set.clear()

    def verify_token(self, token: str) -> dict[str, Any]:
        """Verify signature and standard claims, returning the decoded claims."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise VerificationError(f"Token verification failed: {e}") from e

        kid = header.get("kid")
        if not kid:
            raise VerificationError("Token missing kid claim")

        jwk = self.key_set.find(kid)
        if jwk is None:
            raise VerificationError(f"No matching key found for kid: {kid}")

        public_key = jwk_to_public_key(jwk)
        try:
            return jwt.decode(
                token,
                public_key,
                algorithms=["RS256"],
                issuer=self.config.issuer,
                options={
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_iss": True,
                    "verify_aud": False,
                },
            )
        except JWTError as e:
            raise VerificationError(f"Token verification failed: {e}") from e

    def _fetch_token(self) -> Token:
        url = self.config.url_for(AUTH_PATH)
        try:
            response = self._session.post(
                url,
                json=self.config.auth_payload(),
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            logger.error("Token fetch failed: %s", e)
            raise AuthenticationError(f"Token fetch failed: {e}") from e

        if not 200 <= response.status_code < 300:
            message = _error_message(response)
            logger.error("Token fetch failed (HTTP %s): %s", response.status_code, message)
            raise AuthenticationError(
                f"Token fetch failed (HTTP {response.status_code}): {message}",
                status=response.status_code,
            )

        try:
            data = response.json()
            value = data["token"]
            expires_in = data.get("expires_in")
            expires_in = float(DEFAULT_EXPIRES_IN if expires_in is None else expires_in)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise AuthenticationError(f"Token response parse failed: {e}") from e

        now = time.time()
        token = Token(value=value, expires_at=now + expires_in, issued_at=now)
        self._token = token
        logger.info(
            "Fetched bearer token via %s auth (expires in %ss)",
            self.config.auth_method,
            int(expires_in),
        )
        return token


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or "Unknown error")
    return response.text
