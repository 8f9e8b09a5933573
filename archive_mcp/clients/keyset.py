"""JWKS fetching, caching and JWK-to-public-key conversion."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicNumbers

from archive_mcp.core.config import ArchiveConfig
from archive_mcp.core.errors import JWKSError, VerificationError

logger = logging.getLogger("archive_mcp.keyset")

JWKS_PATH = "/.well-known/jwks.json"


@dataclass(frozen=True)
class KeySetEntry:
    """A fetched key set, indexed by key id."""

    keys: dict[str, dict[str, Any]] = field(default_factory=dict)
    fetched_at: float = 0.0

    def is_fresh(self, ttl: float, now: float) -> bool:
        return now < self.fetched_at + ttl

    def get(self, kid: str) -> dict[str, Any] | None:
        return self.keys.get(kid)


class KeySetCache:
    """Time-cached view of the upstream JSON Web Key Set."""

    def __init__(
        self,
        config: ArchiveConfig,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._entry: KeySetEntry | None = None

    @property
    def ttl(self) -> int:
        return self.config.jwks_cache_ttl

    def keys(self, force: bool = False) -> KeySetEntry:
        """Return the cached key set, refetching when stale or forced."""
        entry = self._entry
        if entry is not None and not force and entry.is_fresh(self.ttl, time.time()):
            return entry

        entry = self._fetch()
        self._entry = entry
        return entry

    def find(self, kid: str) -> dict[str, Any] | None:
        """Resolve a key id, refetching once if it is missing from a cached set."""
        had_cache = self._entry is not None and self._entry.is_fresh(self.ttl, time.time())
        entry = self.keys()
        jwk = entry.get(kid)
        if jwk is None and had_cache:
            # Keys may have rotated since the set was cached.
            jwk = self.keys(force=True).get(kid)
        return jwk

    def clear(self) -> None:
        self._entry = None

    def _fetch(self) -> KeySetEntry:
        url = self.config.url_for(JWKS_PATH)
        try:
            response = self._session.get(url, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise JWKSError(f"JWKS fetch failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise JWKSError(f"JWKS fetch failed: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise JWKSError(f"JWKS parse failed: {e}") from e

        records = data.get("keys") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise JWKSError("JWKS parse failed: missing 'keys' array")

        keys: dict[str, dict[str, Any]] = {}
        for record in records:
            if isinstance(record, dict) and isinstance(record.get("kid"), str):
                keys[record["kid"]] = record

        logger.info("Fetched JWKS with %d key(s) from %s", len(keys), url)
        return KeySetEntry(keys=keys, fetched_at=time.time())


def decode_base64url(value: str) -> bytes:
    """Decode unpadded base64url into bytes."""
    padded = value + "=" * (-len(value) % 4)
    standard = padded.translate(str.maketrans("-_", "+/"))
    return base64.b64decode(standard, validate=True)


def jwk_to_public_key(jwk: dict[str, Any]) -> bytes:
    """Convert an RSA JWK into a PEM-encoded public key."""
    if jwk.get("kty", "RSA") != "RSA":
        raise VerificationError(f"Unsupported key type: {jwk.get('kty')}")

    modulus = jwk.get("n")
    exponent = jwk.get("e")
    if not isinstance(modulus, str) or not isinstance(exponent, str):
        raise VerificationError("JWK is missing modulus or exponent")

    try:
        n = int.from_bytes(decode_base64url(modulus), "big")
        e = int.from_bytes(decode_base64url(exponent), "big")
        public_key = RSAPublicNumbers(e, n).public_key()
    except (binascii.Error, ValueError) as exc:
        raise VerificationError(f"JWK has malformed key material: {exc}") from exc

    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
