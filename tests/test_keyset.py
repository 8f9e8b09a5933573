import base64
from typing import Any
from unittest.mock import Mock, patch

import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa

from archive_mcp.clients.keyset import KeySetCache, decode_base64url, jwk_to_public_key
from archive_mcp.core.config import ArchiveConfig
from archive_mcp.core.errors import JWKSError, VerificationError


def _b64url_int(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _rsa_jwk(kid: str) -> dict[str, Any]:
    numbers = rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key().public_numbers()
    return {"kty": "RSA", "kid": kid, "alg": "RS256", "n": _b64url_int(numbers.n), "e": _b64url_int(numbers.e)}


def _jwks_response(*jwks: dict[str, Any]) -> Mock:
    return Mock(status_code=200, json=Mock(return_value={"keys": list(jwks)}))


def _cache(session: Mock, ttl: int = 3600) -> KeySetCache:
    config = ArchiveConfig(base_url="https://archive.example.org/api/mcp", api_key="k", jwks_cache_ttl=ttl)
    return KeySetCache(config, session=session)


class TestKeySetCache:
    def test_fetches_from_well_known_path(self) -> None:
        session = Mock()
        session.get.return_value = _jwks_response({"kid": "k1", "kty": "RSA"})

        entry = _cache(session).keys()

        assert entry.get("k1") == {"kid": "k1", "kty": "RSA"}
        assert session.get.call_args.args[0] == "https://archive.example.org/api/mcp/.well-known/jwks.json"

    def test_reuses_cache_within_ttl(self) -> None:
        session = Mock()
        session.get.return_value = _jwks_response({"kid": "k1"})
        cache = _cache(session, ttl=3600)

        with patch("archive_mcp.clients.keyset.time.time", return_value=1000.0) as clock:
            cache.keys()
            clock.return_value = 4599.0
            cache.keys()

        assert session.get.call_count == 1

    def test_refetches_when_stale(self) -> None:
        session = Mock()
        session.get.return_value = _jwks_response({"kid": "k1"})
        cache = _cache(session, ttl=3600)

        with patch("archive_mcp.clients.keyset.time.time", return_value=1000.0) as clock:
            cache.keys()
            clock.return_value = 4600.0
            cache.keys()

        assert session.get.call_count == 2

    def test_find_refetches_once_for_rotated_key(self) -> None:
        session = Mock()
        session.get.side_effect = [
            _jwks_response({"kid": "k1"}),
            _jwks_response({"kid": "k1"}, {"kid": "k2"}),
        ]
        cache = _cache(session)

        with patch("archive_mcp.clients.keyset.time.time", return_value=1000.0):
            cache.keys()
            found = cache.find("k2")

        assert found == {"kid": "k2"}
        assert session.get.call_count == 2

    def test_find_unknown_kid_on_cold_cache_fetches_once(self) -> None:
        session = Mock()
        session.get.return_value = _jwks_response({"kid": "k1"})

        assert _cache(session).find("missing") is None
        assert session.get.call_count == 1

    def test_records_without_kid_are_skipped(self) -> None:
        session = Mock()
        session.get.return_value = _jwks_response({"kty": "RSA"}, {"kid": "k1"})

        assert list(_cache(session).keys().keys) == ["k1"]

    def test_http_failure_raises(self) -> None:
        session = Mock()
        session.get.return_value = Mock(status_code=500)

        with pytest.raises(JWKSError, match="JWKS fetch failed: HTTP 500"):
            _cache(session).keys()

    def test_network_failure_raises(self) -> None:
        session = Mock()
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(JWKSError, match="JWKS fetch failed"):
            _cache(session).keys()

    def test_malformed_body_raises(self) -> None:
        session = Mock()
        session.get.return_value = Mock(status_code=200, json=Mock(side_effect=ValueError("not json")))

        with pytest.raises(JWKSError, match="JWKS parse failed"):
            _cache(session).keys()

    def test_clear_forces_refetch(self) -> None:
        session = Mock()
        session.get.return_value = _jwks_response({"kid": "k1"})
        cache = _cache(session)

        cache.keys()
        cache.clear()
        cache.keys()

        assert session.get.call_count == 2


class TestJwkConversion:
    def test_rsa_jwk_to_pem(self) -> None:
        pem = jwk_to_public_key(_rsa_jwk("k1"))

        assert pem.startswith(b"-----BEGIN PUBLIC KEY-----")

    def test_non_rsa_rejected(self) -> None:
        with pytest.raises(VerificationError, match="Unsupported key type"):
            jwk_to_public_key({"kty": "EC", "x": "a", "y": "b"})

    def test_missing_modulus_rejected(self) -> None:
        with pytest.raises(VerificationError, match="missing modulus or exponent"):
            jwk_to_public_key({"kty": "RSA", "e": "AQAB"})

    def test_malformed_modulus_rejected(self) -> None:
        with pytest.raises(VerificationError, match="malformed"):
            jwk_to_public_key({"kty": "RSA", "n": "@@@@", "e": "AQAB"})

    def test_decode_base64url_restores_padding(self) -> None:
        assert decode_base64url("AQAB") == b"\x01\x00\x01"
        assert decode_base64url("-_8") == b"\xfb\xff"
