"""
Authenticated HTTP client for the archive API.

Usage:
    from archive_mcp.clients import ArchiveClient
    with ArchiveClient() as client:
        card = client.get("/cards/Home")
        for page in client.each_page("/cards", limit=50):
            ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import requests

from archive_mcp.clients.credentials import CredentialStore
from archive_mcp.core.config import ArchiveConfig
from archive_mcp.core.errors import APIError, error_for_status, parse_error_body
from archive_mcp.core.retry import retry_with_backoff

logger = logging.getLogger("archive_mcp.client")

MAX_RETRIES = 3
MAX_PAGE_SIZE = 100
DEFAULT_MAX_ITEMS = 1000


class _RetryableStatus(Exception):
    """Internal signal: the response status warrants another attempt."""

    def __init__(self, response: requests.Response) -> None:
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def _is_retryable_status(status: int) -> bool:
    return status == 429 or 500 <= status <= 599


class ArchiveClient:
    """HTTP client with bearer-token injection, bounded retry and typed errors."""

    def __init__(
        self,
        config: ArchiveConfig | None = None,
        credentials: CredentialStore | None = None,
        session: requests.Session | None = None,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self.config = config or ArchiveConfig.from_env()
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")
        self.credentials = credentials or CredentialStore(self.config, session=self._session)
        self.max_retries = max_retries

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "ArchiveClient":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Verb helpers
    # ------------------------------------------------------------------

    def get(self, path: str, **params: Any) -> Any:
        return self.request("GET", path, params=params or None)

    def post(self, path: str, **data: Any) -> Any:
        return self.request("POST", path, json_body=data)

    def patch(self, path: str, **data: Any) -> Any:
        return self.request("PATCH", path, json_body=data)

    def delete(self, path: str, **params: Any) -> Any:
        return self.request("DELETE", path, params=params or None)

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        """Issue an authenticated call and return the parsed JSON body."""
        response = self._send(method, path, params=params, json_body=json_body)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Response parse failed: {e}", status=response.status_code) from e

    def get_raw(self, path: str, **params: Any) -> requests.Response:
        """GET returning the raw response, for binary downloads."""
        return self._send("GET", path, params=params or None, stream=True)

    def health_check(self) -> dict[str, Any]:
        """Unauthenticated health check of the archive API."""
        return self._unauthenticated_get("/health", "Health check failed")

    def ping(self) -> dict[str, Any]:
        """Lighter than health_check; only verifies the server responds."""
        return self._unauthenticated_get("/health/ping", "Ping failed")

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    def paginated_get(
        self,
        path: str,
        limit: int = 50,
        offset: int = 0,
        **params: Any,
    ) -> dict[str, Any]:
        page_size = max(1, min(limit, MAX_PAGE_SIZE))
        response = self.get(path, limit=page_size, offset=offset, **params)

        if isinstance(response, dict):
            data = response.get("cards")
            if data is None:
                data = response.get("types")
            if data is None:
                data = response.get("items")
            if data is None:
                data = []
            return {
                "data": data,
                "total": response.get("total"),
                "limit": response.get("limit") or page_size,
                "offset": response.get("offset") if response.get("offset") is not None else offset,
                "next_offset": response.get("next_offset"),
            }

        data = response if isinstance(response, list) else []
        return {
            "data": data,
            "total": len(data),
            "limit": page_size,
            "offset": offset,
            "next_offset": None,
        }

    def each_page(
        self,
        path: str,
        limit: int = 50,
        offset: int = 0,
        **params: Any,
    ) -> Iterator[list[Any]]:
        """Lazily yield pages until an empty page or a missing next_offset."""
        current = offset
        while True:
            page = self.paginated_get(path, limit=limit, offset=current, **params)
            items = page["data"]
            if not items:
                return
            yield items
            next_offset = page["next_offset"]
            if next_offset is None or next_offset == current:
                return
            current = next_offset

    def fetch_all(
        self,
        path: str,
        limit: int = 50,
        max_items: int = DEFAULT_MAX_ITEMS,
        **params: Any,
    ) -> list[Any]:
        """Collect every page into one list, stopping at ``max_items``."""
        items: list[Any] = []
        for page in self.each_page(path, limit=limit, **params):
            items.extend(page)
            if len(items) >= max_items:
                return items[:max_items]
        return items

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, with_body: bool) -> dict[str, str]:
        token = self.credentials.token()
        headers = {"Authorization": f"Bearer {token.value}"}
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        stream: bool = False,
    ) -> requests.Response:
        url = self.config.url_for(path)
        method = method.upper()

        attempts = {"count": 0}

        def attempt() -> requests.Response:
            attempts["count"] += 1
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(json_body is not None),
                timeout=self.config.timeout,
                stream=stream,
            )
            if _is_retryable_status(response.status_code):
                # The final response is kept open for error mapping.
                if attempts["count"] <= self.max_retries:
                    response.close()
                raise _RetryableStatus(response)
            return response

        def log_retry(attempt_number: int, delay: float, error: Exception) -> None:
            if isinstance(error, _RetryableStatus):
                logger.warning(
                    "Retrying request after %ss (attempt %d/%d, HTTP %s %s -> %s)",
                    _format_delay(delay),
                    attempt_number,
                    self.max_retries,
                    method,
                    path,
                    error.response.status_code,
                )
            else:
                logger.warning(
                    "Network error, retrying in %ss (attempt %d/%d, %s %s): %s",
                    _format_delay(delay),
                    attempt_number,
                    self.max_retries,
                    method,
                    path,
                    error,
                )

        try:
            response = retry_with_backoff(
                attempt,
                max_attempts=self.max_retries + 1,
                initial_delay=1.0,
                backoff_factor=2.0,
                retryable_exceptions=(
                    _RetryableStatus,
                    requests.ConnectionError,
                    requests.Timeout,
                ),
                on_retry=log_retry,
            )
        except _RetryableStatus as e:
            response = e.response
        except requests.RequestException as e:
            raise APIError(f"HTTP request failed: {e}") from e

        if 200 <= response.status_code < 300:
            return response
        raise error_for_status(response.status_code, parse_error_body(response.text))

    def _unauthenticated_get(self, path: str, failure: str) -> dict[str, Any]:
        url = self.config.url_for(path)
        try:
            response = self._session.get(url, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise APIError(f"{failure}: {e}") from e
        if not 200 <= response.status_code < 300:
            raise APIError(failure, status=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"{failure}: {e}", status=response.status_code) from e


def _format_delay(delay: float) -> str:
    return str(int(delay)) if float(delay).is_integer() else str(delay)
