"""Helper functions for archive MCP tools."""

from typing import Any
from urllib.parse import quote

from archive_mcp.core.errors import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ServerError,
    ValidationError,
)

SNIPPET_LENGTH = 200


def encode_card_name(name: str) -> str:
    """Percent-encode a card name for an API path, keeping ``+`` for compound names."""
    return quote(name, safe="+-_.~")


def card_url(base_url: str, name: str) -> str:
    """Public wiki URL of a card (spaces shown as underscores)."""
    site = base_url.split("/api/")[0].rstrip("/")
    return f"{site}/{encode_card_name(name.replace(' ', '_'))}"


def snippet(text: str | None, length: int = SNIPPET_LENGTH) -> str:
    if not text:
        return ""
    flat = " ".join(text.split())
    if len(flat) <= length:
        return flat
    return flat[: length - 3].rstrip() + "..."


def card_document(card: dict[str, Any], base_url: str) -> dict[str, Any]:
    """Hybrid shape for a single card: id/title/text/source/metadata."""
    name = str(card.get("name", ""))
    content = card.get("content") or ""
    text = f"# {name}\n\n{content}".rstrip()
    return {
        "id": name,
        "title": name,
        "text": text,
        "source": card_url(base_url, name),
        "metadata": {
            "type": card.get("type"),
            "updated_at": card.get("updated_at"),
            "children": [child.get("name") for child in card.get("children") or [] if isinstance(child, dict)],
        },
    }


def card_listing(
    cards: list[dict[str, Any]],
    base_url: str,
    heading: str,
    total: int | None = None,
    next_offset: int | None = None,
) -> dict[str, Any]:
    """Hybrid shape for a list of cards: results array plus a text summary."""
    results = []
    lines = [f"{heading} ({total if total is not None else len(cards)} total)"]
    for card in cards:
        name = str(card.get("name", ""))
        results.append(
            {
                "id": name,
                "title": name,
                "source": card_url(base_url, name),
                "type": card.get("type"),
                "snippet": snippet(card.get("content")),
            }
        )
        kind = f" [{card.get('type')}]" if card.get("type") else ""
        lines.append(f"- {name}{kind}")
    if next_offset is not None:
        lines.append(f"More results available (next offset: {next_offset})")
    return {
        "results": results,
        "total": total if total is not None else len(cards),
        "next_offset": next_offset,
        "text": "\n".join(lines),
    }


def format_api_error(error: APIError, operation: str = "request", target: str | None = None) -> str:
    """Short, actionable text for an upstream failure."""
    subject = f" '{target}'" if target else ""
    if isinstance(error, NotFoundError):
        hint = "Search for the exact name with search_cards; compound names need the full Parent+Child path."
        return f"Not found: {operation}{subject}. {hint}"
    if isinstance(error, AuthorizationError):
        return f"Permission denied: {operation}{subject} requires a higher role. {error.message}"
    if isinstance(error, AuthenticationError):
        return f"Authentication failed while trying to {operation}{subject}: {error.message}"
    if isinstance(error, ValidationError):
        details = f" Details: {error.details}" if error.details else ""
        return f"Validation failed for {operation}{subject}: {error.message}.{details}"
    if isinstance(error, ServerError):
        return f"The archive server failed to {operation}{subject} (HTTP {error.status}); try again later."
    status = f" (HTTP {error.status})" if error.status else ""
    return f"Failed to {operation}{subject}{status}: {error.message}"
