"""Outbound clients for the archive API."""

from archive_mcp.clients.archive_api import ArchiveClient
from archive_mcp.clients.credentials import CredentialStore, Token
from archive_mcp.clients.keyset import KeySetCache, KeySetEntry

__all__ = [
    "ArchiveClient",
    "CredentialStore",
    "Token",
    "KeySetCache",
    "KeySetEntry",
]
