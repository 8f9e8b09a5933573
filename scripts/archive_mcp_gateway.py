#!/usr/bin/env python3
"""
Archive MCP Gateway Server - Entry Point

Thin wrapper around archive_mcp.mcp_gateway.server for running from a checkout
without installing the package.

Usage:
    python scripts/archive_mcp_gateway.py --host 0.0.0.0 --port 3002
    python scripts/archive_mcp_gateway.py --allowed-host archive.internal:3002 --session-ttl none
"""

import sys
from pathlib import Path

# Checkout root on path so archive_mcp is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from archive_mcp.mcp_gateway.server import main  # noqa: E402

if __name__ == "__main__":
    main()
