#!/usr/bin/env python3
"""
ContextEngine MCP Gateway Server - Entry Point

Thin wrapper around context_engine.mcp_gateway.server so the gateway can be
started from a checkout without installing the package.

Usage:
    # stdio mode (default) - for local IDE integration
    python scripts/context_engine_gateway.py --api-key KEY

    # HTTP mode - /mcp, /sse, /messages and /ping
    python scripts/context_engine_gateway.py --transport http --port 3000
"""

import sys
from pathlib import Path

# Bootstrap: repo root on path so context_engine is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from context_engine.mcp_gateway.server import main  # noqa: E402

if __name__ == "__main__":
    main()
