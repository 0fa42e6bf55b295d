"""MCP Gateway tool modules."""

from context_engine.mcp_gateway.tools.engine_tools import TOOL_SPECS, EngineTools

__all__ = ["EngineTools", "TOOL_SPECS"]
