"""The start-the-engine tool exposed to MCP clients."""

import logging
from typing import Any

from mcp.types import TextContent, Tool

from context_engine.core.api import ContextEngineClient
from context_engine.core.config import ApiClientConfig
from context_engine.core.engine import ContextEngineOrchestrator
from context_engine.core.scaffold import ScaffoldSynchronizer
from context_engine.mcp_gateway.auth import ClientIdentity

_gateway_log = logging.getLogger("context_engine.mcp_gateway")

START_CONTEXT_ENGINE_TOOL = "start_context_engine"

TOOL_SPECS: list[dict[str, Any]] = [
    {
        "name": START_CONTEXT_ENGINE_TOOL,
        "title": "Start Context Engine",
        "description": "Starts the context engine and returns a confirmation message.",
        "input_schema": {
            "type": "object",
            "properties": {
                "projectRoot": {
                    "type": "string",
                    "description": "The project root directory",
                },
            },
            "required": ["projectRoot"],
        },
    },
]


def _make_tool(spec: dict[str, Any]) -> Tool:
    return Tool(
        name=spec["name"],
        title=spec["title"],
        description=spec["description"],
        inputSchema=spec["input_schema"],
    )


class EngineTools:
    """Tool registry for one connection, bound to that connection's identity."""

    def __init__(
        self,
        identity: ClientIdentity,
        api_config: ApiClientConfig | None = None,
        orchestrator: ContextEngineOrchestrator | None = None,
    ) -> None:
        self.identity = identity
        self.orchestrator = orchestrator or ContextEngineOrchestrator(
            ContextEngineClient(identity, api_config),
            ScaffoldSynchronizer(),
        )

    async def list_tools(self) -> list[Tool]:
        return [_make_tool(spec) for spec in TOOL_SPECS]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """Dispatch a tool call.

        Errors propagate; the MCP server reports them to the client as a
        tool execution error.
        """
        _gateway_log.info(
            "tool_call tool=%s client_ip=%s",
            name,
            self.identity.client_ip or "(none)",
            extra={"tool": name, "client_ip": self.identity.client_ip},
        )
        if name != START_CONTEXT_ENGINE_TOOL:
            raise ValueError(f"Unknown tool: {name}")

        args = arguments or {}
        try:
            text = await self.orchestrator.start(args.get("projectRoot"))
        except Exception as e:
            _gateway_log.warning(
                "tool_error tool=%s error=%s",
                name,
                str(e),
                extra={"tool": name, "error": str(e), "error_type": type(e).__name__},
            )
            raise
        return [TextContent(type="text", text=text)]
