from __future__ import annotations

from typing import Any, Dict, List

from mcp import types
from mcp.server.lowlevel import Server

from libs.core.pdfnoodle_client import PdfNoodleClient
from libs.core.render_poller import RenderPoller
from libs.framework.tool_runtime import ToolRegistry
from libs.tools.pdfnoodle_tools import register_pdfnoodle_tools

from .config import Settings

SERVER_NAME = "pdfnoodle-mcp"
SERVER_VERSION = "1.0.0"


def create_tool_registry(settings: Settings, transport: Any = None, sleep: Any = None) -> ToolRegistry:
    def client_factory(api_key: str) -> PdfNoodleClient:
        return PdfNoodleClient(
            api_key,
            base_url=settings.api_base,
            timeout_s=settings.timeout_s,
            transport=transport,
        )

    poller = RenderPoller(
        max_attempts=settings.poll_max_attempts,
        initial_delay_ms=settings.poll_initial_delay_ms,
        max_delay_ms=settings.poll_max_delay_ms,
        jitter=settings.poll_jitter,
        sleep=sleep,
    )
    registry = ToolRegistry()
    register_pdfnoodle_tools(registry, client_factory, poller)
    return registry


def create_mcp_server(registry: ToolRegistry) -> Server:
    server: Server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [
            types.Tool(
                name=spec.name,
                title=spec.title,
                description=spec.description,
                inputSchema=spec.input_schema,
            )
            for spec in registry.list_specs()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        result = await registry.execute(name, arguments)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=result.text)],
            structuredContent=result.data,
            isError=result.is_error,
        )

    return server
