"""MCP server exposing the vault tools over stdio."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import StrictFloat, StrictInt

from vaultsearch.context import VaultContext
from vaultsearch.tools import TOOL_DESCRIPTIONS, handle_tool_call

LOGGER = logging.getLogger(__name__)

SERVER_NAME = "vaultsearch"


def build_server(ctx: VaultContext) -> FastMCP:
    """Register the read-only tools against `ctx` on a new FastMCP server."""
    server = FastMCP(SERVER_NAME)

    def call(name: str, arguments: Dict[str, Any]) -> str:
        result = handle_tool_call(name, arguments, ctx)
        if result.is_error:
            raise ToolError(result.error)
        return result.to_text()

    @server.tool(name="search_similar", description=TOOL_DESCRIPTIONS["search_similar"])
    def search_similar(notePath: str, limit: StrictInt = 10, threshold: StrictFloat = 0.3) -> str:  # noqa: N803
        return call("search_similar", {"notePath": notePath, "limit": limit, "threshold": threshold})

    @server.tool(name="search_by_vector", description=TOOL_DESCRIPTIONS["search_by_vector"])
    def search_by_vector(
        embedding: List[StrictFloat], limit: StrictInt = 10, threshold: StrictFloat = 0.3
    ) -> str:
        return call("search_by_vector", {"embedding": embedding, "limit": limit, "threshold": threshold})

    @server.tool(name="get_note", description=TOOL_DESCRIPTIONS["get_note"])
    def get_note(notePath: str) -> str:  # noqa: N803
        return call("get_note", {"notePath": notePath})

    @server.tool(name="list_indexed", description=TOOL_DESCRIPTIONS["list_indexed"])
    def list_indexed(pattern: Optional[str] = None) -> str:
        return call("list_indexed", {"pattern": pattern})

    @server.tool(name="get_model_info", description=TOOL_DESCRIPTIONS["get_model_info"])
    def get_model_info() -> str:
        return call("get_model_info", {})

    return server


def run_stdio(ctx: VaultContext) -> None:
    server = build_server(ctx)
    LOGGER.info("Server starting on stdio (%d indexed notes)", len(ctx.index))
    server.run(transport="stdio")
    LOGGER.info("Server stopped")
