"""Dependency providers that pull startup-built clients out of the FastMCP context.

Tool functions call these instead of touching module-level state.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError

from mcp_codereview.jira.client import JiraClientPool
from mcp_codereview.jira.errors import JiraError
from mcp_codereview.oauth.errors import OAuthError
from mcp_codereview.reviewboard.client import ReviewBoardAPIError, ReviewBoardClient
from mcp_codereview.servers.context import JiraAppContext, ReviewBoardAppContext

logger = logging.getLogger("mcp-codereview.servers.dependencies")

LIFESPAN_KEY = "app_lifespan_context"

_C = TypeVar("_C", ReviewBoardAppContext, JiraAppContext)

# Errors whose message is safe and useful to hand back to the caller.
SURFACED_ERRORS: tuple[type[Exception], ...] = (
    OAuthError,
    ReviewBoardAPIError,
    JiraError,
)


def _app_context(ctx: Context, expected: type[_C]) -> _C:
    lifespan_ctx_dict = ctx.request_context.lifespan_context  # type: ignore
    app_ctx = (
        lifespan_ctx_dict.get(LIFESPAN_KEY)
        if isinstance(lifespan_ctx_dict, dict)
        else None
    )
    if not isinstance(app_ctx, expected):
        logger.error("Lifespan context missing %s", expected.__name__)
        raise ToolError("Server is not initialised; restart the MCP server")
    return app_ctx


def get_reviewboard_client(ctx: Context) -> ReviewBoardClient:
    return _app_context(ctx, ReviewBoardAppContext).client


def get_jira_pool(ctx: Context) -> JiraClientPool:
    return _app_context(ctx, JiraAppContext).pool


def check_write_access(ctx: Context, app_type: type[_C], tool_name: str) -> None:
    """Refuse write tools when the server runs in read-only mode."""
    if _app_context(ctx, app_type).read_only:
        logger.warning("Blocked write tool '%s' in read-only mode", tool_name)
        raise ToolError(
            f"Cannot run '{tool_name}': the server is in read-only mode. "
            "Unset READ_ONLY_MODE to allow write operations"
        )


def as_tool_error(exc: Exception) -> ToolError:
    """Wrap a known service error so the server reports it and keeps running."""
    logger.error("Tool call failed: %s", exc)
    return ToolError(str(exc))


def to_json(result: Any) -> str:
    return json.dumps(result, indent=2, ensure_ascii=False)


async def hide_write_tools(server: FastMCP) -> list[str]:
    """Remove every tool tagged ``write`` from *server*; returns their names."""
    tools = await server.get_tools()
    hidden = [name for name, tool in tools.items() if "write" in tool.tags]
    for name in hidden:
        server.remove_tool(name)
    if hidden:
        logger.info("Read-only mode: hiding write tools %s", ", ".join(sorted(hidden)))
    return hidden
