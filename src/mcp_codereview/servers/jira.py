"""FastMCP server exposing multi-instance Jira tools."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any, Callable

from fastmcp import Context, FastMCP
from pydantic import Field

from mcp_codereview.jira.client import JiraClientPool
from mcp_codereview.jira.config import InstanceRegistry
from mcp_codereview.servers.context import JiraAppContext
from mcp_codereview.servers.dependencies import (
    LIFESPAN_KEY,
    SURFACED_ERRORS,
    as_tool_error,
    check_write_access,
    get_jira_pool,
    to_json,
)
from mcp_codereview.utils.environment import is_read_only_mode

logger = logging.getLogger("mcp-codereview.servers.jira")

InstanceName = Annotated[
    str,
    Field(description="The Jira instance name (see list_instances); case-insensitive"),
]


def build_client_pool(registry: InstanceRegistry) -> JiraClientPool:
    return JiraClientPool(registry)


@asynccontextmanager
async def jira_lifespan(app: FastMCP) -> AsyncIterator[dict]:
    logger.info("Jira MCP server lifespan starting...")
    # Fails fast on a half-configured instance.
    registry = InstanceRegistry.from_env()
    pool = build_client_pool(registry)
    read_only = is_read_only_mode()
    logger.info(f"Read-only mode: {'ENABLED' if read_only else 'DISABLED'}")
    try:
        yield {LIFESPAN_KEY: JiraAppContext(pool=pool, read_only=read_only)}
    finally:
        await pool.aclose()
        logger.info("Jira MCP server lifespan shutdown complete.")


_TOOLS: list[tuple[Callable[..., Any], set[str]]] = []


def _tool(access: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def register(fn: Callable[..., Any]) -> Callable[..., Any]:
        _TOOLS.append((fn, {"jira", access}))
        return fn

    return register


@_tool("read")
async def list_instances(ctx: Context) -> str:
    """List the configured Jira instance names."""
    return to_json(get_jira_pool(ctx).instance_names())


@_tool("read")
async def get_issue(
    ctx: Context,
    instance: InstanceName,
    issue_key: Annotated[str, Field(description="The issue key (e.g., PROJ-123)")],
) -> str:
    """Get detailed information about a specific Jira issue by key."""
    pool = get_jira_pool(ctx)
    try:
        result = await pool.get(instance).get_issue(issue_key)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("read")
async def search_issues(
    ctx: Context,
    instance: InstanceName,
    jql: Annotated[str, Field(description="JQL query string")],
    max_results: Annotated[
        int, Field(description="Maximum number of results to return", ge=1, le=100)
    ] = 50,
) -> str:
    """Search for Jira issues using JQL."""
    pool = get_jira_pool(ctx)
    try:
        result = await pool.get(instance).search_issues(jql, max_results=max_results)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("write")
async def create_issue(
    ctx: Context,
    instance: InstanceName,
    project_key: Annotated[str, Field(description="The project key (e.g., PROJ)")],
    summary: Annotated[str, Field(description="Issue summary")],
    issue_type: Annotated[
        str, Field(description="Issue type name (e.g., Task, Bug, Story)")
    ] = "Task",
    description: Annotated[
        str | None, Field(description="Plain-text description; blank lines split paragraphs")
    ] = None,
    labels: Annotated[list[str] | None, Field(description="Labels to set")] = None,
) -> str:
    """Create a new Jira issue."""
    check_write_access(ctx, JiraAppContext, "create_issue")
    pool = get_jira_pool(ctx)
    try:
        result = await pool.get(instance).create_issue(
            project_key,
            summary,
            issue_type=issue_type,
            description=description,
            labels=labels,
        )
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


def build_jira_server() -> FastMCP:
    server = FastMCP(
        name="Jira MCP Service",
        instructions="Tools for reading and creating issues across several Jira instances.",
        lifespan=jira_lifespan,
    )
    for fn, tags in _TOOLS:
        server.tool(fn, tags=set(tags))
    return server


jira_mcp = build_jira_server()
