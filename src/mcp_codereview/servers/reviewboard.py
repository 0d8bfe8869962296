"""FastMCP server exposing Review Board tools."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any, Callable, Literal

from fastmcp import Context, FastMCP
from pydantic import Field

from mcp_codereview.oauth.store import CredentialFile
from mcp_codereview.oauth.token_manager import TokenManager
from mcp_codereview.reviewboard.client import ReviewBoardClient
from mcp_codereview.reviewboard.config import ReviewBoardConfig
from mcp_codereview.servers.context import ReviewBoardAppContext
from mcp_codereview.servers.dependencies import (
    LIFESPAN_KEY,
    SURFACED_ERRORS,
    as_tool_error,
    check_write_access,
    get_reviewboard_client,
    to_json,
)
from mcp_codereview.utils.environment import is_read_only_mode

logger = logging.getLogger("mcp-codereview.servers.reviewboard")

ReviewRequestId = Annotated[int, Field(description="The review request ID", ge=1)]
ReviewId = Annotated[int, Field(description="The review ID", ge=1)]


def build_reviewboard_client(
    config: ReviewBoardConfig,
) -> tuple[ReviewBoardClient, TokenManager | None]:
    """Construct the client (and, in OAuth mode, its token manager).

    Raises ``ConfigNotFound`` / ``ConfigParseError`` when OAuth mode is
    selected but the credential file is absent or corrupt.
    """
    if not config.is_oauth:
        return ReviewBoardClient.from_config(config), None
    token_manager = TokenManager(
        CredentialFile(config.oauth_config_path), verify_ssl=config.verify_ssl
    )
    return ReviewBoardClient.from_config(config, token_manager=token_manager), token_manager


@asynccontextmanager
async def reviewboard_lifespan(app: FastMCP) -> AsyncIterator[dict]:
    logger.info("Review Board MCP server lifespan starting...")
    config = ReviewBoardConfig.from_env()
    client, token_manager = build_reviewboard_client(config)
    read_only = is_read_only_mode()
    logger.info(f"Read-only mode: {'ENABLED' if read_only else 'DISABLED'}")
    app_context = ReviewBoardAppContext(
        client=client, token_manager=token_manager, read_only=read_only
    )
    try:
        yield {LIFESPAN_KEY: app_context}
    finally:
        await client.aclose()
        if token_manager is not None:
            await token_manager.aclose()
        logger.info("Review Board MCP server lifespan shutdown complete.")


_TOOLS: list[tuple[Callable[..., Any], set[str]]] = []


def _tool(access: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def register(fn: Callable[..., Any]) -> Callable[..., Any]:
        _TOOLS.append((fn, {"reviewboard", access}))
        return fn

    return register


@_tool("read")
async def list_review_requests(
    ctx: Context,
    status: Annotated[
        Literal["pending", "submitted", "discarded", "all"] | None,
        Field(description="Filter by status: pending, submitted, discarded, or all"),
    ] = None,
    to_users: Annotated[
        str | None,
        Field(description="Filter by username(s) the review is assigned to (comma-separated)"),
    ] = None,
    to_groups: Annotated[
        str | None, Field(description="Filter by group name(s) (comma-separated)")
    ] = None,
    repository: Annotated[str | None, Field(description="Filter by repository name")] = None,
    max_results: Annotated[
        int, Field(description="Maximum number of results to return", ge=1, le=200)
    ] = 25,
) -> str:
    """List review requests from Review Board, with optional filters."""
    client = get_reviewboard_client(ctx)
    try:
        result = await client.get_review_requests(
            status=status,
            to_users=to_users,
            to_groups=to_groups,
            repository=repository,
            max_results=max_results,
        )
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("read")
async def get_review_request(ctx: Context, id: ReviewRequestId) -> str:
    """Get detailed information about a specific review request by ID."""
    client = get_reviewboard_client(ctx)
    try:
        result = await client.get_review_request(id)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("read")
async def get_review_diffs(ctx: Context, review_request_id: ReviewRequestId) -> str:
    """Get the list of diffs for a review request."""
    client = get_reviewboard_client(ctx)
    try:
        result = await client.get_diffs(review_request_id)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("read")
async def get_diff_content(
    ctx: Context,
    review_request_id: ReviewRequestId,
    diff_id: Annotated[int, Field(description="The diff ID", ge=1)],
) -> str:
    """Get the patch text for a specific diff."""
    client = get_reviewboard_client(ctx)
    try:
        return await client.get_diff_content(review_request_id, diff_id)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc


@_tool("read")
async def get_reviews(ctx: Context, review_request_id: ReviewRequestId) -> str:
    """Get all reviews for a review request."""
    client = get_reviewboard_client(ctx)
    try:
        result = await client.get_reviews(review_request_id)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("read")
async def get_review_comments(
    ctx: Context, review_request_id: ReviewRequestId, review_id: ReviewId
) -> str:
    """Get all diff comments for a specific review."""
    client = get_reviewboard_client(ctx)
    try:
        result = await client.get_review_comments(review_request_id, review_id)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("read")
async def get_review_replies(
    ctx: Context, review_request_id: ReviewRequestId, review_id: ReviewId
) -> str:
    """Get all replies to a specific review."""
    client = get_reviewboard_client(ctx)
    try:
        result = await client.get_review_replies(review_request_id, review_id)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("write")
async def post_review(
    ctx: Context,
    review_request_id: ReviewRequestId,
    body_top: Annotated[
        str | None, Field(description="Review text to appear above comments")
    ] = None,
    body_bottom: Annotated[
        str | None, Field(description="Review text to appear below comments")
    ] = None,
    ship_it: Annotated[
        bool | None, Field(description="Whether to mark the review as 'Ship It!'")
    ] = None,
    public: Annotated[
        bool | None, Field(description="Whether to publish the review immediately")
    ] = None,
) -> str:
    """Post a review to a review request."""
    check_write_access(ctx, ReviewBoardAppContext, "post_review")
    client = get_reviewboard_client(ctx)
    try:
        result = await client.post_review(
            review_request_id,
            body_top=body_top,
            body_bottom=body_bottom,
            ship_it=ship_it,
            public=public,
        )
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("write")
async def post_review_reply(
    ctx: Context,
    review_request_id: ReviewRequestId,
    review_id: Annotated[int, Field(description="The review ID to reply to", ge=1)],
    body_top: Annotated[
        str | None, Field(description="Reply text to appear above comments")
    ] = None,
    body_bottom: Annotated[
        str | None, Field(description="Reply text to appear below comments")
    ] = None,
    public: Annotated[
        bool | None, Field(description="Whether to publish the reply immediately")
    ] = None,
) -> str:
    """Post a reply to an existing review."""
    check_write_access(ctx, ReviewBoardAppContext, "post_review_reply")
    client = get_reviewboard_client(ctx)
    try:
        result = await client.post_review_reply(
            review_request_id,
            review_id,
            body_top=body_top,
            body_bottom=body_bottom,
            public=public,
        )
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


@_tool("read")
async def search_review_requests(
    ctx: Context,
    query: Annotated[str, Field(description="Search query text")],
    max_results: Annotated[
        int, Field(description="Maximum number of results to return", ge=1, le=200)
    ] = 25,
) -> str:
    """Search for review requests using a text query."""
    client = get_reviewboard_client(ctx)
    try:
        result = await client.search_review_requests(query, max_results=max_results)
    except SURFACED_ERRORS as exc:
        raise as_tool_error(exc) from exc
    return to_json(result)


def build_reviewboard_server() -> FastMCP:
    """Create a server with every Review Board tool registered.

    Each server owns its lifespan, so a fresh one starts with a fresh client.
    """
    server = FastMCP(
        name="Review Board MCP Service",
        instructions="Tools for reading and reviewing Review Board review requests.",
        lifespan=reviewboard_lifespan,
    )
    for fn, tags in _TOOLS:
        server.tool(fn, tags=set(tags))
    return server


reviewboard_mcp = build_reviewboard_server()
