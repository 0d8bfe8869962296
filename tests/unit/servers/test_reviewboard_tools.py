"""Tool-level tests for the Review Board MCP server (in-memory FastMCP client)."""

from __future__ import annotations

import json

import httpx
import pytest
from fastmcp import Client, FastMCP
from fastmcp.exceptions import ToolError

from mcp_codereview.reviewboard.client import ReviewBoardClient
from mcp_codereview.servers import reviewboard as rb_server
from mcp_codereview.servers.dependencies import hide_write_tools
from mcp_codereview.servers.reviewboard import build_reviewboard_server

ALL_TOOLS = {
    "list_review_requests",
    "get_review_request",
    "get_review_diffs",
    "get_diff_content",
    "get_reviews",
    "get_review_comments",
    "get_review_replies",
    "post_review",
    "post_review_reply",
    "search_review_requests",
}


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/review-requests/1/":
        return httpx.Response(200, json={"stat": "ok", "review_request": {"id": 1, "summary": "Fix"}})
    if path == "/api/review-requests/1/diffs/2/":
        return httpx.Response(200, text="diff --git a/x b/x\n")
    if path == "/api/review-requests/1/reviews/" and request.method == "POST":
        return httpx.Response(201, json={"stat": "ok", "review": {"id": 5, "ship_it": True}})
    return httpx.Response(404, json={"stat": "fail", "err": {"code": 100, "msg": "Object does not exist"}})


@pytest.fixture
def patched_server(monkeypatch) -> FastMCP:
    monkeypatch.setenv("REVIEWBOARD_URL", "https://reviews.example.com")
    monkeypatch.setenv("REVIEWBOARD_TOKEN", "static-token")
    monkeypatch.delenv("READ_ONLY_MODE", raising=False)

    def build(config):
        client = ReviewBoardClient.with_api_token(
            config.url, config.api_token, transport=httpx.MockTransport(_handler)
        )
        return client, None

    monkeypatch.setattr(rb_server, "build_reviewboard_client", build)
    return build_reviewboard_server()


@pytest.mark.anyio
async def test_all_tools_are_listed(patched_server: FastMCP) -> None:
    async with Client(patched_server) as client:
        tools = await client.list_tools()
    assert {tool.name for tool in tools} == ALL_TOOLS


@pytest.mark.anyio
async def test_get_review_request_returns_json(patched_server: FastMCP) -> None:
    async with Client(patched_server) as client:
        result = await client.call_tool("get_review_request", {"id": 1})
    assert json.loads(result.content[0].text) == {"id": 1, "summary": "Fix"}


@pytest.mark.anyio
async def test_diff_content_is_returned_verbatim(patched_server: FastMCP) -> None:
    async with Client(patched_server) as client:
        result = await client.call_tool("get_diff_content", {"review_request_id": 1, "diff_id": 2})
    assert result.content[0].text == "diff --git a/x b/x\n"


@pytest.mark.anyio
async def test_post_review_writes(patched_server: FastMCP) -> None:
    async with Client(patched_server) as client:
        result = await client.call_tool(
            "post_review", {"review_request_id": 1, "body_top": "Ship it", "ship_it": True}
        )
    assert json.loads(result.content[0].text)["id"] == 5


@pytest.mark.anyio
async def test_api_error_becomes_tool_error(patched_server: FastMCP) -> None:
    async with Client(patched_server) as client:
        with pytest.raises(ToolError, match="Failed to fetch reviews: HTTP 404"):
            await client.call_tool("get_reviews", {"review_request_id": 3})

        # The server keeps serving after a failed call.
        result = await client.call_tool("get_review_request", {"id": 1})
        assert json.loads(result.content[0].text)["id"] == 1


@pytest.mark.anyio
async def test_read_only_mode_blocks_writes(patched_server: FastMCP, monkeypatch) -> None:
    monkeypatch.setenv("READ_ONLY_MODE", "true")
    async with Client(patched_server) as client:
        with pytest.raises(ToolError, match="read-only mode"):
            await client.call_tool("post_review", {"review_request_id": 1, "body_top": "x"})


@pytest.mark.anyio
async def test_hide_write_tools_removes_tagged_tools() -> None:
    server = FastMCP("scratch")

    @server.tool(tags={"read"})
    def reader() -> str:
        return "r"

    @server.tool(tags={"write"})
    def writer() -> str:
        return "w"

    assert await hide_write_tools(server) == ["writer"]
    assert set(await server.get_tools()) == {"reader"}


@pytest.mark.anyio
async def test_each_server_builds_its_own_client(monkeypatch) -> None:
    monkeypatch.setenv("REVIEWBOARD_URL", "https://reviews.example.com")
    monkeypatch.setenv("REVIEWBOARD_TOKEN", "static-token")
    monkeypatch.delenv("READ_ONLY_MODE", raising=False)
    built: list[ReviewBoardClient] = []

    def build(config):
        client = ReviewBoardClient.with_api_token(
            config.url, config.api_token, transport=httpx.MockTransport(_handler)
        )
        built.append(client)
        return client, None

    monkeypatch.setattr(rb_server, "build_reviewboard_client", build)

    for _ in range(2):
        async with Client(build_reviewboard_server()) as client:
            result = await client.call_tool("get_review_request", {"id": 1})
        assert json.loads(result.content[0].text)["id"] == 1

    assert len(built) == 2
    assert built[0] is not built[1]


@pytest.mark.anyio
async def test_unknown_status_is_rejected(patched_server: FastMCP) -> None:
    async with Client(patched_server) as client:
        with pytest.raises(ToolError):
            await client.call_tool("list_review_requests", {"status": "merged"})
