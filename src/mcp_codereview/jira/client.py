"""Async Jira REST client and a per-instance client pool.

Cloud and self-hosted deployments differ in API version and request shape:

==============  ==============  ===========================  ==============
flavor          base path       description format           search
==============  ==============  ===========================  ==============
cloud           /rest/api/3     Atlassian Document Format    POST /search/jql
self-hosted     /rest/api/2     plain text                   POST /search
==============  ==============  ===========================  ==============

The flavor is derived from the instance URL when the client is built.
"""

from __future__ import annotations

from typing import Any

import httpx

from mcp_codereview.jira.config import InstanceRegistry, JiraInstanceConfig
from mcp_codereview.jira.errors import JiraAPIError
from mcp_codereview.utils.logging import context_logger

ISSUE_FIELDS = (
    "summary",
    "description",
    "status",
    "assignee",
    "reporter",
    "created",
    "updated",
    "priority",
    "issuetype",
    "labels",
    "comment",
)
SEARCH_FIELDS = (
    "summary",
    "status",
    "assignee",
    "reporter",
    "created",
    "updated",
    "priority",
    "issuetype",
)
DEFAULT_SEARCH_LIMIT = 50


def to_adf(text: str) -> dict[str, Any]:
    """Wrap plain text in a minimal Atlassian Document Format document.

    Blank lines separate paragraphs.
    """
    paragraphs = [block for block in text.split("\n\n") if block.strip()]
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": block}]}
            for block in paragraphs
        ],
    }


def _describe_http_error(exc: httpx.HTTPError) -> str:
    if not isinstance(exc, httpx.HTTPStatusError):
        return str(exc) or exc.__class__.__name__
    response = exc.response
    detail = f"HTTP {response.status_code}"
    try:
        payload = response.json()
    except ValueError:
        return detail
    if isinstance(payload, dict):
        messages = list(payload.get("errorMessages") or [])
        errors = payload.get("errors")
        if isinstance(errors, dict):
            messages.extend(f"{k}: {v}" for k, v in errors.items())
        if messages:
            detail += f" ({'; '.join(str(m) for m in messages)})"
    return detail


class JiraClient:
    """REST client bound to one Jira instance (basic auth, email + token)."""

    def __init__(
        self,
        config: JiraInstanceConfig,
        *,
        timeout: float | httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.is_cloud = config.is_cloud
        self.api_path = "/rest/api/3" if self.is_cloud else "/rest/api/2"
        client_kwargs: dict[str, Any] = {
            "base_url": f"{config.url.rstrip('/')}{self.api_path}",
            "auth": httpx.BasicAuth(config.email, config.token),
            "headers": {"Accept": "application/json", "Content-Type": "application/json"},
        }
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport
        self._http = httpx.AsyncClient(**client_kwargs)
        self._log = context_logger("mcp-codereview.jira.client", service="jira", instance=config.name)
        self._log.info("Created %s client", "cloud" if self.is_cloud else "self-hosted")

    @property
    def name(self) -> str:
        return self.config.name

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, *, action: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            detail = _describe_http_error(exc)
            self._log.error("Failed to %s: %s", action, detail)
            status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise JiraAPIError(f"Failed to {action}: {detail}", status_code=status) from exc
        try:
            return response.json()
        except ValueError as exc:
            raise JiraAPIError(f"Failed to {action}: response is not JSON") from exc

    def format_description(self, text: str) -> Any:
        """Cloud takes ADF, self-hosted takes a plain string."""
        return to_adf(text) if self.is_cloud else text

    async def get_issue(self, issue_key: str) -> dict[str, Any]:
        self._log.debug("Fetching issue %s", issue_key)
        return await self._request(
            "GET",
            f"/issue/{issue_key}",
            action=f"fetch issue {issue_key}",
            params={"fields": ",".join(ISSUE_FIELDS)},
        )

    async def search_issues(self, jql: str, max_results: int = DEFAULT_SEARCH_LIMIT) -> dict[str, Any]:
        body = {"jql": jql, "maxResults": max_results, "fields": list(SEARCH_FIELDS)}
        path = "/search/jql" if self.is_cloud else "/search"
        result = await self._request("POST", path, action="search issues", json=body)
        self._log.debug("Search returned %s issues", len(result.get("issues", [])))
        return result

    async def create_issue(
        self,
        project_key: str,
        summary: str,
        issue_type: str = "Task",
        description: str | None = None,
        labels: list[str] | None = None,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "issuetype": {"name": issue_type},
        }
        if description:
            fields["description"] = self.format_description(description)
        if labels:
            fields["labels"] = list(labels)
        result = await self._request(
            "POST", "/issue", action=f"create issue in {project_key}", json={"fields": fields}
        )
        self._log.info("Created issue %s", result.get("key"))
        return result


class JiraClientPool:
    """Lazily builds and caches one :class:`JiraClient` per instance."""

    def __init__(
        self,
        registry: InstanceRegistry,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.registry = registry
        self._transport = transport
        self._clients: dict[str, JiraClient] = {}

    def get(self, instance: str) -> JiraClient:
        """Return the client for *instance*; raises ``UnknownInstance``."""
        config = self.registry.resolve(instance)
        client = self._clients.get(config.name)
        if client is None:
            client = JiraClient(config, transport=self._transport)
            self._clients[config.name] = client
        return client

    def instance_names(self) -> list[str]:
        return self.registry.names()

    async def aclose(self) -> None:
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.aclose()
