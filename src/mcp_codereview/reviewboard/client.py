"""Async Review Board Web API client.

Authentication is fixed at construction:

* **OAuth** – every outgoing request passes through a request event hook
  that asks the :class:`~mcp_codereview.oauth.token_manager.TokenManager`
  for a valid token and sets ``Authorization: Bearer <token>`` on that
  request only.  If the token manager raises, the request is never sent
  and the OAuth error reaches the caller unchanged.
* **Static token** – a default ``Authorization: token <value>`` header.

Review Board instances often run with self-signed certificates, so TLS
verification is off by default for this client (and only this client).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mcp_codereview.oauth.token_manager import TokenManager
from mcp_codereview.reviewboard.config import ReviewBoardConfig

logger = logging.getLogger("mcp-codereview.reviewboard.client")

DEFAULT_MAX_RESULTS = 25


class ReviewBoardAPIError(RuntimeError):
    """A Review Board API call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def _api_base(service_url: str) -> str:
    return f"{service_url.rstrip('/')}/api"


def _form_bool(value: bool) -> str:
    return "true" if value else "false"


def _describe_http_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        detail = f"HTTP {response.status_code}"
        try:
            payload = response.json()
        except ValueError:
            return detail
        if isinstance(payload, dict):
            err = payload.get("err")
            if isinstance(err, dict) and err.get("msg"):
                detail += f" ({err['msg']})"
        return detail
    return str(exc) or exc.__class__.__name__


class ReviewBoardClient:
    """Thin async wrapper over the Review Board ``/api`` resources."""

    def __init__(
        self,
        *,
        token_manager: TokenManager | None = None,
        base_url: str | None = None,
        api_token: str | None = None,
        verify_ssl: bool = False,
        timeout: float | httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if token_manager is not None and api_token is not None:
            raise ValueError("Pass either token_manager or api_token, not both")
        if token_manager is None and api_token is None:
            raise ValueError("Either token_manager or api_token is required")

        headers = {"Accept": "application/json"}
        event_hooks: dict[str, list[Any]] = {"request": [], "response": []}
        if token_manager is not None:
            service_url = base_url or token_manager.service_base_url
            event_hooks["request"].append(self._inject_bearer)
            self.auth_mode = "oauth"
        else:
            if not base_url:
                raise ValueError("base_url is required with api_token")
            service_url = base_url
            headers["Authorization"] = f"token {api_token}"
            self.auth_mode = "token"

        self._token_manager = token_manager
        self.base_url = _api_base(service_url)
        client_kwargs: dict[str, Any] = {
            "base_url": self.base_url,
            "headers": headers,
            "verify": verify_ssl,
            "event_hooks": event_hooks,
        }
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport
        self._http = httpx.AsyncClient(**client_kwargs)
        logger.info("Review Board client ready for %s (%s auth)", self.base_url, self.auth_mode)

    # ------------------------------------------------------------------ #
    # Construction helpers                                               #
    # ------------------------------------------------------------------ #
    @classmethod
    def with_oauth(cls, token_manager: TokenManager, **kwargs: Any) -> "ReviewBoardClient":
        return cls(token_manager=token_manager, **kwargs)

    @classmethod
    def with_api_token(cls, base_url: str, api_token: str, **kwargs: Any) -> "ReviewBoardClient":
        return cls(base_url=base_url, api_token=api_token, **kwargs)

    @classmethod
    def from_config(
        cls,
        config: ReviewBoardConfig,
        *,
        token_manager: TokenManager | None = None,
        **kwargs: Any,
    ) -> "ReviewBoardClient":
        if config.is_oauth:
            if token_manager is None:
                raise ValueError("OAuth mode requires a token manager")
            return cls.with_oauth(token_manager, verify_ssl=config.verify_ssl, **kwargs)
        if not config.url or not config.api_token:
            raise ValueError("Static token mode requires REVIEWBOARD_URL and REVIEWBOARD_TOKEN")
        return cls.with_api_token(
            config.url, config.api_token, verify_ssl=config.verify_ssl, **kwargs
        )

    async def _inject_bearer(self, request: httpx.Request) -> None:
        if self._token_manager is None:
            raise RuntimeError("Bearer injection requires a token manager")
        token = await self._token_manager.get_valid_access_token()
        request.headers["Authorization"] = f"Bearer {token}"

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ReviewBoardClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Transport                                                          #
    # ------------------------------------------------------------------ #
    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        params: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._http.request(
                method, path, params=params, data=data, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            detail = _describe_http_error(exc)
            logger.error("Failed to %s: %s", action, detail)
            status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise ReviewBoardAPIError(f"Failed to {action}: {detail}", status_code=status) from exc
        return response

    async def _get_json(self, path: str, *, action: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._request("GET", path, action=action, params=params)
        return self._json(response, action)

    @staticmethod
    def _json(response: httpx.Response, action: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ReviewBoardAPIError(f"Failed to {action}: response is not JSON") from exc

    @staticmethod
    def _field(payload: Any, key: str, action: str) -> Any:
        if not isinstance(payload, dict) or key not in payload:
            raise ReviewBoardAPIError(f"Failed to {action}: response has no '{key}' field")
        return payload[key]

    # ------------------------------------------------------------------ #
    # Review requests                                                    #
    # ------------------------------------------------------------------ #
    async def get_review_requests(
        self,
        *,
        status: str | None = None,
        to_users: str | None = None,
        to_groups: str | None = None,
        repository: str | None = None,
        max_results: int | None = None,
    ) -> dict[str, Any]:
        """List review requests; returns the full list resource payload."""
        params: dict[str, Any] = {"max-results": max_results or DEFAULT_MAX_RESULTS}
        if status:
            params["status"] = status
        if to_users:
            params["to-users"] = to_users
        if to_groups:
            params["to-groups"] = to_groups
        if repository:
            params["repository"] = repository
        logger.debug("Fetching review requests with params %s", params)
        return await self._get_json(
            "/review-requests/", action="fetch review requests", params=params
        )

    async def get_review_request(self, review_request_id: int) -> dict[str, Any]:
        action = f"fetch review request {review_request_id}"
        payload = await self._get_json(f"/review-requests/{review_request_id}/", action=action)
        return self._field(payload, "review_request", action)

    async def search_review_requests(
        self, query: str, *, max_results: int = DEFAULT_MAX_RESULTS
    ) -> dict[str, Any]:
        return await self._get_json(
            "/review-requests/",
            action="search review requests",
            params={"q": query, "max-results": max_results},
        )

    # ------------------------------------------------------------------ #
    # Diffs                                                              #
    # ------------------------------------------------------------------ #
    async def get_diffs(self, review_request_id: int) -> list[dict[str, Any]]:
        action = "fetch diffs"
        payload = await self._get_json(
            f"/review-requests/{review_request_id}/diffs/", action=action
        )
        return self._field(payload, "diffs", action)

    async def get_diff_content(self, review_request_id: int, diff_id: int) -> str:
        """Return the raw patch text of one diff revision."""
        response = await self._request(
            "GET",
            f"/review-requests/{review_request_id}/diffs/{diff_id}/",
            action="fetch diff content",
            headers={"Accept": "text/x-patch"},
        )
        return response.text

    # ------------------------------------------------------------------ #
    # Reviews                                                            #
    # ------------------------------------------------------------------ #
    async def get_reviews(self, review_request_id: int) -> list[dict[str, Any]]:
        action = "fetch reviews"
        payload = await self._get_json(
            f"/review-requests/{review_request_id}/reviews/", action=action
        )
        return self._field(payload, "reviews", action)

    async def get_review_comments(
        self, review_request_id: int, review_id: int
    ) -> list[dict[str, Any]]:
        action = "fetch review comments"
        payload = await self._get_json(
            f"/review-requests/{review_request_id}/reviews/{review_id}/diff-comments/",
            action=action,
        )
        return self._field(payload, "diff_comments", action)

    async def get_review_replies(
        self, review_request_id: int, review_id: int
    ) -> list[dict[str, Any]]:
        action = "fetch review replies"
        payload = await self._get_json(
            f"/review-requests/{review_request_id}/reviews/{review_id}/replies/",
            action=action,
        )
        return self._field(payload, "replies", action)

    async def post_review(
        self,
        review_request_id: int,
        *,
        body_top: str | None = None,
        body_bottom: str | None = None,
        ship_it: bool | None = None,
        public: bool | None = None,
    ) -> dict[str, Any]:
        """Create a review; only the provided fields are sent."""
        form: dict[str, str] = {}
        if body_top is not None:
            form["body_top"] = body_top
        if body_bottom is not None:
            form["body_bottom"] = body_bottom
        if ship_it is not None:
            form["ship_it"] = _form_bool(ship_it)
        if public is not None:
            form["public"] = _form_bool(public)

        action = "post review"
        response = await self._request(
            "POST", f"/review-requests/{review_request_id}/reviews/", action=action, data=form
        )
        logger.info("Posted review to review request %s", review_request_id)
        return self._field(self._json(response, action), "review", action)

    async def post_review_reply(
        self,
        review_request_id: int,
        review_id: int,
        *,
        body_top: str | None = None,
        body_bottom: str | None = None,
        public: bool | None = None,
    ) -> dict[str, Any]:
        form: dict[str, str] = {}
        if body_top is not None:
            form["body_top"] = body_top
        if body_bottom is not None:
            form["body_bottom"] = body_bottom
        if public is not None:
            form["public"] = _form_bool(public)

        action = "post reply"
        response = await self._request(
            "POST",
            f"/review-requests/{review_request_id}/reviews/{review_id}/replies/",
            action=action,
            data=form,
        )
        logger.info("Posted reply to review %s", review_id)
        return self._field(self._json(response, action), "reply", action)
