"""Calls against the Review Board ``/oauth2/token/`` endpoint.

Two grants are supported: ``authorization_code`` (initial setup) and
``refresh_token`` (token manager).  Both post a form-encoded body and parse
the JSON answer into a :class:`~mcp_codereview.oauth.models.TokenResponse`.

Secrets (codes, tokens, client secret) are never logged.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mcp_codereview.oauth.errors import (
    TokenEndpointError,
    TokenExchangeFailed,
    TokenRefreshFailed,
)
from mcp_codereview.oauth.models import TokenResponse

_LOG = logging.getLogger("mcp-codereview.oauth.exchange")

_FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def token_endpoint(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/oauth2/token/"


def authorize_endpoint(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/oauth2/authorize/"


def _error_payload(resp: httpx.Response) -> Any:
    """Return the remote error body (JSON if possible) for diagnostics."""
    try:
        return resp.json()
    except ValueError:
        return resp.text[:200] or None


def _describe(payload: Any) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        description = payload.get("error_description")
        if error and description:
            return f"{error}: {description}"
        if error:
            return str(error)
    return str(payload) if payload else ""


async def _request_token(
    base_url: str,
    form: dict[str, str],
    *,
    error_cls: type[TokenEndpointError],
    action: str,
    http_client: httpx.AsyncClient | None,
    verify: bool,
) -> TokenResponse:
    url = token_endpoint(base_url)
    client = http_client or httpx.AsyncClient(verify=verify)
    try:
        resp = await client.post(url, data=form, headers=_FORM_HEADERS)
    except httpx.HTTPError as exc:
        _LOG.error("Token request to %s failed: %s", url, exc)
        raise error_cls(f"Failed to {action}: {exc}") from exc
    finally:
        if http_client is None:
            await client.aclose()

    if not resp.is_success:
        payload = _error_payload(resp)
        _LOG.error(
            "Token endpoint returned %s for grant_type=%s: %s",
            resp.status_code,
            form.get("grant_type"),
            payload,
        )
        detail = _describe(payload)
        message = f"Failed to {action}: token endpoint returned {resp.status_code}"
        if detail:
            message += f" ({detail})"
        raise error_cls(message, status_code=resp.status_code, payload=payload)

    try:
        return TokenResponse.from_payload(resp.json())
    except ValueError as exc:
        _LOG.error("Malformed token response for grant_type=%s: %s", form.get("grant_type"), exc)
        raise error_cls(
            f"Failed to {action}: {exc}", status_code=resp.status_code
        ) from exc


async def exchange_code_for_token(
    base_url: str,
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    verify: bool = True,
) -> TokenResponse:
    """Trade an authorization code for an access/refresh token pair.

    Raises
    ------
    TokenExchangeFailed
        On transport errors, non-2xx answers or a malformed body.  The remote
        error payload is attached as ``payload`` when present.
    """
    _LOG.info("Exchanging authorization code for access token")
    response = await _request_token(
        base_url,
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "client_secret": client_secret,
        },
        error_cls=TokenExchangeFailed,
        action="exchange code for token",
        http_client=http_client,
        verify=verify,
    )
    _LOG.info("Obtained access token (expires in %ss)", response.expires_in)
    return response


async def refresh_access_token(
    base_url: str,
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    verify: bool = True,
) -> TokenResponse:
    """Run the ``refresh_token`` grant; raises :class:`TokenRefreshFailed`."""
    return await _request_token(
        base_url,
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        },
        error_cls=TokenRefreshFailed,
        action="refresh access token",
        http_client=http_client,
        verify=verify,
    )
