"""Interactive authorization-code setup for Review Board.

The flow runs once, from a terminal:

1. read the client registration from the environment,
2. start the local callback listener,
3. print (and optionally open) the authorize URL,
4. wait for the redirect and verify the CSRF ``state``,
5. trade the code for tokens and write the credential file.

Nothing is written unless every step succeeds.
"""

from __future__ import annotations

import logging
import os
import uuid
import webbrowser
from dataclasses import dataclass
from typing import Callable, Final, Mapping
from urllib.parse import urlencode

import httpx

from mcp_codereview.oauth.callback import CallbackListener
from mcp_codereview.oauth.clock import Clock, default_clock
from mcp_codereview.oauth.errors import ConfigurationMissing, CsrfStateMismatch
from mcp_codereview.oauth.exchange import authorize_endpoint, exchange_code_for_token
from mcp_codereview.oauth.log_utils import get_auth_logger
from mcp_codereview.oauth.models import AuthorizationSession, CredentialRecord
from mcp_codereview.oauth.state import generate_state
from mcp_codereview.oauth.store import CredentialStore
from mcp_codereview.utils.logging import mask_sensitive

DEFAULT_CALLBACK_PORT: Final[int] = 3000
DEFAULT_SCOPE: Final[str] = "read write"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 300.0

_REQUIRED_ENV: Final[tuple[str, ...]] = (
    "REVIEWBOARD_URL",
    "REVIEWBOARD_CLIENT_ID",
    "REVIEWBOARD_CLIENT_SECRET",
)


@dataclass(frozen=True)
class OAuthSetupSettings:
    """Client registration and listener port for the setup run."""

    base_url: str
    client_id: str
    client_secret: str
    callback_port: int = DEFAULT_CALLBACK_PORT
    scope: str = DEFAULT_SCOPE

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OAuthSetupSettings":
        """Read ``REVIEWBOARD_*`` and ``OAUTH_CALLBACK_PORT``.

        Raises
        ------
        ConfigurationMissing
            A required variable is unset or ``OAUTH_CALLBACK_PORT`` is not a
            port number.
        """
        env = os.environ if environ is None else environ
        missing = [name for name in _REQUIRED_ENV if not env.get(name, "").strip()]
        if missing:
            raise ConfigurationMissing(missing)

        raw_port = env.get("OAUTH_CALLBACK_PORT", "").strip()
        port = DEFAULT_CALLBACK_PORT
        if raw_port:
            try:
                port = int(raw_port)
            except ValueError:
                port = 0
            if not 1 <= port <= 65535:
                raise ConfigurationMissing(
                    ["OAUTH_CALLBACK_PORT"],
                    remedy="Set OAUTH_CALLBACK_PORT to a port number between 1 and 65535",
                )

        return cls(
            base_url=env["REVIEWBOARD_URL"].strip().rstrip("/"),
            client_id=env["REVIEWBOARD_CLIENT_ID"].strip(),
            client_secret=env["REVIEWBOARD_CLIENT_SECRET"].strip(),
            callback_port=port,
        )


def build_authorize_url(settings: OAuthSetupSettings, session: AuthorizationSession) -> str:
    """Return the provider authorize URL for *session*."""
    query = urlencode(
        {
            "client_id": settings.client_id,
            "redirect_uri": session.redirect_uri,
            "response_type": "code",
            "state": session.state,
            "scope": settings.scope,
        }
    )
    return f"{authorize_endpoint(settings.base_url)}?{query}"


def _announce_to_stdout(authorize_url: str) -> None:
    print("\nOpen this URL in your browser to authorize access to Review Board:\n")
    print(f"  {authorize_url}\n")
    print("Waiting for the authorization callback...")


def _open_in_browser(url: str) -> None:
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        logging.getLogger("mcp-codereview.oauth.flow").debug(
            "Could not open a browser: %s", exc
        )
        return
    if not opened:
        logging.getLogger("mcp-codereview.oauth.flow").debug("No browser available")


async def run_authorization_flow(
    settings: OAuthSetupSettings,
    *,
    store: CredentialStore,
    http_client: httpx.AsyncClient | None = None,
    clock: Clock = default_clock,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    announce: Callable[[str], None] = _announce_to_stdout,
    open_browser: bool = False,
    listener: CallbackListener | None = None,
) -> CredentialRecord:
    """Run the full authorization-code flow and persist the result.

    *listener* defaults to one bound on ``settings.callback_port``; tests
    pass their own bound to port 0.

    Raises
    ------
    ListenerBindError, AuthorizationDenied, MalformedCallback,
    CallbackTimeout, AuthorizationCancelled, CsrfStateMismatch,
    TokenExchangeFailed
        In each case the credential file is left untouched.
    """
    log = get_auth_logger(
        base_logger_name="mcp-codereview.oauth.flow",
        flow_id=uuid.uuid4().hex,
        service="reviewboard",
    )
    listener = listener or CallbackListener(settings.callback_port)

    await listener.start()
    try:
        session = AuthorizationSession(
            state=generate_state(),
            redirect_uri=listener.redirect_uri,
            callback_port=listener.port,
        )
        authorize_url = build_authorize_url(settings, session)
        log.debug(
            "Built authorize URL state=%s**** redirect_uri=%s",
            mask_sensitive(session.state, 6),
            session.redirect_uri,
        )
        announce(authorize_url)
        if open_browser:
            _open_in_browser(authorize_url)

        result = await listener.wait(timeout)
    finally:
        await listener.stop()

    if not session.matches(result.state):
        log.error("State mismatch in OAuth callback")
        raise CsrfStateMismatch()

    response = await exchange_code_for_token(
        settings.base_url,
        settings.client_id,
        settings.client_secret,
        result.code,
        session.redirect_uri,
        http_client=http_client,
    )
    record = CredentialRecord.from_token_response(
        response,
        now_ms=clock(),
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        service_base_url=settings.base_url,
    )
    store.save(record)
    log.info("OAuth configuration saved to %s", getattr(store, "path", "store"))
    return record
