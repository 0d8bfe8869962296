"""Token manager – keeps the Review Board bearer token valid.

The manager loads the durable :class:`CredentialRecord` once, hands out the
held access token while it is comfortably valid, and performs a
``refresh_token`` grant when the token expires within the safety buffer.

Single-flight refresh
---------------------
Some OAuth servers invalidate a refresh token on first use, so two refreshes
racing each other would lock the user out.  The first caller that finds the
token stale starts the refresh as an :class:`asyncio.Task` and parks it in
``_inflight``; every other caller – including ones issued back-to-back
without the event loop yielding in between – awaits that same task.  Callers
are shielded so one cancelled caller does not cancel the shared refresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Final

import httpx

from mcp_codereview.oauth.clock import Clock, default_clock
from mcp_codereview.oauth.exchange import refresh_access_token
from mcp_codereview.oauth.log_utils import get_auth_logger
from mcp_codereview.oauth.models import CredentialRecord
from mcp_codereview.oauth.store import CredentialStore

# Refresh when the token expires within the next five minutes.
EXPIRY_BUFFER_MS: Final[int] = 5 * 60 * 1000


class TokenManager:
    """Hands out a currently valid access token, refreshing on demand."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = default_clock,
        expiry_buffer_ms: int = EXPIRY_BUFFER_MS,
        verify_ssl: bool = True,
    ) -> None:
        self.store = store
        self._log = get_auth_logger(
            base_logger_name="mcp-codereview.oauth.token_manager",
            service="reviewboard",
        )
        # Raises ConfigNotFound / ConfigParseError – fatal at startup.
        self._record: CredentialRecord = store.load()
        self._clock = clock
        self._buffer_ms = expiry_buffer_ms
        self._http_client = http_client
        self._owns_client = http_client is None
        self._verify_ssl = verify_ssl
        self._inflight: asyncio.Task[str] | None = None
        self._unsaved = False
        self._log.info("OAuth configuration loaded from %s", getattr(store, "path", "store"))

    # ------------------------------------------------------------------ #
    # Read-only views                                                    #
    # ------------------------------------------------------------------ #
    @property
    def service_base_url(self) -> str:
        return self._record.service_base_url

    @property
    def expires_at(self) -> int:
        return self._record.expires_at

    @property
    def record(self) -> CredentialRecord:
        """A copy of the held record."""
        return self._record.copy()

    @property
    def refresh_in_progress(self) -> bool:
        return self._inflight is not None

    def is_token_valid(self) -> bool:
        return self._record.is_valid(self._clock(), self._buffer_ms)

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #
    async def get_valid_access_token(self) -> str:
        """Return an access token that will not expire within the buffer.

        Raises
        ------
        TokenRefreshFailed
            The refresh grant failed; the held record is left untouched and
            the next call tries again.
        """
        if self._unsaved:
            self._persist()

        if self._inflight is None and self.is_token_valid():
            return self._record.access_token

        if self._inflight is None:
            self._log.info("Access token expired or expiring soon, refreshing")
            task = asyncio.create_task(self._run_refresh())
            task.add_done_callback(_retrieve_exception)
            self._inflight = task
        else:
            self._log.debug("Refresh already in flight, awaiting its result")
        return await asyncio.shield(self._inflight)

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #
    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(verify=self._verify_ssl)
        return self._http_client

    async def _run_refresh(self) -> str:
        try:
            return await self._refresh()
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None

    async def _refresh(self) -> str:
        current = self._record
        # Raises TokenRefreshFailed before anything held is touched.
        response = await refresh_access_token(
            current.service_base_url,
            current.client_id,
            current.client_secret,
            current.refresh_token,
            http_client=self._client(),
        )

        updated = current.copy()
        updated.apply_token_response(response, now_ms=self._clock())
        rotated = updated.refresh_token != current.refresh_token
        self._record = updated
        self._unsaved = True
        self._persist()

        self._log.info(
            "Access token refreshed (expires in %ss, refresh token %s)",
            response.expires_in,
            "rotated" if rotated else "kept",
        )
        return updated.access_token

    def _persist(self) -> None:
        """Write the held record; on failure keep it dirty and retry later.

        The new token stays in memory even if the write fails: after rotation
        the old refresh token may already be void on the server.
        """
        try:
            self.store.save(self._record)
        except OSError as exc:
            self._log.error(
                "Could not persist refreshed OAuth configuration (%s); will retry", exc
            )
            return
        self._unsaved = False


def _retrieve_exception(task: asyncio.Task) -> None:
    # Mark the exception as retrieved when every awaiting caller was cancelled.
    if not task.cancelled():
        task.exception()
