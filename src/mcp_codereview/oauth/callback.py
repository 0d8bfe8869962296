"""One-shot local listener for the OAuth redirect.

The authorization server redirects the user's browser to
``http://localhost:<port>/callback`` with either ``code`` and ``state`` or an
``error``.  :class:`CallbackListener` serves exactly **one** such request,
resolves the waiting coroutine with the outcome, answers the browser with a
small HTML page, and shuts down.  Any later callback gets a *410 Gone* page;
requests to other paths get a 404 and do not consume the listener.

The socket is bound by the listener itself before uvicorn starts, so a busy
port surfaces as :class:`ListenerBindError` instead of a uvicorn exit.

SECURITY NOTE
-------------
Neither the code nor the state is ever logged.
"""

from __future__ import annotations

import asyncio
import html
import logging
import os
import socket

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from mcp_codereview.oauth.errors import (
    AuthorizationCancelled,
    AuthorizationDenied,
    CallbackTimeout,
    ListenerBindError,
    MalformedCallback,
)
from mcp_codereview.oauth.models import CallbackResult

_LOG = logging.getLogger("mcp-codereview.oauth.callback")

DEFAULT_CALLBACK_PATH = "/callback"
_STARTUP_POLL_SECONDS = 0.01


def _html_page(title: str, body: str, status: int = 200) -> HTMLResponse:
    """Return a tiny success / error HTML page."""
    content = (
        "<!doctype html><html lang='en'>"
        "<head><meta charset='utf-8'><title>"
        f"{html.escape(title)}</title></head><body><h1>{html.escape(title)}</h1>"
        f"<p>{html.escape(body)}</p></body></html>"
    )
    return HTMLResponse(content, status_code=status)


class CallbackListener:
    """Serve a single OAuth redirect on ``host:port``.

    Use as an async context manager, or call :meth:`start` / :meth:`stop`
    explicitly.  ``port=0`` picks a free port; :attr:`port` then holds the
    actual one after :meth:`start`.
    """

    def __init__(
        self,
        port: int,
        *,
        host: str = "127.0.0.1",
        path: str = DEFAULT_CALLBACK_PATH,
        redirect_host: str = "localhost",
    ) -> None:
        self.port = port
        self.host = host
        self.path = path
        self.redirect_host = redirect_host
        self._outcome: asyncio.Future[CallbackResult] | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self.app = Starlette(routes=[Route(self.path, self._handle_callback, methods=["GET"])])

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.redirect_host}:{self.port}{self.path}"

    @property
    def handled(self) -> bool:
        return self._outcome is not None and self._outcome.done()

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    async def __aenter__(self) -> "CallbackListener":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def start(self) -> None:
        """Bind the port and start serving.

        Raises
        ------
        ListenerBindError
            The port could not be bound.
        """
        if self._serve_task is not None:
            raise RuntimeError("listener already started")

        sock = self._bind()
        self._outcome = asyncio.get_running_loop().create_future()
        config = uvicorn.Config(
            self.app,
            lifespan="off",
            log_config=None,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise ListenerBindError(self.port, "listener exited during startup")
            await asyncio.sleep(_STARTUP_POLL_SECONDS)
        _LOG.info("Callback server listening on %s", self.redirect_uri)

    async def stop(self) -> None:
        """Stop accepting connections and wait for the server to shut down."""
        task, self._serve_task = self._serve_task, None
        if self._server is not None:
            self._server.should_exit = True
        if task is not None:
            await task
            _LOG.debug("Callback server stopped")

    async def wait(self, timeout: float | None = None) -> CallbackResult:
        """Suspend until the callback arrives, then tear the listener down.

        Raises
        ------
        AuthorizationDenied
            The redirect carried an ``error`` parameter.
        MalformedCallback
            ``code`` or ``state`` was missing.
        CallbackTimeout
            Nothing arrived within *timeout* seconds.
        AuthorizationCancelled
            The server stopped (e.g. on SIGINT) before any callback.
        """
        if self._outcome is None or self._serve_task is None:
            raise RuntimeError("listener not started")
        outcome, serve_task = self._outcome, self._serve_task
        try:
            done, _ = await asyncio.wait(
                {outcome, serve_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if outcome.done():
                return outcome.result()
            if not done:
                raise CallbackTimeout(timeout or 0)
            serve_task.result()
            raise AuthorizationCancelled()
        finally:
            await self.stop()

    # ------------------------------------------------------------------ #
    # Internals                                                          #
    # ------------------------------------------------------------------ #
    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if os.name == "posix":
            # Allow an immediate re-run while old connections sit in TIME_WAIT.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as exc:
            sock.close()
            _LOG.error("Cannot bind callback listener to port %s: %s", self.port, exc)
            raise ListenerBindError(self.port, exc.strerror or str(exc)) from exc
        self.port = sock.getsockname()[1]
        return sock

    def _finish(
        self,
        *,
        result: CallbackResult | None = None,
        error: Exception | None = None,
    ) -> None:
        if self._outcome is None:
            raise RuntimeError("listener not started")
        if error is not None:
            self._outcome.set_exception(error)
        else:
            self._outcome.set_result(result)
        if self._server is not None:
            self._server.should_exit = True

    async def _handle_callback(self, request: Request) -> Response:
        if self._outcome is None or self._outcome.done():
            _LOG.warning("Ignoring additional OAuth callback; the listener is single-use")
            return _html_page(
                "Already Handled",
                "This authorization request was already processed.",
                410,
            )

        params = request.query_params
        error = params.get("error")
        if error:
            _LOG.error("OAuth callback received error: %s", error)
            self._finish(error=AuthorizationDenied(error, params.get("error_description")))
            return _html_page("Authorization Failed", f"Error: {error}", 400)

        code = params.get("code")
        state = params.get("state")
        if code and state:
            _LOG.info("Authorization code received")
            self._finish(result=CallbackResult(code=code, state=state))
            return _html_page(
                "Authorization Received",
                "You can close this window and return to the terminal.",
            )

        _LOG.error("OAuth callback missing code or state parameter")
        self._finish(error=MalformedCallback())
        return _html_page("Invalid Request", "Missing code or state parameter.", 400)
