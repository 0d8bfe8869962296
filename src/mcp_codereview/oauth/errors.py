"""Exception types raised by the OAuth credential lifecycle.

Only lightweight, **data-carrying** exceptions live here so that the CLI and
the MCP tool layer can turn them into exit codes or tool error results.  Every
error names the remedial action as part of its message.
"""

from __future__ import annotations

from typing import Any

SETUP_COMMAND = "mcp-codereview-oauth-setup"

_RERUN_SETUP = f"Run the OAuth setup again: {SETUP_COMMAND}"


class OAuthError(RuntimeError):
    """Base class for every OAuth credential error."""

    code: str = "oauth_error"
    remedy: str = ""

    def __init__(self, message: str, *, remedy: str | None = None) -> None:
        if remedy is not None:
            self.remedy = remedy
        self.detail = message
        full = f"{message}. {self.remedy}" if self.remedy else message
        super().__init__(full)

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.code, "message": str(self)}


class ConfigurationMissing(OAuthError):
    """Required setup inputs are absent from the environment."""

    code = "configuration_missing"

    def __init__(self, missing: list[str], *, remedy: str | None = None) -> None:
        self.missing = list(missing)
        super().__init__(
            "Missing required environment variables: " + ", ".join(self.missing),
            remedy=remedy
            or "Set the listed environment variables and run the setup again",
        )


# --------------------------------------------------------------------------- #
# Durable credential record                                                   #
# --------------------------------------------------------------------------- #
class CredentialStoreError(OAuthError):
    """The durable credential record could not be used."""

    remedy = _RERUN_SETUP

    def __init__(self, message: str, *, path: str) -> None:
        self.path = path
        super().__init__(message)


class ConfigNotFound(CredentialStoreError):
    code = "config_not_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"OAuth configuration file not found at {path}", path=path)


class ConfigParseError(CredentialStoreError):
    code = "config_parse_error"

    def __init__(self, path: str, reason: str) -> None:
        self.reason = reason
        super().__init__(
            f"OAuth configuration file at {path} is not a valid credential record ({reason})",
            path=path,
        )


# --------------------------------------------------------------------------- #
# Authorization flow                                                          #
# --------------------------------------------------------------------------- #
class AuthorizationFlowError(OAuthError):
    """Fatal error of the interactive authorization-code flow."""

    remedy = f"Start the authorization again with {SETUP_COMMAND}"


class ListenerBindError(AuthorizationFlowError):
    code = "listener_bind_error"

    def __init__(self, port: int, reason: str) -> None:
        self.port = port
        super().__init__(
            f"Cannot listen for the OAuth callback on port {port}: {reason}",
            remedy="Free the port or choose another one with OAUTH_CALLBACK_PORT "
            "(the redirect URI registered on the server must match)",
        )


class CsrfStateMismatch(AuthorizationFlowError):
    code = "csrf_state_mismatch"

    def __init__(self) -> None:
        super().__init__("State mismatch in OAuth callback, possible CSRF attack")


class AuthorizationDenied(AuthorizationFlowError):
    code = "authorization_denied"

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        text = f"Authorization failed: {error}"
        if description:
            text += f" ({description})"
        super().__init__(text)


class MalformedCallback(AuthorizationFlowError):
    code = "malformed_callback"

    def __init__(self) -> None:
        super().__init__("OAuth callback is missing the code or state parameter")


class AuthorizationCancelled(AuthorizationFlowError):
    code = "authorization_cancelled"

    def __init__(self) -> None:
        super().__init__("Callback listener stopped before authorization completed")


class CallbackTimeout(AuthorizationFlowError):
    code = "callback_timeout"

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"No OAuth callback received within {timeout:g} seconds")


# --------------------------------------------------------------------------- #
# Token endpoint                                                              #
# --------------------------------------------------------------------------- #
class TokenEndpointError(OAuthError):
    """The token endpoint rejected a grant or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        data = super().to_payload()
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data


class TokenExchangeFailed(TokenEndpointError):
    code = "token_exchange_failed"
    remedy = (
        "Check the client id, client secret and redirect URI, then run "
        f"{SETUP_COMMAND} again"
    )


class TokenRefreshFailed(TokenEndpointError):
    code = "token_refresh_failed"
    remedy = _RERUN_SETUP