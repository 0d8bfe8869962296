"""OAuth 2.0 credential lifecycle for Review Board.

Sub-modules
-----------
clock
    Test-friendly millisecond time source.
state
    CSRF ``state`` generation and constant-time comparison.
models
    Token response, credential record and authorization session dataclasses.
store
    Durable, atomically written credential file.
exchange
    ``authorization_code`` and ``refresh_token`` grants.
callback
    One-shot local redirect listener.
flow
    The interactive setup run.
token_manager
    Long-lived holder that keeps the access token valid.
errors
    Exception types, each naming its remedy.
log_utils
    Loggers tagged with the service and a short flow id.

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .state import generate_state, states_match  # noqa: F401
from .models import (  # noqa: F401
    AuthorizationSession,
    CallbackResult,
    CredentialRecord,
    TokenResponse,
)
from .store import CredentialFile, CredentialStore, default_config_path  # noqa: F401
from .exchange import exchange_code_for_token, refresh_access_token  # noqa: F401
from .callback import CallbackListener  # noqa: F401
from .flow import OAuthSetupSettings, build_authorize_url, run_authorization_flow  # noqa: F401
from .token_manager import TokenManager  # noqa: F401
from .errors import (  # noqa: F401
    AuthorizationCancelled,
    AuthorizationDenied,
    AuthorizationFlowError,
    CallbackTimeout,
    ConfigNotFound,
    ConfigParseError,
    ConfigurationMissing,
    CredentialStoreError,
    CsrfStateMismatch,
    ListenerBindError,
    MalformedCallback,
    OAuthError,
    TokenEndpointError,
    TokenExchangeFailed,
    TokenRefreshFailed,
)
from .log_utils import get_auth_logger  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    # state
    "generate_state",
    "states_match",
    # models
    "AuthorizationSession",
    "CallbackResult",
    "CredentialRecord",
    "TokenResponse",
    # store
    "CredentialFile",
    "CredentialStore",
    "default_config_path",
    # grants
    "exchange_code_for_token",
    "refresh_access_token",
    # setup flow
    "CallbackListener",
    "OAuthSetupSettings",
    "build_authorize_url",
    "run_authorization_flow",
    # runtime
    "TokenManager",
    # errors
    "AuthorizationCancelled",
    "AuthorizationDenied",
    "AuthorizationFlowError",
    "CallbackTimeout",
    "ConfigNotFound",
    "ConfigParseError",
    "ConfigurationMissing",
    "CredentialStoreError",
    "CsrfStateMismatch",
    "ListenerBindError",
    "MalformedCallback",
    "OAuthError",
    "TokenEndpointError",
    "TokenExchangeFailed",
    "TokenRefreshFailed",
    # logging helpers
    "get_auth_logger",
]
