"""Typed records used by the OAuth credential lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Final, Mapping

from mcp_codereview.oauth.state import states_match

# JSON key used on disk for ``CredentialRecord.service_base_url``.
BASE_URL_KEY: Final[str] = "reviewboard_url"

_STRING_FIELDS: Final[tuple[str, ...]] = (
    "access_token",
    "refresh_token",
    "token_type",
    "client_id",
    "client_secret",
    BASE_URL_KEY,
)


@dataclass(frozen=True, slots=True)
class TokenResponse:
    """Successful answer of the ``/oauth2/token/`` endpoint."""

    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    refresh_token: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenResponse":
        """Validate a decoded JSON body.

        Raises
        ------
        ValueError
            If ``access_token`` or ``expires_in`` is missing or malformed.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("token response is not a JSON object")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response missing access_token")
        expires_in = payload.get("expires_in")
        if isinstance(expires_in, bool):
            raise ValueError("token response has invalid expires_in")
        try:
            expires_in = int(expires_in)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise ValueError("token response has invalid expires_in") from None
        refresh_token = payload.get("refresh_token") or None
        return cls(
            access_token=access_token,
            expires_in=expires_in,
            token_type=str(payload.get("token_type") or "Bearer"),
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
        )

    def expires_at(self, now_ms: int) -> int:
        """Absolute expiry in epoch milliseconds, relative to *now_ms*."""
        return now_ms + self.expires_in * 1000


@dataclass(slots=True)
class CredentialRecord:
    """The durable OAuth credential, mirrored one-to-one in the config file."""

    access_token: str
    refresh_token: str
    token_type: str
    expires_at: int
    client_id: str
    client_secret: str
    service_base_url: str

    @classmethod
    def from_token_response(
        cls,
        response: TokenResponse,
        *,
        now_ms: int,
        client_id: str,
        client_secret: str,
        service_base_url: str,
    ) -> "CredentialRecord":
        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token or "",
            token_type=response.token_type,
            expires_at=response.expires_at(now_ms),
            client_id=client_id,
            client_secret=client_secret,
            service_base_url=service_base_url,
        )

    def is_valid(self, now_ms: int, buffer_ms: int) -> bool:
        """True while the token expires strictly after ``now + buffer``."""
        return self.expires_at > now_ms + buffer_ms

    def apply_token_response(self, response: TokenResponse, *, now_ms: int) -> None:
        """Replace the access token and its expiry together.

        The refresh token only changes when the server rotated it.
        """
        self.access_token = response.access_token
        self.token_type = response.token_type
        if response.refresh_token:
            self.refresh_token = response.refresh_token
        self.expires_at = response.expires_at(now_ms)

    def copy(self) -> "CredentialRecord":
        return replace(self)

    # ----- JSON mapping ------------------------------------------------------ #
    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            BASE_URL_KEY: self.service_base_url,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CredentialRecord":
        """Build a record from decoded JSON.

        Raises
        ------
        ValueError
            With a short reason when *data* is not a valid record.
        """
        if not isinstance(data, Mapping):
            raise ValueError("top-level value is not an object")
        for key in _STRING_FIELDS:
            if not isinstance(data.get(key), str):
                raise ValueError(f"field '{key}' missing or not a string")
        expires_at = data.get("expires_at")
        if isinstance(expires_at, bool) or not isinstance(expires_at, int):
            raise ValueError("field 'expires_at' missing or not an integer")
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            token_type=data["token_type"],
            expires_at=expires_at,
            client_id=data["client_id"],
            client_secret=data["client_secret"],
            service_base_url=data[BASE_URL_KEY],
        )


@dataclass(frozen=True, slots=True)
class AuthorizationSession:
    """Transient state of one interactive authorization run."""

    state: str
    redirect_uri: str
    callback_port: int

    def matches(self, returned_state: str) -> bool:
        """Byte-equal, constant-time comparison of the returned state."""
        return states_match(self.state, returned_state)


@dataclass(frozen=True, slots=True)
class CallbackResult:
    """Parameters delivered to the local redirect endpoint."""

    code: str
    state: str
