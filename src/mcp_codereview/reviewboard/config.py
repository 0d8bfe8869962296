"""Configuration for the Review Board client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping

from mcp_codereview.oauth.store import default_config_path
from mcp_codereview.utils.environment import env_flag

AuthMode = Literal["token", "oauth"]


@dataclass(frozen=True)
class ReviewBoardConfig:
    """How to reach Review Board and which authentication mode to use.

    ``token`` mode sends a static API token; ``oauth`` mode reads the
    credential file written by ``mcp-codereview-oauth-setup``.
    """

    auth_mode: AuthMode
    url: str | None = None
    api_token: str | None = None
    oauth_config_path: Path | None = None
    verify_ssl: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReviewBoardConfig":
        """Pick the authentication mode from the environment.

        A complete ``REVIEWBOARD_URL`` + ``REVIEWBOARD_TOKEN`` pair selects
        token mode; anything else falls back to the OAuth credential file,
        whose absence is reported when the token manager loads it.
        """
        env = os.environ if environ is None else environ
        url = (env.get("REVIEWBOARD_URL") or "").strip().rstrip("/") or None
        api_token = (env.get("REVIEWBOARD_TOKEN") or "").strip() or None
        verify_ssl = env_flag("REVIEWBOARD_SSL_VERIFY", default=False, environ=env)

        if url and api_token:
            return cls(auth_mode="token", url=url, api_token=api_token, verify_ssl=verify_ssl)
        return cls(
            auth_mode="oauth",
            url=url,
            oauth_config_path=default_config_path(env),
            verify_ssl=verify_ssl,
        )

    @property
    def is_oauth(self) -> bool:
        return self.auth_mode == "oauth"
