"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Callable

import pytest

from mcp_codereview.oauth.models import CredentialRecord

RB_URL = "https://reviews.example.com"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_record() -> Callable[..., CredentialRecord]:
    def _make(**overrides: object) -> CredentialRecord:
        values: dict[str, object] = {
            "access_token": "at-old",
            "refresh_token": "rt-old",
            "token_type": "Bearer",
            "expires_at": 0,
            "client_id": "cid",
            "client_secret": "csecret",
            "service_base_url": RB_URL,
        }
        values.update(overrides)
        return CredentialRecord(**values)  # type: ignore[arg-type]

    return _make
