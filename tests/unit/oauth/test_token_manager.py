"""Unit tests for TokenManager validity checks, refresh and persistence.

Coverage:
* Valid token is returned with no network call
* Expired token triggers exactly one refresh, also under concurrency
* Refresh-token rotation and retention
* Failed refresh leaves the held record untouched; next call retries
* Failed persist keeps the new record and retries the save
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from urllib.parse import parse_qsl

import httpx
import pytest

from mcp_codereview.oauth.errors import ConfigNotFound, TokenRefreshFailed
from mcp_codereview.oauth.models import CredentialRecord
from mcp_codereview.oauth.store import CredentialFile
from mcp_codereview.oauth.token_manager import EXPIRY_BUFFER_MS, TokenManager


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #
class RefreshEndpoint:
    """Scripted token endpoint recording every refresh form it receives."""

    def __init__(self, *responses: httpx.Response, delay: float = 0.0) -> None:
        self.responses = list(responses)
        self.forms: list[dict[str, str]] = []
        self.delay = delay

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.forms.append(dict(parse_qsl(request.content.decode())))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class FlakyStore:
    """In-memory store whose first *failures* saves raise OSError."""

    def __init__(self, record: CredentialRecord, failures: int = 0) -> None:
        self.record = record
        self.saved: list[CredentialRecord] = []
        self.failures = failures

    def load(self) -> CredentialRecord:
        return self.record.copy()

    def save(self, record: CredentialRecord) -> None:
        if self.failures:
            self.failures -= 1
            raise OSError("disk full")
        self.saved.append(record.copy())


def _seed(tmp_path: Path, record: CredentialRecord) -> CredentialFile:
    store = CredentialFile(tmp_path / "oauth-config.json")
    store.save(record)
    return store


def _ok(access_token: str = "AT2", expires_in: int = 3600, **extra) -> httpx.Response:
    return httpx.Response(200, json={"access_token": access_token, "expires_in": expires_in, **extra})


# --------------------------------------------------------------------------- #
# Construction                                                                #
# --------------------------------------------------------------------------- #
def test_missing_file_fails_construction_with_remedy(tmp_path: Path) -> None:
    with pytest.raises(ConfigNotFound) as excinfo:
        TokenManager(CredentialFile(tmp_path / "absent.json"))
    assert "mcp-codereview-oauth-setup" in str(excinfo.value)


# --------------------------------------------------------------------------- #
# Valid path                                                                  #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_valid_token_needs_no_network(tmp_path: Path, clock, make_record) -> None:
    store = _seed(tmp_path, make_record(expires_at=clock() + EXPIRY_BUFFER_MS + 1))
    endpoint = RefreshEndpoint(_ok())
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        first = await manager.get_valid_access_token()
        second = await manager.get_valid_access_token()

    assert first == second == "at-old"
    assert endpoint.forms == []
    assert manager.is_token_valid()


# --------------------------------------------------------------------------- #
# Refresh path                                                                #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_expired_token_refreshes_and_persists(tmp_path: Path, clock, make_record) -> None:
    store = _seed(tmp_path, make_record(expires_at=clock() - 1000))
    endpoint = RefreshEndpoint(_ok("AT2", 3600))
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        token = await manager.get_valid_access_token()

    assert token == "AT2"
    assert endpoint.forms == [
        {
            "grant_type": "refresh_token",
            "refresh_token": "rt-old",
            "client_id": "cid",
            "client_secret": "csecret",
        }
    ]
    persisted = json.loads(store.path.read_text(encoding="utf-8"))
    assert persisted["access_token"] == "AT2"
    assert abs(persisted["expires_at"] - (clock() + 3_600_000)) <= 1_000
    # Not rotated: the previous refresh token is kept on disk.
    assert persisted["refresh_token"] == "rt-old"
    assert manager.expires_at == persisted["expires_at"]


@pytest.mark.anyio
async def test_token_inside_buffer_is_refreshed(tmp_path: Path, clock, make_record) -> None:
    store = _seed(tmp_path, make_record(expires_at=clock() + EXPIRY_BUFFER_MS))
    endpoint = RefreshEndpoint(_ok())
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        assert await manager.get_valid_access_token() == "AT2"
    assert len(endpoint.forms) == 1


@pytest.mark.anyio
async def test_rotated_refresh_token_is_persisted(tmp_path: Path, clock, make_record) -> None:
    store = _seed(tmp_path, make_record(expires_at=0))
    endpoint = RefreshEndpoint(_ok("AT2", 3600, refresh_token="rt-new"))
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        await manager.get_valid_access_token()

    assert store.load().refresh_token == "rt-new"
    assert manager.record.refresh_token == "rt-new"


@pytest.mark.anyio
async def test_concurrent_callers_share_one_refresh(tmp_path: Path, clock, make_record) -> None:
    store = _seed(tmp_path, make_record(expires_at=0))
    endpoint = RefreshEndpoint(_ok("AT2"), delay=0.05)
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        tokens = await asyncio.gather(*(manager.get_valid_access_token() for _ in range(5)))

    assert tokens == ["AT2"] * 5
    assert len(endpoint.forms) == 1
    assert not manager.refresh_in_progress


@pytest.mark.anyio
async def test_cancelled_caller_does_not_cancel_shared_refresh(
    tmp_path: Path, clock, make_record
) -> None:
    store = _seed(tmp_path, make_record(expires_at=0))
    endpoint = RefreshEndpoint(_ok("AT2"), delay=0.05)
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        impatient = asyncio.create_task(manager.get_valid_access_token())
        patient = asyncio.create_task(manager.get_valid_access_token())
        await asyncio.sleep(0.01)
        impatient.cancel()
        assert await patient == "AT2"

    assert len(endpoint.forms) == 1


@pytest.mark.anyio
async def test_failed_refresh_keeps_state_and_retries(tmp_path: Path, clock, make_record) -> None:
    original = make_record(expires_at=0)
    store = _seed(tmp_path, original)
    endpoint = RefreshEndpoint(
        httpx.Response(400, json={"error": "invalid_grant"}),
        _ok("AT3"),
    )
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        with pytest.raises(TokenRefreshFailed) as excinfo:
            await manager.get_valid_access_token()

        assert "mcp-codereview-oauth-setup" in str(excinfo.value)
        assert manager.record == original
        assert store.load() == original
        assert not manager.refresh_in_progress

        assert await manager.get_valid_access_token() == "AT3"

    assert len(endpoint.forms) == 2


@pytest.mark.anyio
async def test_failed_persist_keeps_new_token_and_retries_save(clock, make_record) -> None:
    store = FlakyStore(make_record(expires_at=0), failures=1)
    endpoint = RefreshEndpoint(_ok("AT2", 3600, refresh_token="rt-new"))
    async with endpoint.client() as http:
        manager = TokenManager(store, http_client=http, clock=clock)
        assert await manager.get_valid_access_token() == "AT2"
        assert store.saved == []

        # Still valid: no refresh, but the pending save is retried.
        assert await manager.get_valid_access_token() == "AT2"

    assert len(endpoint.forms) == 1
    (saved,) = store.saved
    assert saved.access_token == "AT2"
    assert saved.refresh_token == "rt-new"
