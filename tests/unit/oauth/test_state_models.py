"""Unit tests for CSRF state helpers and the credential/token records."""

from __future__ import annotations

import pytest

from mcp_codereview.oauth.models import (
    AuthorizationSession,
    CredentialRecord,
    TokenResponse,
)
from mcp_codereview.oauth.state import generate_state, states_match


# --------------------------------------------------------------------------- #
# state                                                                       #
# --------------------------------------------------------------------------- #
def test_generate_state_has_256_bits_of_hex() -> None:
    state = generate_state()
    assert len(state) == 64
    int(state, 16)
    assert generate_state() != state


def test_generate_state_rejects_short_values() -> None:
    with pytest.raises(ValueError):
        generate_state(8)


def test_states_match_is_exact() -> None:
    assert states_match("abc123", "abc123")
    assert not states_match("abc123", "abc124")
    assert not states_match("abc123", "ABC123")
    assert not states_match("abc123", "")


def test_session_matches_uses_state() -> None:
    session = AuthorizationSession(
        state="s" * 64, redirect_uri="http://localhost:3000/callback", callback_port=3000
    )
    assert session.matches("s" * 64)
    assert not session.matches("t" * 64)


# --------------------------------------------------------------------------- #
# TokenResponse                                                               #
# --------------------------------------------------------------------------- #
def test_token_response_parses_payload() -> None:
    resp = TokenResponse.from_payload(
        {"access_token": "at", "expires_in": "3600", "refresh_token": "rt", "token_type": "Bearer"}
    )
    assert resp.access_token == "at"
    assert resp.expires_in == 3600
    assert resp.refresh_token == "rt"
    assert resp.expires_at(1_000) == 1_000 + 3_600_000


@pytest.mark.parametrize(
    "payload",
    [
        {"expires_in": 3600},
        {"access_token": "", "expires_in": 3600},
        {"access_token": "at"},
        {"access_token": "at", "expires_in": "soon"},
        {"access_token": "at", "expires_in": True},
        ["not", "an", "object"],
    ],
)
def test_token_response_rejects_malformed_payload(payload) -> None:
    with pytest.raises(ValueError):
        TokenResponse.from_payload(payload)


def test_token_response_without_refresh_token() -> None:
    resp = TokenResponse.from_payload({"access_token": "at", "expires_in": 60})
    assert resp.refresh_token is None
    assert resp.token_type == "Bearer"


# --------------------------------------------------------------------------- #
# CredentialRecord                                                            #
# --------------------------------------------------------------------------- #
def test_is_valid_is_strict_about_buffer(make_record) -> None:
    record = make_record(expires_at=10_000)
    assert record.is_valid(now_ms=4_999, buffer_ms=5_000)
    assert not record.is_valid(now_ms=5_000, buffer_ms=5_000)


def test_apply_token_response_keeps_refresh_token_when_not_rotated(make_record) -> None:
    record = make_record()
    record.apply_token_response(
        TokenResponse(access_token="at-new", expires_in=3600), now_ms=1_000
    )
    assert record.access_token == "at-new"
    assert record.refresh_token == "rt-old"
    assert record.expires_at == 1_000 + 3_600_000


def test_apply_token_response_rotates_refresh_token(make_record) -> None:
    record = make_record()
    record.apply_token_response(
        TokenResponse(access_token="at-new", expires_in=60, refresh_token="rt-new"), now_ms=0
    )
    assert record.refresh_token == "rt-new"


def test_to_dict_uses_reviewboard_url_key(make_record) -> None:
    data = make_record(expires_at=123).to_dict()
    assert set(data) == {
        "access_token",
        "refresh_token",
        "token_type",
        "expires_at",
        "client_id",
        "client_secret",
        "reviewboard_url",
    }
    assert CredentialRecord.from_dict(data) == make_record(expires_at=123)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d.pop("refresh_token"),
        lambda d: d.update(expires_at="1700000000000"),
        lambda d: d.update(expires_at=1.5),
        lambda d: d.update(client_id=42),
    ],
)
def test_from_dict_rejects_incomplete_records(make_record, mutate) -> None:
    data = make_record().to_dict()
    mutate(data)
    with pytest.raises(ValueError):
        CredentialRecord.from_dict(data)
