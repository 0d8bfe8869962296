"""Unit tests for Jira instance discovery and lookup."""

from __future__ import annotations

import pytest

from mcp_codereview.jira.config import InstanceRegistry
from mcp_codereview.jira.errors import InstanceConfigError, UnknownInstance

ENV = {
    "JIRA_INSTANCE_AMD_URL": "https://amd.atlassian.net/",
    "JIRA_INSTANCE_AMD_EMAIL": "dev@example.com",
    "JIRA_INSTANCE_AMD_TOKEN": "amd-token",
    "JIRA_INSTANCE_ONTRACK_URL": "https://ontrack.example.com",
    "JIRA_INSTANCE_ONTRACK_EMAIL": "dev@example.com",
    "JIRA_INSTANCE_ONTRACK_TOKEN": "ontrack-token",
    "UNRELATED": "x",
}


def test_from_env_discovers_instances_by_pattern() -> None:
    registry = InstanceRegistry.from_env(ENV)
    assert registry.names() == ["amd", "ontrack"]
    amd = registry.resolve("AMD")
    assert amd.url == "https://amd.atlassian.net"
    assert amd.email == "dev@example.com"
    assert amd.is_cloud
    assert not registry["OnTrack"].is_cloud
    assert "Amd" in registry
    assert "foo" not in registry


def test_unknown_instance_lists_registered_names() -> None:
    registry = InstanceRegistry.from_env(ENV)
    with pytest.raises(UnknownInstance) as excinfo:
        registry.resolve("foo")
    message = str(excinfo.value)
    assert "foo" in message
    assert "amd, ontrack" in message
    assert "JIRA_INSTANCE_<NAME>" in message


def test_token_is_not_in_repr() -> None:
    registry = InstanceRegistry.from_env(ENV)
    assert "amd-token" not in repr(registry["amd"])


def test_incomplete_instance_fails_fast() -> None:
    env = dict(ENV)
    del env["JIRA_INSTANCE_ONTRACK_TOKEN"]
    with pytest.raises(InstanceConfigError) as excinfo:
        InstanceRegistry.from_env(env)
    assert "JIRA_INSTANCE_ONTRACK_TOKEN" in str(excinfo.value)


def test_url_without_scheme_fails_fast() -> None:
    env = dict(ENV, JIRA_INSTANCE_AMD_URL="amd.atlassian.net")
    with pytest.raises(InstanceConfigError, match="JIRA_INSTANCE_AMD_URL"):
        InstanceRegistry.from_env(env)


def test_empty_environment_gives_empty_registry() -> None:
    registry = InstanceRegistry.from_env({})
    assert len(registry) == 0
    with pytest.raises(UnknownInstance, match="Available instances: none"):
        registry.resolve("amd")


def test_registry_is_read_only() -> None:
    registry = InstanceRegistry.from_env(ENV)
    with pytest.raises(TypeError):
        registry["new"] = registry["amd"]  # type: ignore[index]


def test_mapping_get_keeps_its_default() -> None:
    registry = InstanceRegistry.from_env(ENV)
    assert registry.get("foo") is None
    assert registry.get("foo", "fallback") == "fallback"
    assert registry.get("AMD").name == "amd"
    with pytest.raises(KeyError):
        registry["foo"]
