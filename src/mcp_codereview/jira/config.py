"""Jira instance registry built from ``JIRA_INSTANCE_<NAME>_*`` variables."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping

from mcp_codereview.jira.errors import InstanceConfigError, UnknownInstance
from mcp_codereview.utils.urls import is_atlassian_cloud_url, is_http_url

logger = logging.getLogger("mcp-codereview.jira.config")

_INSTANCE_KEY = re.compile(r"^JIRA_INSTANCE_(.+)_(URL|EMAIL|TOKEN)$")
_PARTS = ("URL", "EMAIL", "TOKEN")


@dataclass(frozen=True)
class JiraInstanceConfig:
    """Connection settings for one named Jira instance."""

    name: str
    url: str
    email: str
    token: str = field(repr=False)

    @property
    def is_cloud(self) -> bool:
        return is_atlassian_cloud_url(self.url)


class InstanceRegistry(Mapping[str, JiraInstanceConfig]):
    """Immutable, case-insensitive mapping of instance name to its settings."""

    def __init__(self, instances: Mapping[str, JiraInstanceConfig] | None = None) -> None:
        self._instances = MappingProxyType(
            {name.lower(): cfg for name, cfg in (instances or {}).items()}
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "InstanceRegistry":
        """Discover and validate every declared instance.

        Raises
        ------
        InstanceConfigError
            An instance lacks one of URL, EMAIL or TOKEN, or its URL has no
            http(s) scheme and host.
        """
        env = os.environ if environ is None else environ
        declared: dict[str, str] = {}
        for key in env:
            match = _INSTANCE_KEY.match(key)
            if match:
                declared.setdefault(match.group(1).lower(), match.group(1))

        problems: list[str] = []
        instances: dict[str, JiraInstanceConfig] = {}
        for name, raw in sorted(declared.items()):
            values = {part: (env.get(f"JIRA_INSTANCE_{raw}_{part}") or "").strip() for part in _PARTS}
            missing = [f"JIRA_INSTANCE_{raw}_{part}" for part in _PARTS if not values[part]]
            if missing:
                problems.append(f"{name}: missing {', '.join(missing)}")
                continue
            if not is_http_url(values["URL"]):
                problems.append(f"{name}: JIRA_INSTANCE_{raw}_URL is not an http(s) URL")
                continue
            instances[name] = JiraInstanceConfig(
                name=name,
                url=values["URL"].rstrip("/"),
                email=values["EMAIL"],
                token=values["TOKEN"],
            )
        if problems:
            raise InstanceConfigError(problems)

        if instances:
            for cfg in instances.values():
                logger.info("Registered Jira instance: %s (%s)", cfg.name, cfg.url)
        else:
            logger.warning(
                "No Jira instances configured. Set JIRA_INSTANCE_<NAME>_URL, "
                "JIRA_INSTANCE_<NAME>_EMAIL and JIRA_INSTANCE_<NAME>_TOKEN."
            )
        return cls(instances)

    def resolve(self, name: str) -> JiraInstanceConfig:
        """Case-insensitive lookup; raises :class:`UnknownInstance`."""
        if name not in self:
            raise UnknownInstance(name, self._instances)
        return self._instances[name.lower()]

    def names(self) -> list[str]:
        return sorted(self._instances)

    def __getitem__(self, name: str) -> JiraInstanceConfig:
        if not isinstance(name, str):
            raise KeyError(name)
        return self._instances[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._instances

    def __iter__(self) -> Iterator[str]:
        return iter(self._instances)

    def __len__(self) -> int:
        return len(self._instances)
