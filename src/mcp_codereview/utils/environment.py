"""Utility functions related to environment checking."""

import logging
import os
import re
from typing import Final, Mapping, Tuple

logger = logging.getLogger("mcp-codereview.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")

_JIRA_INSTANCE_KEY = re.compile(r"^JIRA_INSTANCE_(.+)_URL$")


def is_truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def env_flag(name: str, default: bool = False, environ: Mapping[str, str] | None = None) -> bool:
    """Return the boolean value of ``$name``, or *default* when unset or empty."""
    env = os.environ if environ is None else environ
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return is_truthy(raw)


def is_read_only_mode(environ: Mapping[str, str] | None = None) -> bool:
    """True when ``READ_ONLY_MODE`` asks the servers to hide write tools."""
    return env_flag("READ_ONLY_MODE", environ=environ)


def _reviewboard_status(env: Mapping[str, str]) -> tuple[bool, str | None]:
    """
    Decide whether Review Board is usable and how it authenticates.

    A static ``REVIEWBOARD_TOKEN`` wins over OAuth; otherwise the OAuth
    credential file must exist.
    """
    # Imported lazily so environment checks stay free of the OAuth stack.
    from mcp_codereview.oauth.store import default_config_path

    if env.get("REVIEWBOARD_URL") and env.get("REVIEWBOARD_TOKEN"):
        return True, "Using Review Board static API token authentication"
    config_path = default_config_path(env)
    if config_path.is_file():
        return True, f"Using Review Board OAuth 2.0 credentials from {config_path}"
    return False, None


def _jira_instance_names(env: Mapping[str, str]) -> list[str]:
    names = {
        match.group(1).lower()
        for key in env
        if (match := _JIRA_INSTANCE_KEY.match(key))
    }
    return sorted(names)


def get_available_services(environ: Mapping[str, str] | None = None) -> dict[str, bool]:
    """Determine which services are available based on environment variables."""
    env = os.environ if environ is None else environ

    reviewboard_is_setup, message = _reviewboard_status(env)
    if reviewboard_is_setup:
        logger.info(message)
    else:
        logger.info(
            "Review Board is not configured: set REVIEWBOARD_URL and REVIEWBOARD_TOKEN "
            "or run mcp-codereview-oauth-setup."
        )

    jira_names = _jira_instance_names(env)
    if jira_names:
        logger.info("Jira instances configured: %s", ", ".join(jira_names))
    else:
        logger.info("Jira is not configured: no JIRA_INSTANCE_<NAME>_URL variables found.")

    return {"reviewboard": reviewboard_is_setup, "jira": bool(jira_names)}
