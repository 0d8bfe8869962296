"""Exception types for the Jira instance registry and client."""

from __future__ import annotations

from typing import Any, Iterable


class JiraError(RuntimeError):
    """Base class for Jira errors surfaced to tool callers."""

    code: str = "jira_error"

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class UnknownInstance(JiraError):
    """The caller asked for an instance that is not registered."""

    code = "unknown_instance"

    def __init__(self, name: str, available: Iterable[str]) -> None:
        self.name = name
        self.available = sorted(available)
        listed = ", ".join(self.available) if self.available else "none"
        super().__init__(
            f"Unknown Jira instance: {name}. Available instances: {listed}. "
            "Check the instance name or the JIRA_INSTANCE_<NAME>_URL, _EMAIL and "
            "_TOKEN environment variables"
        )


class InstanceConfigError(JiraError):
    """An instance is declared in the environment but incompletely or badly."""

    code = "instance_config_error"

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__(
            "Invalid Jira instance configuration: "
            + "; ".join(self.problems)
            + ". Set JIRA_INSTANCE_<NAME>_URL, _EMAIL and _TOKEN for every instance"
        )


class JiraAPIError(JiraError):
    """A Jira REST call failed."""

    code = "jira_api_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
