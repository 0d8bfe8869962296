"""Multi-instance Jira access."""

from .client import JiraClient, JiraClientPool
from .config import InstanceRegistry, JiraInstanceConfig
from .errors import InstanceConfigError, JiraAPIError, JiraError, UnknownInstance

__all__ = [
    "InstanceConfigError",
    "InstanceRegistry",
    "JiraAPIError",
    "JiraClient",
    "JiraClientPool",
    "JiraError",
    "JiraInstanceConfig",
    "UnknownInstance",
]
