"""FastMCP servers for Review Board and Jira."""

from .jira import build_jira_server, jira_mcp
from .reviewboard import build_reviewboard_server, reviewboard_mcp

__all__ = ["build_jira_server", "build_reviewboard_server", "jira_mcp", "reviewboard_mcp"]
