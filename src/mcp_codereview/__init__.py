"""MCP servers for Review Board code review and multi-instance Jira."""

__version__ = "0.1.0"
