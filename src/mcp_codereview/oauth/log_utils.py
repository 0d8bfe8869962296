"""Loggers for the OAuth components.

Records carry the service name and, during setup, a short flow id that ties
together the lines of one authorization run. Tokens, codes and the state
value never go into the context.
"""

from __future__ import annotations

import logging

from mcp_codereview.utils.logging import context_logger

FLOW_ID_LENGTH = 6


def get_auth_logger(
    *,
    base_logger_name: str = "mcp-codereview.oauth",
    flow_id: str | None = None,
    service: str = "reviewboard",
    instance: str | None = None,
) -> logging.LoggerAdapter:
    """Return a logger tagged with *service* and a truncated *flow_id*."""
    return context_logger(
        base_logger_name,
        service=service,
        instance=instance,
        flow_id=flow_id[:FLOW_ID_LENGTH] if flow_id else None,
    )
