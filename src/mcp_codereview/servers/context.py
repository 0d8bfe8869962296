from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcp_codereview.jira.client import JiraClientPool
    from mcp_codereview.oauth.token_manager import TokenManager
    from mcp_codereview.reviewboard.client import ReviewBoardClient


@dataclass(frozen=True)
class ReviewBoardAppContext:
    """
    Holds the Review Board client built once at server startup.
    ``token_manager`` is set only in OAuth mode.
    """

    client: ReviewBoardClient
    token_manager: TokenManager | None = None
    read_only: bool = False


@dataclass(frozen=True)
class JiraAppContext:
    """Holds the per-instance Jira client pool built at server startup."""

    pool: JiraClientPool
    read_only: bool = False
