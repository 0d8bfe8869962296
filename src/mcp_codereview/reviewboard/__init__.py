"""Review Board API access."""

from .client import ReviewBoardAPIError, ReviewBoardClient
from .config import ReviewBoardConfig

__all__ = ["ReviewBoardAPIError", "ReviewBoardClient", "ReviewBoardConfig"]
