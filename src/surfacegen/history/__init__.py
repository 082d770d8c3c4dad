"""Session and history management."""

from .history_manager import SessionHistoryManager
from .history_repository import HistoryRepository, SqlHistoryRepository

__all__ = ["HistoryRepository", "SessionHistoryManager", "SqlHistoryRepository"]
