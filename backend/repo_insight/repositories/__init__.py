"""Repository layer for database operations"""

from .analysis_job import AnalysisJobRepository
from .base import BaseRepository
from .git_history_cache import GitHistoryCacheRepository

__all__ = [
    "BaseRepository",
    "AnalysisJobRepository",
    "GitHistoryCacheRepository",
]
