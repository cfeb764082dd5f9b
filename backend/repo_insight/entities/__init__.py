"""Database entity models - represents the actual structure stored in MongoDB"""

from .analysis_job import (
    AnalysisJob,
    AnalysisMetrics,
    AnalysisStatus,
    FileIndexEntry,
    LanguageStats,
)
from .base import BaseEntity, PyObjectId
from .git_history_cache import CacheTier, Contributor, GitHistoryCacheEntry

__all__ = [
    # Base
    "BaseEntity",
    "PyObjectId",
    # Analysis
    "AnalysisJob",
    "AnalysisMetrics",
    "AnalysisStatus",
    "FileIndexEntry",
    "LanguageStats",
    # Git history
    "CacheTier",
    "Contributor",
    "GitHistoryCacheEntry",
]
