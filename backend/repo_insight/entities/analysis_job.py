"""
Analysis Job Entity - One attempt to index and summarize a repository branch.

Lifecycle: pending -> analyzing -> completed | failed

Results (summary, metrics, file_index, duration) are only meaningful once the
job is completed; the read path redacts them for every other status.

Collection: repo_analyses
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from repo_insight.utils.datetime import utc_now

from .base import BaseEntity


class AnalysisStatus(str, Enum):
    """Analysis job status."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def active(cls) -> List[str]:
        return [cls.PENDING.value, cls.ANALYZING.value]

    @classmethod
    def terminal(cls) -> List[str]:
        return [cls.COMPLETED.value, cls.FAILED.value]


class FileIndexEntry(BaseModel):
    """One indexed file."""

    path: str
    language: str = "Unknown"
    extension: str = ""
    size: int = 0
    lines: int = 0
    content_hash: Optional[str] = None  # git blob sha from the tree listing
    indexed_at: datetime = Field(default_factory=utc_now)


class LanguageStats(BaseModel):
    lines: int = 0
    files: int = 0
    percentage: float = 0.0


class AnalysisMetrics(BaseModel):
    """Derived from the file index, never mutated on its own."""

    file_count: int = 0
    total_lines: int = 0
    total_size: int = 0
    language_count: int = 0
    languages: Dict[str, LanguageStats] = Field(default_factory=dict)
    largest_files: List[FileIndexEntry] = Field(default_factory=list)


class AnalysisJob(BaseEntity):
    """
    Repository analysis attempt.

    Collection: repo_analyses
    """

    # === Repository ===
    repository_id: str
    owner: str
    name: str
    full_name: str
    branch: str = "main"

    # === Ownership ===
    user_id: str

    # === Budget ===
    max_file_size: int = 1024 * 1024
    max_files: int = 10000
    include_tests: bool = True
    include_docs: bool = False

    # === Status ===
    status: AnalysisStatus = AnalysisStatus.PENDING

    # === Soft lock / lease ===
    # Present only while pending or analyzing; backed by a unique partial index.
    active_lock: Optional[str] = None
    lease_token: Optional[str] = None
    version: int = 0

    # === Results ===
    summary: Optional[str] = None
    metrics: Optional[AnalysisMetrics] = None
    file_index: List[FileIndexEntry] = Field(default_factory=list)
    analyzed_at: Optional[datetime] = None
    duration: Optional[int] = None  # milliseconds

    # === Failure ===
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    failed_at: Optional[datetime] = None

    @staticmethod
    def lock_key(owner: str, name: str, user_id: str) -> str:
        return f"{owner}/{name}/{user_id}"

    @property
    def is_completed(self) -> bool:
        return self.status == AnalysisStatus.COMPLETED.value

    @property
    def is_active(self) -> bool:
        return self.status in AnalysisStatus.active()
