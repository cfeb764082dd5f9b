"""
Git History Cache Entity - Durable tier of the commit/branch history cache.

One document per (owner, repo, branch). A refresh always replaces the whole
document; entries are never partially updated.

Collection: git_history_cache
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from repo_insight.utils.datetime import utc_now

from .base import BaseEntity


class CacheTier(str, Enum):
    """Where a cached value was served from."""

    FAST = "fast"
    DURABLE = "durable"
    ORIGIN = "origin"

    @property
    def source(self) -> str:
        """Public name of the tier, as reported to API clients."""
        return {
            CacheTier.FAST: "redis",
            CacheTier.DURABLE: "database",
            CacheTier.ORIGIN: "github",
        }[self]


class Contributor(BaseModel):
    name: str
    commits: int = 0
    login: Optional[str] = None
    avatar_url: Optional[str] = None


class GitHistoryCacheEntry(BaseEntity):
    """Cached commit and branch history for one branch of a repository."""

    owner: str
    repo: str
    branch: str
    # 'master' when 'main' was requested but does not exist
    resolved_branch: Optional[str] = None
    default_branch: Optional[str] = None

    # Request shape the entry was fetched with
    per_page: int = 30
    since: Optional[str] = None

    commits: List[Dict[str, Any]] = Field(default_factory=list)  # newest first
    branches: List[Dict[str, Any]] = Field(default_factory=list)

    contributors: List[Contributor] = Field(default_factory=list)
    daily_commits: Dict[str, int] = Field(default_factory=dict)
    trend: int = 0

    fetched_at: datetime = Field(default_factory=utc_now)
