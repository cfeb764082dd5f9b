"""Repository for the durable tier of the git history cache."""

from __future__ import annotations

from typing import Optional

from pymongo.database import Database

from repo_insight.entities.git_history_cache import GitHistoryCacheEntry

from .base import BaseRepository


class GitHistoryCacheRepository(BaseRepository[GitHistoryCacheEntry]):
    """Repository for GitHistoryCacheEntry entities."""

    def __init__(self, db: Database):
        super().__init__(db, "git_history_cache", GitHistoryCacheEntry)
        self.collection.create_index(
            [("owner", 1), ("repo", 1), ("branch", 1)],
            unique=True,
            background=True,
        )

    def find_entry(
        self, owner: str, repo: str, branch: str
    ) -> Optional[GitHistoryCacheEntry]:
        return self.find_one({"owner": owner, "repo": repo, "branch": branch})

    def replace_entry(self, entry: GitHistoryCacheEntry) -> GitHistoryCacheEntry:
        """Atomically replace the whole cached document for the entry's key."""
        doc = entry.to_mongo()
        doc.pop("_id", None)
        self.collection.replace_one(
            {"owner": entry.owner, "repo": entry.repo, "branch": entry.branch},
            doc,
            upsert=True,
        )
        return entry
