"""
Git History Service - cached commit/branch history for a repository branch.

Served through the two-tier cache: Redis for 30 minutes, MongoDB for 6 hours,
GitHub otherwise. Contributors, daily commit counts and the 7-day trend are
derived once per origin fetch and cached with the entry.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from pymongo.database import Database

from repo_insight.config import settings
from repo_insight.entities.git_history_cache import Contributor, GitHistoryCacheEntry
from repo_insight.repositories.git_history_cache import GitHistoryCacheRepository
from repo_insight.services.cache_tier import FastStore, TwoTierCache
from repo_insight.services.github.github_client import GitHubClient, get_github_client
from repo_insight.utils.datetime import parse_datetime, utc_now

logger = logging.getLogger(__name__)

TOP_CONTRIBUTORS = 10
TREND_WINDOW_DAYS = 7


def extract_contributors(
    commits: Sequence[Dict[str, Any]], limit: int = TOP_CONTRIBUTORS
) -> List[Contributor]:
    """Group commits by author display name, most active first."""
    counts: Counter[str] = Counter()
    profiles: Dict[str, Dict[str, Any]] = {}

    for commit in commits:
        author = commit.get("author") or {}
        name = author.get("name") or author.get("login") or "Unknown"
        counts[name] += 1
        profiles.setdefault(name, author)

    return [
        Contributor(
            name=name,
            commits=count,
            login=profiles[name].get("login"),
            avatar_url=profiles[name].get("avatar_url"),
        )
        for name, count in counts.most_common(limit)
    ]


def daily_commit_counts(commits: Sequence[Dict[str, Any]]) -> Dict[str, int]:
    """Commit counts per UTC day (``YYYY-MM-DD``), oldest day first."""
    counts: Counter[str] = Counter()
    for commit in commits:
        committed_at = parse_datetime(commit.get("date"), default_now=False)
        if committed_at is None:
            continue
        counts[committed_at.date().isoformat()] += 1
    return dict(sorted(counts.items()))


def calculate_trend(daily_counts: Sequence[int], window: int = TREND_WINDOW_DAYS) -> int:
    """
    Percentage change between the last ``window`` daily buckets and the
    ``window`` buckets before them.
    """
    if len(daily_counts) < 2:
        return 0

    recent = daily_counts[-window:]
    previous = daily_counts[-2 * window : -window]

    recent_avg = sum(recent) / len(recent)
    prev_avg = sum(previous) / len(previous) if previous else 0

    if prev_avg == 0:
        return 100 if recent_avg > 0 else 0
    # halves round up
    return math.floor((recent_avg - prev_avg) / prev_avg * 100 + 0.5)


class GitHistoryService:
    def __init__(self, db: Database, fast_store: Optional[FastStore] = None):
        self.db = db
        self.cache_repo = GitHistoryCacheRepository(db)
        self.fast_store = fast_store or FastStore()

    @staticmethod
    def cache_key(owner: str, repo: str, branch: str, per_page: int, since: Optional[str]) -> str:
        return f"git:history:{owner}:{repo}:{branch}:{per_page}:{since or 'all'}"

    def get_history(
        self,
        owner: str,
        repo: str,
        branch: str = "main",
        per_page: int = 30,
        since: Optional[str] = None,
        force_refresh: bool = False,
        github: Optional[GitHubClient] = None,
    ) -> Dict[str, Any]:
        cache = TwoTierCache(
            fast=self.fast_store,
            model=GitHistoryCacheEntry,
            load_durable=lambda: self.cache_repo.find_entry(owner, repo, branch),
            save_durable=self.cache_repo.replace_entry,
            fetched_at=lambda entry: entry.fetched_at,
            staleness=timedelta(seconds=settings.GIT_HISTORY_DURABLE_STALENESS_SECONDS),
            fast_ttl_seconds=settings.GIT_HISTORY_FAST_TTL_SECONDS,
        )

        def _matches(entry: GitHistoryCacheEntry) -> bool:
            return (
                entry.branch == branch
                and entry.per_page >= per_page
                and entry.since == since
            )

        result = cache.get(
            self.cache_key(owner, repo, branch, per_page, since),
            fetch_origin=lambda: self._fetch_from_github(
                owner, repo, branch, per_page, since, github
            ),
            force_refresh=force_refresh,
            matches=_matches,
        )
        entry = result.value
        commits = entry.commits[:per_page]

        return {
            "commits": commits,
            "branches": entry.branches,
            "repository": f"{owner}/{repo}",
            "branch": entry.resolved_branch or entry.branch,
            "default_branch": entry.default_branch,
            "count": len(commits),
            "contributors": [c.model_dump() for c in entry.contributors],
            "daily_commits": entry.daily_commits,
            "trend": entry.trend,
            "fetched_at": entry.fetched_at,
            "cached": result.tier.source != "github",
            "source": result.tier.source,
        }

    def _fetch_from_github(
        self,
        owner: str,
        repo: str,
        branch: str,
        per_page: int,
        since: Optional[str],
        github: Optional[GitHubClient],
    ) -> GitHistoryCacheEntry:
        logger.info(f"Fetching commit history for {owner}/{repo}@{branch} from GitHub")
        client = github or get_github_client()
        try:
            commits, resolved_branch = client.list_commits(owner, repo, branch, per_page, since)
            branches = client.list_branches(owner, repo)
            default_branch = client.get_repository(owner, repo).get("default_branch")
        finally:
            if github is None:
                client.close()

        daily = daily_commit_counts(commits)
        return GitHistoryCacheEntry(
            owner=owner,
            repo=repo,
            branch=branch,
            resolved_branch=resolved_branch,
            per_page=per_page,
            since=since,
            default_branch=default_branch,
            commits=commits,
            branches=branches,
            contributors=extract_contributors(commits),
            daily_commits=daily,
            trend=calculate_trend(list(daily.values())),
            fetched_at=utc_now(),
        )
