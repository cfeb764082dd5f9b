import unittest
from datetime import timedelta
from unittest.mock import MagicMock, patch

from repo_insight.entities.git_history_cache import GitHistoryCacheEntry
from repo_insight.services.cache_tier import FastStore
from repo_insight.services.git_history_service import (
    GitHistoryService,
    calculate_trend,
    daily_commit_counts,
    extract_contributors,
)
from repo_insight.utils.datetime import utc_now


def _commit(name=None, login=None, date="2024-03-01T10:00:00Z"):
    return {"sha": "s", "author": {"name": name, "login": login}, "date": date}


class TestCalculateTrend(unittest.TestCase):

    def test_single_bucket_has_no_trend(self):
        self.assertEqual(calculate_trend([4]), 0)
        self.assertEqual(calculate_trend([]), 0)

    def test_growth_from_zero_is_hundred_percent(self):
        self.assertEqual(calculate_trend([0] * 7 + [5] * 7), 100)

    def test_halving_is_minus_fifty_percent(self):
        self.assertEqual(calculate_trend([10] * 7 + [5] * 7), -50)

    def test_no_activity_is_flat(self):
        self.assertEqual(calculate_trend([0] * 14), 0)

    def test_only_last_fourteen_buckets_count(self):
        self.assertEqual(calculate_trend([100] * 5 + [2] * 7 + [3] * 7), 50)

    def test_half_percent_rounds_up(self):
        self.assertEqual(calculate_trend([8] * 7 + [9] * 7), 13)
        self.assertEqual(calculate_trend([8] * 7 + [7] * 7), -12)


class TestContributors(unittest.TestCase):

    def test_grouped_by_display_name_with_fallbacks(self):
        commits = [
            _commit(name="Ada"),
            _commit(name="Ada"),
            _commit(login="grace"),
            _commit(),
        ]

        contributors = extract_contributors(commits)

        self.assertEqual(
            [(c.name, c.commits) for c in contributors],
            [("Ada", 2), ("grace", 1), ("Unknown", 1)],
        )

    def test_top_ten_only(self):
        commits = [_commit(name=f"dev{i}") for i in range(12) for _ in range(i + 1)]

        contributors = extract_contributors(commits)

        self.assertEqual(len(contributors), 10)
        self.assertEqual(contributors[0].name, "dev11")
        self.assertEqual(contributors[0].commits, 12)


class TestDailyCommitCounts(unittest.TestCase):

    def test_counts_per_day_sorted_ascending(self):
        commits = [
            _commit(date="2024-03-02T09:00:00Z"),
            _commit(date="2024-03-01T23:59:00Z"),
            _commit(date="2024-03-02T18:00:00Z"),
            {"sha": "no-date", "author": {}},
        ]

        self.assertEqual(
            daily_commit_counts(commits), {"2024-03-01": 1, "2024-03-02": 2}
        )


class TestGitHistoryService(unittest.TestCase):

    def setUp(self):
        patcher = patch("repo_insight.services.git_history_service.GitHistoryCacheRepository")
        self.MockCacheRepo = patcher.start()
        self.addCleanup(patcher.stop)
        self.cache_repo = self.MockCacheRepo.return_value
        self.cache_repo.find_entry.return_value = None

        self.fast = MagicMock(spec=FastStore)
        self.fast.get.return_value = None

        self.github = MagicMock()
        self.github.list_commits.return_value = (
            [_commit(name="Ada", date="2024-03-01T10:00:00Z")],
            "master",
        )
        self.github.list_branches.return_value = [{"name": "master", "protected": False, "sha": "s"}]
        self.github.get_repository.return_value = {"default_branch": "master"}

        self.service = GitHistoryService(MagicMock(), fast_store=self.fast)

    def test_origin_fetch_with_master_fallback(self):
        result = self.service.get_history("octocat", "hello", github=self.github)

        self.assertEqual(result["source"], "github")
        self.assertFalse(result["cached"])
        self.assertEqual(result["branch"], "master")
        self.assertEqual(result["default_branch"], "master")
        self.assertEqual(result["count"], 1)
        self.assertEqual(result["contributors"][0]["name"], "Ada")
        self.fast.get.assert_called_once_with("git:history:octocat:hello:main:30:all")

        saved = self.cache_repo.replace_entry.call_args.args[0]
        self.assertEqual(saved.branch, "main")
        self.assertEqual(saved.resolved_branch, "master")
        self.assertEqual(saved.per_page, 30)

    def test_fresh_durable_entry_is_served(self):
        self.cache_repo.find_entry.return_value = GitHistoryCacheEntry(
            owner="octocat",
            repo="hello",
            branch="main",
            per_page=50,
            commits=[_commit(name="Ada") for _ in range(50)],
            fetched_at=utc_now() - timedelta(hours=1),
        )

        result = self.service.get_history("octocat", "hello", per_page=30, github=self.github)

        self.assertEqual(result["source"], "database")
        self.assertTrue(result["cached"])
        self.assertEqual(result["count"], 30)
        self.github.list_commits.assert_not_called()

    def test_durable_entry_with_fewer_commits_is_refetched(self):
        self.cache_repo.find_entry.return_value = GitHistoryCacheEntry(
            owner="octocat",
            repo="hello",
            branch="main",
            per_page=10,
            fetched_at=utc_now(),
        )

        result = self.service.get_history("octocat", "hello", per_page=30, github=self.github)

        self.assertEqual(result["source"], "github")
        self.github.list_commits.assert_called_once_with("octocat", "hello", "main", 30, None)

    def test_force_refresh_rewrites_both_tiers(self):
        self.fast.get.return_value = {"owner": "octocat", "repo": "hello", "branch": "main"}

        result = self.service.get_history(
            "octocat", "hello", force_refresh=True, github=self.github
        )

        self.assertEqual(result["source"], "github")
        self.cache_repo.replace_entry.assert_called_once()
        self.fast.set.assert_called_once()


if __name__ == "__main__":
    unittest.main()
