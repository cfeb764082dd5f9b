import json
import unittest
from datetime import timedelta
from unittest.mock import MagicMock

import redis

from repo_insight.entities.git_history_cache import CacheTier, GitHistoryCacheEntry
from repo_insight.services.cache_tier import FastStore, TwoTierCache
from repo_insight.utils.datetime import utc_now

STALENESS = timedelta(hours=6)
FAST_TTL = 1800


def _entry(age=timedelta(0), branch="main", **kwargs):
    return GitHistoryCacheEntry(
        owner="octocat",
        repo="hello",
        branch=branch,
        commits=[{"sha": "abc", "date": "2024-01-01T00:00:00Z"}],
        fetched_at=utc_now() - age,
        **kwargs,
    )


class TestTwoTierCache(unittest.TestCase):

    def setUp(self):
        self.fast = MagicMock(spec=FastStore)
        self.fast.get.return_value = None
        self.load_durable = MagicMock(return_value=None)
        self.save_durable = MagicMock()
        self.origin = MagicMock(return_value=_entry())

    def _cache(self):
        return TwoTierCache(
            fast=self.fast,
            model=GitHistoryCacheEntry,
            load_durable=self.load_durable,
            save_durable=self.save_durable,
            fetched_at=lambda e: e.fetched_at,
            staleness=STALENESS,
            fast_ttl_seconds=FAST_TTL,
        )

    def test_fast_hit_returns_without_other_tiers(self):
        self.fast.get.return_value = _entry().model_dump(mode="json")

        result = self._cache().get("k", self.origin)

        self.assertEqual(result.tier, CacheTier.FAST)
        self.assertEqual(result.tier.source, "redis")
        self.assertEqual(result.value.commits[0]["sha"], "abc")
        self.load_durable.assert_not_called()
        self.origin.assert_not_called()

    def test_durable_entry_just_inside_window_is_served(self):
        durable = _entry(age=timedelta(hours=5, minutes=59))
        self.load_durable.return_value = durable

        result = self._cache().get("k", self.origin)

        self.assertEqual(result.tier.source, "database")
        self.assertIs(result.value, durable)
        self.origin.assert_not_called()
        self.fast.set.assert_called_once_with("k", durable.model_dump(mode="json"), FAST_TTL)

    def test_durable_entry_just_outside_window_goes_to_origin(self):
        self.load_durable.return_value = _entry(age=timedelta(hours=6, minutes=1))

        result = self._cache().get("k", self.origin)

        self.assertEqual(result.tier.source, "github")
        self.origin.assert_called_once()
        self.save_durable.assert_called_once_with(self.origin.return_value)
        self.fast.set.assert_called_once()

    def test_durable_entry_that_does_not_match_goes_to_origin(self):
        self.load_durable.return_value = _entry(branch="develop")

        result = self._cache().get("k", self.origin, matches=lambda e: e.branch == "main")

        self.assertEqual(result.tier, CacheTier.ORIGIN)
        self.origin.assert_called_once()

    def test_force_refresh_skips_reads_and_writes_both_tiers(self):
        self.fast.get.return_value = _entry().model_dump(mode="json")
        self.load_durable.return_value = _entry()

        result = self._cache().get("k", self.origin, force_refresh=True)

        self.assertEqual(result.tier, CacheTier.ORIGIN)
        self.fast.get.assert_not_called()
        self.load_durable.assert_not_called()
        self.save_durable.assert_called_once()
        self.fast.set.assert_called_once()

    def test_origin_failure_propagates_and_writes_nothing(self):
        self.origin.side_effect = RuntimeError("GitHub down")

        with self.assertRaises(RuntimeError):
            self._cache().get("k", self.origin)

        self.save_durable.assert_not_called()
        self.fast.set.assert_not_called()


class TestFastStore(unittest.TestCase):

    def test_get_decodes_json(self):
        client = MagicMock()
        client.get.return_value = json.dumps({"a": 1})

        self.assertEqual(FastStore(client).get("k"), {"a": 1})

    def test_redis_errors_degrade_to_miss(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")
        client.setex.side_effect = redis.ConnectionError("refused")
        store = FastStore(client)

        self.assertIsNone(store.get("k"))
        self.assertFalse(store.set("k", {"a": 1}, 60))

    def test_set_uses_ttl(self):
        client = MagicMock()
        FastStore(client).set("k", {"a": 1}, 60)
        client.setex.assert_called_once_with("k", 60, json.dumps({"a": 1}))


if __name__ == "__main__":
    unittest.main()
