"""
Two-tier cache: a Redis hot tier in front of a MongoDB durable tier.

Lookup policy (TwoTierCache.get):
1. Unless force_refresh, a fast-store hit is returned as is.
2. Otherwise a durable entry younger than the staleness window that also
   satisfies ``matches`` is returned and copied back into the fast store.
3. Otherwise the origin is fetched; the result is written to the durable
   store and then to the fast store.

Force refresh skips 1 and 2 but still writes both tiers on success.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, Optional, TypeVar

import redis

from repo_insight.core.redis import get_redis
from repo_insight.entities.base import BaseEntity
from repo_insight.entities.git_history_cache import CacheTier
from repo_insight.utils.datetime import ensure_aware_utc, utc_now

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseEntity)


class FastStore:
    """JSON get/set-with-TTL over Redis. Redis errors degrade to a miss."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self._redis = client if client is not None else get_redis()

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._redis.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding undecodable cache value for {key}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            self._redis.setex(key, ttl_seconds, json.dumps(value, default=str))
            return True
        except redis.RedisError as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            return False

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis DEL error for key {key}: {e}")


@dataclass
class CacheResult(Generic[E]):
    value: E
    tier: CacheTier


class TwoTierCache(Generic[E]):
    """
    Generic fast/durable/origin cache for one entity type.

    ``load_durable``/``save_durable`` address the durable store,
    ``fetched_at`` extracts the staleness timestamp from an entry.
    """

    def __init__(
        self,
        fast: FastStore,
        model: type[E],
        load_durable: Callable[[], Optional[E]],
        save_durable: Callable[[E], Any],
        fetched_at: Callable[[E], datetime],
        staleness: timedelta,
        fast_ttl_seconds: int,
    ):
        self.fast = fast
        self.model = model
        self.load_durable = load_durable
        self.save_durable = save_durable
        self.fetched_at = fetched_at
        self.staleness = staleness
        self.fast_ttl_seconds = fast_ttl_seconds

    def get(
        self,
        key: str,
        fetch_origin: Callable[[], E],
        force_refresh: bool = False,
        matches: Optional[Callable[[E], bool]] = None,
        now: Optional[datetime] = None,
    ) -> CacheResult[E]:
        now = now or utc_now()

        if force_refresh:
            logger.info(f"Force refresh requested for {key}")
        else:
            cached = self.fast.get(key)
            if cached is not None:
                try:
                    entry = self.model.model_validate(cached)
                except ValueError as e:
                    logger.warning(f"Ignoring malformed fast-tier entry {key}: {e}")
                else:
                    logger.info(f"CACHE HIT (fast) for {key}")
                    return CacheResult(entry, CacheTier.FAST)

            durable = self.load_durable()
            if durable is not None and self._is_fresh(durable, now) and (
                matches is None or matches(durable)
            ):
                logger.info(f"CACHE HIT (durable) for {key}")
                self._write_fast(key, durable)
                return CacheResult(durable, CacheTier.DURABLE)

            logger.info(f"CACHE MISS for {key}, fetching from origin")

        entry = fetch_origin()
        self.save_durable(entry)
        self._write_fast(key, entry)
        return CacheResult(entry, CacheTier.ORIGIN)

    def _is_fresh(self, entry: E, now: datetime) -> bool:
        fetched = ensure_aware_utc(self.fetched_at(entry))
        if fetched is None:
            return False
        return now - fetched < self.staleness

    def _write_fast(self, key: str, entry: E) -> None:
        self.fast.set(key, entry.model_dump(mode="json"), self.fast_ttl_seconds)
