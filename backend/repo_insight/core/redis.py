"""Shared Redis client."""

from __future__ import annotations

import logging

import redis

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    global _client
    if _client is None:
        from repo_insight.config import settings

        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("Initialized Redis client")
    return _client
