from __future__ import annotations

import hashlib
import logging

from nexus_news.cache import CacheClient
from nexus_news.errors import RateLimitedError

log = logging.getLogger(__name__)

WINDOW_SEC = 60 * 60


class RateLimiter:
    """Per-user command counter that expires an hour after the last accepted command."""

    def __init__(self, cache: CacheClient, limit: int = 10, window: int = WINDOW_SEC):
        self.cache = cache
        self.limit = limit
        self.window = window

    @staticmethod
    def _key(user_id: str) -> str:
        return "rate_limit:" + hashlib.md5(user_id.encode("utf-8")).hexdigest()

    def usage(self, user_id: str) -> int:
        value = self.cache.get(self._key(user_id))
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    def check(self, user_id: str) -> None:
        if self.usage(user_id) >= self.limit:
            log.info("Rate limit hit for user %s", user_id)
            raise RateLimitedError(f"Rate limit exceeded. Maximum {self.limit} requests per hour.")

    def record(self, user_id: str) -> int:
        count = self.usage(user_id) + 1
        self.cache.set(self._key(user_id), count, self.window)
        return count
