# app/services/token_cache.py
import redis

from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)


class TokenCache:
    """
    Short lived secrets (payment provider access tokens) kept in Redis.
    Expiry is left to Redis (EX), nothing is cleaned up by hand.
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def get(self, key: str) -> str | None:
        return self.redis.get(key)

    @redis_retry()
    def set(self, key: str, value: str, ttl: int) -> bool:
        logger.debug(f"Caching {key} for {ttl}s")
        return bool(self.redis.set(name=key, value=value, ex=ttl))
