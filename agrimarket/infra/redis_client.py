import os
from typing import Optional
import redis
from agrimarket.config import CHECKOUT_STATE_REDIS_URL

try:
    from fakeredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

_redis: Optional[redis.Redis] = None

def get_redis() -> redis.Redis:
    """
    Client Redis synchrone pour l'état de caisse.
    - USE_FAKE_REDIS_FOR_TESTS=1: fakeredis en mémoire (tests)
    """
    global _redis
    if _redis is None:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not FakeRedis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            _redis = FakeRedis(decode_responses=True)
        else:
            _redis = redis.from_url(CHECKOUT_STATE_REDIS_URL, encoding="utf-8", decode_responses=True)
    return _redis
