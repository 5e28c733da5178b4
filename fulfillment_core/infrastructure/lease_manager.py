import logging
import threading
import time
import uuid

import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Deletes the key only if we still own it
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

class LeaseManager:
    """
    Short-lived named leases, used to keep two settlement runs from
    overlapping. Redis when reachable, process memory otherwise.
    """

    def __init__(self, redis_url: str | None = None, client=None):
        # 1. Primary store (Redis)
        self.redis = client
        self.redis_available = False
        if self.redis is None and redis_url:
            try:
                self.redis = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=1  # fail fast if Redis is down
                )
            except (RedisError, ValueError) as e:
                logger.warning(f"⚠️ LeaseManager: bad Redis URL ({e}). Using RAM fallback.")
                self.redis = None
        if self.redis is not None:
            try:
                self.redis.ping()
                self.redis_available = True
                logger.info("✅ LeaseManager: Connected to Redis.")
            except RedisError as e:
                logger.warning(f"⚠️ LeaseManager: Redis unreachable ({e}). Using RAM fallback.")

        # 2. Fallback store (RAM): name -> (token, expires_at_monotonic)
        self._memory_store = {}
        self._lock = threading.Lock()

    def acquire(self, name: str, ttl_seconds: int) -> str | None:
        """Returns a token when the lease was taken, None when someone else holds it."""
        key = f"lease:{name}"
        token = uuid.uuid4().hex

        if self.redis_available:
            try:
                if self.redis.set(key, token, nx=True, ex=ttl_seconds):
                    return token
                return None
            except RedisError as e:
                self._handle_redis_error(e)

        with self._lock:
            held = self._memory_store.get(key)
            now = time.monotonic()
            if held and held[1] > now:
                return None
            self._memory_store[key] = (token, now + ttl_seconds)
            return token

    def release(self, name: str, token: str):
        key = f"lease:{name}"

        if self.redis_available:
            try:
                self.redis.eval(_RELEASE_SCRIPT, 1, key, token)
                return
            except RedisError as e:
                self._handle_redis_error(e)

        with self._lock:
            held = self._memory_store.get(key)
            if held and held[0] == token:
                self._memory_store.pop(key, None)

    def _handle_redis_error(self, e):
        """Log error and stop trying Redis for this process."""
        logger.error(f"❌ Redis Error: {e}. Switching to RAM mode.")
        self.redis_available = False
