# marketplace/services/lock_service.py
import uuid
from contextlib import contextmanager
from typing import Iterator

import redis
from redis.exceptions import RedisError
from tenacity import Retrying, retry_if_result, stop_after_delay, wait_exponential

from marketplace.domain.errors import ConcurrencyConflict, Unavailable
from marketplace.utils.retry import redis_retry
from marketplace.utils.settings import (
    LOCK_TTL_SECONDS,
    LOCK_WAIT_SECONDS,
    REDIS_SOCKET_TIMEOUT_SECONDS,
    REDIS_URL,
)
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

#compare and delete in one lua call, redis runs scripts atomically so nobody
#can slip in between GET and DEL and lose someone else's lock
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


def cart_key(buyer_id: int) -> str:
    return f"lock:cart:{buyer_id}"


def order_key(reference: str) -> str:
    return f"lock:order:{reference}"


class LockService:
    """
    Per resource key mutual exclusion.

    -acquire: SET key token NX EX ttl
    -release: only by the token owner (lua)
    -hold: context manager that waits up to LOCK_WAIT_SECONDS for the key
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
        )

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        #SET lock:cart:1 "<token>" NX EX 10
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)

    def _acquire_waiting(self, key: str, token: str, ttl: int, wait: float) -> bool:
        retrying = Retrying(
            stop=stop_after_delay(wait),
            wait=wait_exponential(multiplier=0.02, min=0.02, max=0.5),
            retry=retry_if_result(lambda acquired: acquired is False),
            retry_error_callback=lambda state: False,
        )
        return retrying(self.acquire, key, token, ttl)

    @contextmanager
    def hold(
        self,
        key: str,
        ttl: int = LOCK_TTL_SECONDS,
        wait: float = LOCK_WAIT_SECONDS,
    ) -> Iterator[str]:
        token = uuid.uuid4().hex

        try:
            acquired = self._acquire_waiting(key, token, ttl, wait)
        except RedisError as e:
            logger.error(f"Lock backend unavailable for {key}: {e}")
            raise Unavailable("Lock service unavailable, try again") from e

        if not acquired:
            logger.warning(f"Timed out waiting for lock {key}")
            raise ConcurrencyConflict(f"Resource is busy, try again ({key})")

        try:
            yield token
        finally:
            try:
                if not self.release(key, token):
                    logger.warning(f"Lock {key} expired before release")
            except RedisError as e:
                #ttl frees the key anyway
                logger.warning(f"Failed to release lock {key}: {e}")
