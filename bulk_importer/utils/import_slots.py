"""System-wide ceiling on simultaneously running imports, kept in Redis."""

from __future__ import annotations

import logging
import time

from redis import Redis
from redis.exceptions import RedisError

from bulk_importer.services.errors import PersistenceError

logger = logging.getLogger(__name__)

SLOTS_KEY = "imports:active"


class ImportSlots:
    """Leases held in a sorted set scored by expiry time.

    Acquiring adds the job id and checks its rank, all in one MULTI block,
    so concurrent workers can be refused but never over-admitted. A lease
    for the same job id is renewed rather than counted twice, and leases of
    workers that died are dropped once their expiry passes.
    """

    def __init__(self, redis: Redis, limit: int = 10, ttl_seconds: int = 3600, key: str = SLOTS_KEY):
        self.redis = redis
        self.limit = limit
        self.ttl_seconds = ttl_seconds
        self.key = key

    def acquire(self, job_id: str) -> bool:
        now = time.time()
        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(self.key, "-inf", now)
            pipe.zadd(self.key, {job_id: now + self.ttl_seconds})
            pipe.zrank(self.key, job_id)
            _, _, rank = pipe.execute()
            if rank is not None and rank < self.limit:
                return True
            self.redis.zrem(self.key, job_id)
        except RedisError as e:
            raise PersistenceError(f"Import slot store unavailable: {e}") from e
        logger.info(f"Import concurrency limit {self.limit} reached; job {job_id} must wait")
        return False

    def release(self, job_id: str) -> None:
        try:
            self.redis.zrem(self.key, job_id)
        except RedisError as e:
            logger.warning(f"Failed to release import slot for job {job_id}: {e}")

