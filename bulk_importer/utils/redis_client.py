"""Redis client construction shared by the import slot counter and health checks."""

from __future__ import annotations

import ssl
from functools import lru_cache
from typing import Any

from redis import Redis

from bulk_importer.core.config import get_settings
from bulk_importer.utils.import_slots import ImportSlots


def uses_tls(url: str) -> bool:
    return url.startswith("rediss://") or ".upstash.io" in url


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client, relaxing certificate checks for TLS providers.

    Upstash URLs given as ``redis://`` are upgraded to ``rediss://``.
    """
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)
    if uses_tls(url):
        kwargs.setdefault("ssl_cert_reqs", ssl.CERT_NONE)
    return Redis.from_url(url, **kwargs)


@lru_cache
def get_import_slots() -> ImportSlots:
    settings = get_settings()
    client = create_redis_client(settings.redis_url, decode_responses=True)
    return ImportSlots(
        client,
        limit=settings.import_concurrency_limit,
        ttl_seconds=settings.import_slot_ttl_seconds,
    )
