from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis

from tenantrelay.core.config import get_settings


logger = logging.getLogger(__name__)


_lock_client: Redis | None = None
_lock_client_loop: asyncio.AbstractEventLoop | None = None
_lock_client_guard = asyncio.Lock()


async def get_lock_redis() -> Redis | None:
    # Redis client backing the cross-worker reconcile lock; None makes callers fall back to the local lock.
    try:
        current_loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    global _lock_client, _lock_client_loop
    if _lock_client is not None and _lock_client_loop is current_loop:
        return _lock_client
    async with _lock_client_guard:
        # A client created on a previous loop cannot be awaited from this one.
        if _lock_client is None or _lock_client_loop is not current_loop:
            try:
                _lock_client = Redis.from_url(get_settings().redis_url, encoding="utf-8", decode_responses=True)
            except ValueError as exc:
                logger.warning("reconcile_lock_redis_unavailable redis_url_invalid", exc_info=exc)
                _lock_client = None
                return None
            _lock_client_loop = current_loop
    return _lock_client
