from __future__ import annotations

from dataclasses import dataclass
from time import time

from django.core.cache import cache

from .errors import RateLimited


@dataclass
class LimitResult:
    allowed: bool
    remaining: int
    retry_after: int


def rate_limit(namespace: str, ident: str, limit: int, window_seconds: int) -> LimitResult:
    """Fixed-window counter kept in the default cache."""
    now = int(time())
    bucket = now // window_seconds
    key = f"rl:{namespace}:{ident}:{bucket}"

    current = cache.get(key, 0)
    if current >= limit:
        return LimitResult(False, 0, (bucket + 1) * window_seconds - now)
    cache.add(key, 0, timeout=window_seconds)
    used = cache.incr(key)
    return LimitResult(True, max(0, limit - used), 0)


def enforce(namespace: str, ident: str, *, limit: int, window_seconds: int, message: str = "Too many requests") -> LimitResult:
    rl = rate_limit(namespace, ident, limit, window_seconds)
    if not rl.allowed:
        raise RateLimited(f"{message}. Try again in {rl.retry_after} seconds.", wait_seconds=rl.retry_after)
    return rl
