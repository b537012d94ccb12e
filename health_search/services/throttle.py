"""
Request Throttle
================

In-memory, per-client admission control for each endpoint category.

Fixed window semantics:
- The first request from a key opens a window of `duration` seconds
- Up to `points` requests are admitted in that window
- The next request is rejected and the key is blocked until the later of
  the window end and `now + block_duration`

Single-process only. State lives on the instance, which the app factory
owns; nothing is module-global.

Usage:
    throttle = RequestThrottle(settings.rate_limit_quotas())
    admission = await throttle.admit("ip:10.0.0.1", "query")
    if isinstance(admission, Rejected):
        raise RateLimitExceeded(admission.retry_after_seconds)
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple, Union
import logging

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "default"

# Sweep expired states once the table grows past this many keys
SWEEP_THRESHOLD = 10_000


@dataclass(frozen=True)
class RateLimitQuota:
    """`points` requests per `duration` seconds, then blocked for `block_duration`"""
    points: int
    duration: int
    block_duration: int = 0


@dataclass
class RateLimitState:
    consumed: int
    window_end: float
    blocked_until: Optional[float] = None

    def expired(self, now: float) -> bool:
        horizon = max(self.window_end, self.blocked_until or 0.0)
        return now >= horizon


@dataclass(frozen=True)
class Allowed:
    limit: int
    remaining: int
    reset_at: datetime


@dataclass(frozen=True)
class Rejected:
    limit: int
    retry_after_seconds: int
    reset_at: datetime


Admission = Union[Allowed, Rejected]


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class RequestThrottle:
    """
    Fixed-window rate limiter keyed by (category, client_key).

    Check-and-decrement happens under one asyncio lock, so concurrent
    requests from the same client never both take the last point.
    """

    def __init__(
        self,
        quotas: Dict[str, RateLimitQuota],
        clock: Callable[[], float] = time.time,
    ) -> None:
        if DEFAULT_CATEGORY not in quotas:
            raise ValueError("quotas must include a 'default' category")
        self._quotas = dict(quotas)
        self._clock = clock
        self._states: Dict[Tuple[str, str], RateLimitState] = {}
        self._lock = asyncio.Lock()

    def quota_for(self, category: str) -> RateLimitQuota:
        return self._quotas.get(category, self._quotas[DEFAULT_CATEGORY])

    async def admit(self, client_key: str, category: str) -> Admission:
        """
        Consume one point for client_key in category.

        Returns:
            Allowed with remaining points, or Rejected with the wait time
        """
        quota = self.quota_for(category)

        async with self._lock:
            now = self._clock()
            key = (category, client_key)
            state = self._states.get(key)

            if state is not None and state.expired(now):
                state = None

            if state is None:
                if len(self._states) >= SWEEP_THRESHOLD:
                    self._sweep(now)
                state = RateLimitState(consumed=0, window_end=now + quota.duration)
                self._states[key] = state

            if state.blocked_until is not None and now < state.blocked_until:
                return self._reject(quota, state, now)

            if state.consumed >= quota.points:
                state.blocked_until = max(state.window_end, now + quota.block_duration)
                logger.warning(
                    f"[Throttle] Blocked: category={category}, key={client_key[:24]}, "
                    f"until={state.blocked_until:.0f}"
                )
                return self._reject(quota, state, now)

            state.consumed += 1
            return Allowed(
                limit=quota.points,
                remaining=quota.points - state.consumed,
                reset_at=_to_datetime(state.window_end),
            )

    def _reject(self, quota: RateLimitQuota, state: RateLimitState, now: float) -> Rejected:
        unblock_at = state.blocked_until or state.window_end
        return Rejected(
            limit=quota.points,
            retry_after_seconds=max(1, math.ceil(unblock_at - now)),
            reset_at=_to_datetime(unblock_at),
        )

    def _sweep(self, now: float) -> int:
        expired = [key for key, state in self._states.items() if state.expired(now)]
        for key in expired:
            del self._states[key]
        if expired:
            logger.debug(f"[Throttle] Swept {len(expired)} expired keys")
        return len(expired)

    async def clear(self, category: Optional[str] = None) -> int:
        """Drop state, for one category or all of them."""
        async with self._lock:
            if category is None:
                count = len(self._states)
                self._states.clear()
                return count
            keys = [k for k in self._states if k[0] == category]
            for k in keys:
                del self._states[k]
            return len(keys)

    async def get_stats(self, client_key: str, category: str) -> Optional[Dict]:
        async with self._lock:
            state = self._states.get((category, client_key))
            if state is None:
                return None
            quota = self.quota_for(category)
            return {
                "limit": quota.points,
                "consumed": state.consumed,
                "window_end": _to_datetime(state.window_end).isoformat(),
                "blocked": state.blocked_until is not None,
            }
