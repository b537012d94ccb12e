"""
AI Cost/Budget Guard
Tracks spend on topic extraction and refuses calls once the ceiling is hit
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional
import logging

from health_search.exceptions import BudgetExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetSnapshot:
    total_cost: float
    window_cost: float
    request_count: int
    ceiling: float
    remaining_budget: float

    @property
    def average_cost_per_request(self) -> float:
        return self.total_cost / self.request_count if self.request_count else 0.0

    def to_dict(self) -> dict:
        return {
            "totalCost": round(self.total_cost, 6),
            "windowCost": round(self.window_cost, 6),
            "requestCount": self.request_count,
            "averageCostPerRequest": round(self.average_cost_per_request, 6),
            "ceiling": self.ceiling,
            "remainingBudget": round(self.remaining_budget, 6),
        }


class BudgetGuard:
    """
    Spend ceiling for upstream AI calls.

    Without a window the ceiling applies to lifetime spend. With
    `window_seconds`, the spend counted against the ceiling resets at each
    window boundary; the lifetime total keeps growing either way.
    """

    def __init__(
        self,
        ceiling: float,
        window_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        if ceiling < 0:
            raise ValueError("ceiling must be non-negative")
        self.ceiling = ceiling
        self.window_seconds = window_seconds or None
        self._clock = clock
        self._lock = asyncio.Lock()
        self._total_cost = 0.0
        self._request_count = 0
        self._window_cost = 0.0
        self._window_start = clock()

    def _roll_window(self, now: float) -> None:
        if self.window_seconds is None:
            return
        if now - self._window_start >= self.window_seconds:
            elapsed_windows = int((now - self._window_start) // self.window_seconds)
            self._window_start += elapsed_windows * self.window_seconds
            self._window_cost = 0.0

    def _counted_spend(self) -> float:
        return self._window_cost if self.window_seconds else self._total_cost

    async def check(self) -> None:
        """Raise BudgetExceeded if no budget remains."""
        async with self._lock:
            self._roll_window(self._clock())
            spent = self._counted_spend()
            if spent >= self.ceiling:
                logger.warning(
                    f"[Budget] Ceiling reached: ${spent:.6f} of ${self.ceiling:.2f}"
                )
                raise BudgetExceeded(spent, self.ceiling)

    async def record(self, cost: float) -> None:
        """Add spend for a completed upstream call."""
        if cost < 0:
            raise ValueError("cost must be non-negative")
        async with self._lock:
            self._roll_window(self._clock())
            self._total_cost += cost
            self._window_cost += cost
            self._request_count += 1

    async def snapshot(self) -> BudgetSnapshot:
        async with self._lock:
            self._roll_window(self._clock())
            return BudgetSnapshot(
                total_cost=self._total_cost,
                window_cost=self._window_cost,
                request_count=self._request_count,
                ceiling=self.ceiling,
                remaining_budget=max(0.0, self.ceiling - self._counted_spend()),
            )
