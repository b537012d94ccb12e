"""
Tests for the AI budget guard
"""
import pytest

from health_search.exceptions import BudgetExceeded
from health_search.services.budget_guard import BudgetGuard


@pytest.mark.asyncio
async def test_check_passes_under_ceiling():
    guard = BudgetGuard(ceiling=0.05)
    await guard.record(0.01)

    await guard.check()


@pytest.mark.asyncio
async def test_check_raises_at_ceiling():
    guard = BudgetGuard(ceiling=0.02)
    await guard.record(0.01)
    await guard.record(0.01)

    with pytest.raises(BudgetExceeded) as exc_info:
        await guard.check()

    assert exc_info.value.ceiling == 0.02


@pytest.mark.asyncio
async def test_snapshot_reports_usage():
    guard = BudgetGuard(ceiling=2.0)
    await guard.record(0.5)
    await guard.record(0.25)

    snapshot = await guard.snapshot()

    assert snapshot.request_count == 2
    assert snapshot.total_cost == pytest.approx(0.75)
    assert snapshot.remaining_budget == pytest.approx(1.25)
    assert snapshot.average_cost_per_request == pytest.approx(0.375)
    assert snapshot.to_dict()["requestCount"] == 2


@pytest.mark.asyncio
async def test_window_resets_counted_spend(clock):
    guard = BudgetGuard(ceiling=0.01, window_seconds=60, clock=clock)
    await guard.record(0.01)

    with pytest.raises(BudgetExceeded):
        await guard.check()

    clock.advance(60)
    await guard.check()

    snapshot = await guard.snapshot()
    assert snapshot.window_cost == 0.0
    assert snapshot.total_cost == pytest.approx(0.01)


@pytest.mark.asyncio
async def test_total_cost_is_monotonic(clock):
    guard = BudgetGuard(ceiling=1.0, window_seconds=10, clock=clock)
    totals = []
    for _ in range(3):
        await guard.record(0.1)
        clock.advance(10)
        totals.append((await guard.snapshot()).total_cost)

    assert totals == sorted(totals)
    assert totals[-1] == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_negative_cost_is_rejected():
    guard = BudgetGuard(ceiling=1.0)

    with pytest.raises(ValueError):
        await guard.record(-0.01)
