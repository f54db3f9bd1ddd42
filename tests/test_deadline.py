"""Tests for the shared deadline budget."""

from __future__ import annotations

from services.remediation.deadline import DeadlineBudget


def test_budget_shrinks_by_elapsed_time() -> None:
    """Each consumed wait should reduce what later phases may use."""
    ticks = iter([10.0, 12.5, 20.0, 21.0])
    budget = DeadlineBudget(5.0, clock=lambda: next(ticks))

    started = budget.now()
    assert budget.consume_since(started) == 2.5
    assert budget.exhausted is False

    started = budget.now()
    assert budget.consume_since(started) == 1.5
    assert budget.remaining == 1.5


def test_budget_reports_exhaustion_at_zero_and_below() -> None:
    """A budget at or below zero is exhausted."""
    assert DeadlineBudget(0.0).exhausted is True
    assert DeadlineBudget(-1.0).exhausted is True

    ticks = iter([0.0, 3.0])
    budget = DeadlineBudget(2.0, clock=lambda: next(ticks))
    budget.consume_since(budget.now())
    assert budget.remaining == -1.0
    assert budget.exhausted is True


def test_clock_going_backwards_consumes_nothing() -> None:
    """Negative elapsed time must never grow the budget."""
    ticks = iter([5.0, 4.0])
    budget = DeadlineBudget(1.0, clock=lambda: next(ticks))
    assert budget.consume_since(budget.now()) == 1.0
