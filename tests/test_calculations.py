from datetime import date
from types import SimpleNamespace

from calculations import (
    aggregate_transactions,
    consistency_issue,
    goal_progress,
    goal_stats,
    reconcile_status,
)
from models import Goal, PlanningEntry, PlanningStatus, TransactionType

TODAY = date(2025, 3, 15)


def _entry(status: PlanningStatus, due: date, transaction_id=None) -> PlanningEntry:
    return PlanningEntry(
        id=1,
        user_id=1,
        description="Luz",
        amount_cents=15000,
        category="Moradia",
        due_date=due,
        status=status,
        transaction_id=transaction_id,
    )


def _goal(current: int, target: int, target_date: date) -> Goal:
    return Goal(
        id=1,
        user_id=1,
        name="Viagem",
        current_amount_cents=current,
        target_amount_cents=target,
        target_date=target_date,
    )


def test_paid_is_sticky_even_when_past_due():
    entry = _entry(PlanningStatus.paid, date(2025, 1, 1), transaction_id=7)
    assert reconcile_status(entry, TODAY) == PlanningStatus.paid


def test_pending_past_due_reads_as_overdue_without_mutating():
    entry = _entry(PlanningStatus.pending, date(2025, 3, 14))

    assert reconcile_status(entry, TODAY) == PlanningStatus.overdue
    assert entry.status == PlanningStatus.pending


def test_due_today_is_still_pending():
    entry = _entry(PlanningStatus.pending, TODAY)
    assert reconcile_status(entry, TODAY) == PlanningStatus.pending


def test_consistency_issue_detection():
    assert consistency_issue(_entry(PlanningStatus.paid, TODAY)) is not None
    assert consistency_issue(_entry(PlanningStatus.pending, TODAY, 3)) is not None
    assert consistency_issue(_entry(PlanningStatus.paid, TODAY, 3)) is None
    assert consistency_issue(_entry(PlanningStatus.pending, TODAY)) is None


def test_goal_progress_partial():
    progress = goal_progress(_goal(12500, 20000, date(2025, 12, 31)), TODAY)

    assert progress.percent == 62.5
    assert progress.remaining_cents == 7500
    assert progress.is_completed is False
    assert progress.is_overdue is False
    assert progress.days_remaining == 291


def test_completed_goal_is_never_overdue():
    progress = goal_progress(_goal(20000, 20000, date(2025, 3, 14)), TODAY)

    assert progress.is_completed is True
    assert progress.is_overdue is False
    assert progress.days_remaining == -1


def test_progress_is_capped_but_current_may_exceed_target():
    progress = goal_progress(_goal(30000, 20000, date(2026, 1, 1)), TODAY)

    assert progress.percent == 100.0
    assert progress.remaining_cents == 0


def test_goal_stats_counts_each_bucket():
    goals = [
        _goal(20000, 20000, date(2025, 1, 1)),
        _goal(100, 20000, date(2025, 1, 1)),
        _goal(100, 20000, date(2026, 1, 1)),
        _goal(0, 5000, date(2026, 6, 1)),
    ]
    stats = goal_stats(goals, TODAY)

    assert (stats.total, stats.completed, stats.overdue, stats.active) == (4, 1, 1, 2)


def test_aggregate_income_expense_and_categories():
    txns = [
        SimpleNamespace(type=TransactionType.income, amount_cents=550000, category="Salário"),
        SimpleNamespace(type=TransactionType.expense, amount_cents=45050, category="Alimentação"),
        SimpleNamespace(type=TransactionType.expense, amount_cents=2990, category="Entretenimento"),
    ]
    summary = aggregate_transactions(txns)

    assert summary.total_income_cents == 550000
    assert summary.total_expense_cents == 48040
    assert summary.balance_cents == 501960
    assert summary.by_category == {"Alimentação": 45050, "Entretenimento": 2990}


def test_aggregate_empty_collection():
    summary = aggregate_transactions([])
    assert summary.balance_cents == 0
    assert summary.by_category == {}
