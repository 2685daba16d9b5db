from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Protocol

from models import Goal, PlanningEntry, PlanningStatus, TransactionType


class _TransactionLike(Protocol):
    type: TransactionType
    amount_cents: int
    category: str


def reconcile_status(entry: PlanningEntry, today: date) -> PlanningStatus:
    if entry.status == PlanningStatus.paid:
        return PlanningStatus.paid
    if entry.due_date < today:
        return PlanningStatus.overdue
    return PlanningStatus.pending


def consistency_issue(entry: PlanningEntry) -> Optional[str]:
    if entry.status == PlanningStatus.paid and entry.transaction_id is None:
        return "paid without linked transaction"
    if entry.status != PlanningStatus.paid and entry.transaction_id is not None:
        return "linked transaction on unpaid entry"
    return None


@dataclass(frozen=True)
class GoalProgress:
    percent: float
    remaining_cents: int
    days_remaining: int
    is_completed: bool
    is_overdue: bool


def goal_progress(goal: Goal, today: date) -> GoalProgress:
    target = goal.target_amount_cents
    current = goal.current_amount_cents
    percent = min(max(current / target * 100, 0.0), 100.0)
    days_remaining = (goal.target_date - today).days
    is_completed = current >= target
    return GoalProgress(
        percent=percent,
        remaining_cents=max(target - current, 0),
        days_remaining=days_remaining,
        is_completed=is_completed,
        is_overdue=days_remaining < 0 and not is_completed,
    )


@dataclass(frozen=True)
class GoalStats:
    total: int
    completed: int
    active: int
    overdue: int


def goal_stats(goals: Iterable[Goal], today: date) -> GoalStats:
    total = completed = active = overdue = 0
    for goal in goals:
        progress = goal_progress(goal, today)
        total += 1
        if progress.is_completed:
            completed += 1
        elif progress.is_overdue:
            overdue += 1
        else:
            active += 1
    return GoalStats(total=total, completed=completed, active=active, overdue=overdue)


@dataclass(frozen=True)
class Summary:
    total_income_cents: int
    total_expense_cents: int
    balance_cents: int
    by_category: dict[str, int] = field(default_factory=dict)


def aggregate_transactions(transactions: Iterable[_TransactionLike]) -> Summary:
    total_income = 0
    total_expense = 0
    by_category: dict[str, int] = {}
    for txn in transactions:
        amount = abs(txn.amount_cents)
        if txn.type == TransactionType.income:
            total_income += amount
        else:
            total_expense += amount
            by_category[txn.category] = by_category.get(txn.category, 0) + amount
    return Summary(
        total_income_cents=total_income,
        total_expense_cents=total_expense,
        balance_cents=total_income - total_expense,
        by_category=by_category,
    )
