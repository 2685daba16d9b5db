import math
from datetime import date
from decimal import Decimal

import pytest

from errors import ValidationError
from installments import (
    add_months,
    expand_installments,
    normalize_installment_count,
    split_cents,
    to_cents,
)


def test_add_months_snaps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2025, 1, 31), 2) == date(2025, 3, 31)
    assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)


def test_expand_splits_total_into_monthly_installments():
    rows = expand_installments(
        1200,
        date(2025, 1, 10),
        3,
        {"description": "Notebook", "category": "Compras", "is_recurring": False},
    )

    assert [r["due_date"] for r in rows] == [
        date(2025, 1, 10),
        date(2025, 2, 10),
        date(2025, 3, 10),
    ]
    assert [r["amount_cents"] for r in rows] == [40000, 40000, 40000]
    assert [r["current_installment"] for r in rows] == [1, 2, 3]
    assert {r["installments"] for r in rows} == {3}
    assert {r["category"] for r in rows} == {"Compras"}


@pytest.mark.parametrize("count", [1, 2, 3, 7, 12, 36])
def test_expand_amounts_sum_to_total(count):
    rows = expand_installments(
        Decimal("1000.01"), date(2025, 1, 31), count, {}, max_installments=120
    )

    assert len(rows) == count
    assert sum(r["amount_cents"] for r in rows) == 100001
    due_dates = [r["due_date"] for r in rows]
    assert due_dates == sorted(due_dates)
    assert [r["current_installment"] for r in rows] == list(range(1, count + 1))


def test_remainder_goes_to_first_installment():
    assert split_cents(100, 3) == [34, 33, 33]
    assert split_cents(90, 3) == [30, 30, 30]


@pytest.mark.parametrize("count", [None, 0, -2, 1])
def test_missing_or_small_count_means_single_record(count):
    rows = expand_installments(50, date(2025, 5, 1), count, {"description": "Gym"})

    assert len(rows) == 1
    assert rows[0]["installments"] == 1
    assert rows[0]["amount_cents"] == 5000


def test_count_above_configured_max_is_rejected():
    with pytest.raises(ValidationError):
        normalize_installment_count(13, max_installments=12)
    assert normalize_installment_count(12, max_installments=12) == 12


def test_explicit_zero_max_allows_only_single_payment():
    assert normalize_installment_count(1, max_installments=0) == 1
    with pytest.raises(ValidationError):
        normalize_installment_count(2, max_installments=0)


@pytest.mark.parametrize("amount", [math.inf, -math.inf, math.nan, "abc"])
def test_non_finite_amount_is_rejected(amount):
    with pytest.raises(ValidationError):
        expand_installments(amount, date(2025, 1, 1), 2, {})


def test_to_cents_rounds_half_up_and_rejects_negatives():
    assert to_cents(450.5) == 45050
    assert to_cents("29.905") == 2991
    assert to_cents(-10, allow_negative=True) == -1000
    with pytest.raises(ValidationError):
        to_cents(-0.01)
