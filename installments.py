import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError

Amount = Union[int, float, Decimal, str]


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Advance ``base`` by whole calendar months, snapping to the month end.

    Jan 31 + 1 month is Feb 28 (29 in leap years), never Mar 3.
    """
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def to_cents(amount: Amount, *, allow_negative: bool = False) -> int:
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValidationError("Amount must be a finite number")
    try:
        value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    except InvalidOperation as exc:
        raise ValidationError("Invalid amount") from exc
    if not value.is_finite():
        raise ValidationError("Amount must be a finite number")
    cents = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0 and not allow_negative:
        raise ValidationError("Amount must be positive")
    return cents


def split_cents(total_cents: int, count: int) -> list[int]:
    """Split ``total_cents`` into ``count`` parts that sum exactly to the total.

    The remainder goes to the first part.
    """
    base, remainder = divmod(total_cents, count)
    return [base + remainder] + [base] * (count - 1)


def normalize_installment_count(
    installment_count: Optional[int], *, max_installments: Optional[int] = None
) -> int:
    limit = max_installments
    if limit is None:
        limit = get_settings().max_installments
    if installment_count is None or installment_count <= 1:
        return 1
    if installment_count > limit:
        raise ValidationError(f"Installment count must be between 1 and {limit}")
    return installment_count


def expand_installments(
    total_amount: Amount,
    base_due_date: date,
    installment_count: Optional[int],
    shared: Mapping[str, Any],
    *,
    max_installments: Optional[int] = None,
) -> list[dict[str, Any]]:
    """Build the rows of an installment group.

    Returns one dict per installment, in order, with ``amount_cents``,
    ``due_date``, ``current_installment`` (1-based) and ``installments``
    set on top of ``shared``. The caller threads the group by inserting the
    first row and pointing the rest at it.
    """
    count = normalize_installment_count(
        installment_count, max_installments=max_installments
    )
    total_cents = to_cents(total_amount)

    rows: list[dict[str, Any]] = []
    for index, amount_cents in enumerate(split_cents(total_cents, count)):
        row = dict(shared)
        row.update(
            amount_cents=amount_cents,
            due_date=add_months(base_due_date, index),
            current_installment=index + 1,
            installments=count,
        )
        rows.append(row)
    return rows
