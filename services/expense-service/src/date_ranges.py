from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from spending_model import ExpenseRecord, RangeBounds

RANGE_OPTIONS = ("all", "today", "this_month", "last_month", "7", "30", "90")
DAY_COUNT_OPTIONS = frozenset({"7", "30", "90"})


def resolve_range(option: str, today: date) -> RangeBounds:
    """
    Map a dashboard range option onto concrete date bounds.

    Args:
        option: One of RANGE_OPTIONS.
        today: Reference date (the caller's local calendar day).
    Returns:
        RangeBounds describing how expense rows should be selected.
    Raises:
        ValueError: when `option` is not a supported range.
    """
    if option == "all":
        return RangeBounds(mode="all", label="All time")
    if option == "today":
        return RangeBounds(mode="eq", label="Today", start=today)
    if option == "this_month":
        start = _first_of_month(today)
        return RangeBounds(mode="between", label="This month", start=start, end_exclusive=_next_month(start))
    if option == "last_month":
        this_month = _first_of_month(today)
        start = _first_of_month(this_month - timedelta(days=1))
        return RangeBounds(mode="between", label="Last month", start=start, end_exclusive=this_month)
    if option in DAY_COUNT_OPTIONS:
        days = int(option)
        return RangeBounds(mode="gte", label=f"Last {days} days", start=today - timedelta(days=days))

    raise ValueError(f"Unsupported range option '{option}'")


def in_range(expense_date: date, bounds: RangeBounds) -> bool:
    if bounds.mode == "all" or bounds.start is None:
        return True
    if bounds.mode == "eq":
        return expense_date == bounds.start
    if bounds.mode == "between":
        if bounds.end_exclusive is None:
            return expense_date >= bounds.start
        return bounds.start <= expense_date < bounds.end_exclusive
    return expense_date >= bounds.start


def filter_to_range(expenses: Iterable[ExpenseRecord], bounds: RangeBounds) -> List[ExpenseRecord]:
    """Select the rows a store query with these bounds would return, newest first."""
    selected = [expense for expense in expenses if in_range(expense.expense_date, bounds)]
    return sorted(selected, key=lambda expense: expense.expense_date, reverse=True)


def days_in_range(bounds: RangeBounds, today: date) -> Optional[int]:
    """Number of calendar days the range covers; None for all-time ranges."""
    if bounds.mode == "all":
        return None
    if bounds.mode == "eq":
        return 1
    if bounds.mode == "between" and bounds.start is not None and bounds.end_exclusive is not None:
        end_inclusive = bounds.end_exclusive - timedelta(days=1)
        return max(1, (end_inclusive - bounds.start).days + 1)
    if bounds.start is not None:
        return max(1, (today - bounds.start).days)
    return 1


def trend_window(
    bounds: RangeBounds,
    today: date,
    expenses: List[ExpenseRecord],
) -> Optional[Tuple[date, date]]:
    """
    Inclusive (start, end) dates a daily trend should cover.

    All-time ranges are bounded by the earliest and latest expense; open-ended
    ranges end today.
    """
    if bounds.mode == "all":
        if not expenses:
            return None
        dates = [expense.expense_date for expense in expenses]
        return min(dates), max(dates)

    if bounds.start is None:
        return None
    if bounds.mode == "eq":
        return bounds.start, bounds.start
    if bounds.mode == "between" and bounds.end_exclusive is not None:
        return bounds.start, bounds.end_exclusive - timedelta(days=1)
    return bounds.start, today


def _first_of_month(value: date) -> date:
    return value.replace(day=1)


def _next_month(first_day: date) -> date:
    if first_day.month == 12:
        return date(first_day.year + 1, 1, 1)
    return date(first_day.year, first_day.month + 1, 1)
