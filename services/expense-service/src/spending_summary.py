from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from date_ranges import days_in_range, filter_to_range, trend_window
from draft_model import ReferenceAccount, ReferenceCategory
from spending_model import ExpenseRecord, RangeBounds, SpendingBucket, SpendingSummary, TrendPoint

UNCATEGORISED_KEY = "__uncat__"
UNCATEGORISED_LABEL = "Uncategorised"
UNKNOWN_CATEGORY_LABEL = "Unknown category"
UNKNOWN_ACCOUNT_LABEL = "Unknown account"
MAX_TREND_POINTS = 370
RECENT_TREND_POINTS = 31


def compute_spending_summary(
    expenses: Iterable[ExpenseRecord],
    categories: Iterable[ReferenceCategory],
    accounts: Iterable[ReferenceAccount],
    bounds: RangeBounds,
    today: date,
    top_n: Optional[int] = None,
) -> SpendingSummary:
    """
    Calculate the dashboard figures for the expenses inside `bounds`.

    Args:
        expenses: Rows loaded by the caller; rows outside `bounds` are ignored.
        categories: Category names used to label buckets.
        accounts: Account names/types used to label buckets.
        bounds: Range produced by `resolve_range`.
        today: Reference date for open-ended ranges.
        top_n: When set, keep only the largest category buckets and report the
            remainder as `others_total`.
    Returns:
        SpendingSummary with totals, buckets sorted by total descending, and a
        zero-filled daily trend.
    Assumptions:
        Pure function; amounts are non-negative spend values.
    """
    selected = filter_to_range(expenses, bounds)
    total_spend = sum_amounts(selected)
    day_count = days_in_range(bounds, today)
    average_per_day = None if day_count is None else total_spend / max(day_count, 1)

    category_names = {category.id: category.name for category in categories}
    account_labels = build_account_labels(accounts)

    by_category = bucket_totals(
        selected,
        lambda expense: expense.category_id or UNCATEGORISED_KEY,
        lambda key: UNCATEGORISED_LABEL if key == UNCATEGORISED_KEY else category_names.get(key, UNKNOWN_CATEGORY_LABEL),
    )
    by_category, others_total = split_top_buckets(by_category, top_n)

    by_account = bucket_totals(
        [expense for expense in selected if expense.account_id],
        lambda expense: expense.account_id or "",
        lambda key: account_labels.get(key, UNKNOWN_ACCOUNT_LABEL),
    )

    trend = daily_trend(selected, bounds, today)

    return SpendingSummary(
        range_label=bounds.label,
        total_spend=total_spend,
        transaction_count=len(selected),
        days_in_range=day_count,
        average_per_day=average_per_day,
        by_category=by_category,
        by_account=by_account,
        others_total=others_total,
        trend=trend,
        recent_trend=trend[-RECENT_TREND_POINTS:],
    )


def sum_amounts(expenses: Iterable[ExpenseRecord]) -> float:
    return float(sum(expense.amount for expense in expenses))


def build_account_labels(accounts: Iterable[ReferenceAccount]) -> Dict[str, str]:
    return {account.id: f"{account.name} ({account.type})" for account in accounts}


def bucket_totals(
    expenses: Iterable[ExpenseRecord],
    key_for: Callable[[ExpenseRecord], str],
    label_for: Callable[[str], str],
) -> List[SpendingBucket]:
    totals: Dict[str, float] = defaultdict(float)
    for expense in expenses:
        totals[key_for(expense)] += expense.amount

    buckets = [SpendingBucket(key=key, label=label_for(key), total=total) for key, total in totals.items()]
    return sorted(buckets, key=lambda bucket: bucket.total, reverse=True)


def split_top_buckets(
    buckets: List[SpendingBucket],
    top_n: Optional[int],
) -> Tuple[List[SpendingBucket], float]:
    if top_n is None or top_n < 0:
        return buckets, 0.0
    rest = buckets[top_n:]
    return buckets[:top_n], float(sum(bucket.total for bucket in rest))


def daily_trend(expenses: List[ExpenseRecord], bounds: RangeBounds, today: date) -> List[TrendPoint]:
    """Per-day totals across the range, with days lacking expenses reported as 0."""
    window = trend_window(bounds, today, expenses)
    if window is None:
        return []

    totals_by_date: Dict[date, float] = defaultdict(float)
    for expense in expenses:
        totals_by_date[expense.expense_date] += expense.amount

    start, end_inclusive = window
    points: List[TrendPoint] = []
    current = start
    while current <= end_inclusive and len(points) < MAX_TREND_POINTS:
        points.append(TrendPoint(date=current, total=totals_by_date.get(current, 0.0)))
        current += timedelta(days=1)
    return points
