from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal

RangeOption = Literal["all", "today", "this_month", "last_month", "7", "30", "90"]
RangeMode = Literal["all", "eq", "between", "gte"]


@dataclass(slots=True)
class ExpenseRecord:
    """A stored expense row as loaded by the caller."""

    id: str
    amount: float
    expense_date: date
    category_id: str | None = None
    account_id: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class RangeBounds:
    """
    Date window for dashboard queries.

    `start` is inclusive and `end_exclusive` exclusive; which of them apply
    depends on `mode` ("all" uses neither, "eq" and "gte" use only `start`).
    """

    mode: RangeMode
    label: str
    start: date | None = None
    end_exclusive: date | None = None


@dataclass(slots=True)
class SpendingBucket:
    key: str
    label: str
    total: float


@dataclass(slots=True)
class TrendPoint:
    date: date
    total: float


@dataclass(slots=True)
class SpendingSummary:
    """Dashboard figures for one date range."""

    range_label: str
    total_spend: float
    transaction_count: int
    days_in_range: int | None
    average_per_day: float | None
    by_category: list[SpendingBucket] = field(default_factory=list)
    by_account: list[SpendingBucket] = field(default_factory=list)
    others_total: float = 0.0
    trend: list[TrendPoint] = field(default_factory=list)
    recent_trend: list[TrendPoint] = field(default_factory=list)
