from datetime import date
from typing import List

import pytest

from date_ranges import resolve_range
from draft_model import ReferenceAccount, ReferenceCategory
from spending_model import ExpenseRecord
from spending_summary import (
    UNCATEGORISED_KEY,
    UNCATEGORISED_LABEL,
    UNKNOWN_CATEGORY_LABEL,
    compute_spending_summary,
)

TODAY = date(2024, 3, 15)
CATEGORIES = [
    ReferenceCategory(id="cat-food", name="Food"),
    ReferenceCategory(id="cat-fuel", name="Fuel"),
    ReferenceCategory(id="cat-fun", name="Fun"),
]
ACCOUNTS = [
    ReferenceAccount(id="acc-card", name="Visa", type="card"),
    ReferenceAccount(id="acc-cash", name="Wallet", type="cash"),
]


@pytest.fixture
def march_expenses() -> List[ExpenseRecord]:
    return [
        ExpenseRecord(id="e1", amount=120, expense_date=date(2024, 3, 1), category_id="cat-food", account_id="acc-card"),
        ExpenseRecord(id="e2", amount=80, expense_date=date(2024, 3, 1), category_id="cat-fuel", account_id="acc-cash"),
        ExpenseRecord(id="e3", amount=45.5, expense_date=date(2024, 3, 3), category_id="cat-food", account_id="acc-card"),
        ExpenseRecord(id="e4", amount=30, expense_date=date(2024, 3, 10), category_id=None, account_id=None),
        ExpenseRecord(id="e5", amount=12, expense_date=date(2024, 3, 12), category_id="cat-gone", account_id="acc-card"),
        ExpenseRecord(id="e6", amount=999, expense_date=date(2024, 2, 28), category_id="cat-food", account_id="acc-card"),
    ]


def test_totals_and_average_for_this_month(march_expenses):
    summary = compute_spending_summary(march_expenses, CATEGORIES, ACCOUNTS, resolve_range("this_month", TODAY), TODAY)

    assert summary.range_label == "This month"
    assert summary.total_spend == pytest.approx(287.5)
    assert summary.transaction_count == 5
    assert summary.days_in_range == 31
    assert summary.average_per_day == pytest.approx(287.5 / 31)


def test_category_buckets_are_sorted_and_labelled(march_expenses):
    summary = compute_spending_summary(march_expenses, CATEGORIES, ACCOUNTS, resolve_range("this_month", TODAY), TODAY)

    assert [(bucket.key, bucket.label, bucket.total) for bucket in summary.by_category] == [
        ("cat-food", "Food", 165.5),
        ("cat-fuel", "Fuel", 80.0),
        (UNCATEGORISED_KEY, UNCATEGORISED_LABEL, 30.0),
        ("cat-gone", UNKNOWN_CATEGORY_LABEL, 12.0),
    ]
    assert summary.others_total == 0.0


def test_account_buckets_skip_rows_without_account(march_expenses):
    summary = compute_spending_summary(march_expenses, CATEGORIES, ACCOUNTS, resolve_range("this_month", TODAY), TODAY)

    assert [(bucket.label, bucket.total) for bucket in summary.by_account] == [
        ("Visa (card)", 177.5),
        ("Wallet (cash)", 80.0),
    ]


def test_top_n_folds_the_rest_into_others(march_expenses):
    summary = compute_spending_summary(
        march_expenses, CATEGORIES, ACCOUNTS, resolve_range("this_month", TODAY), TODAY, top_n=2
    )

    assert [bucket.key for bucket in summary.by_category] == ["cat-food", "cat-fuel"]
    assert summary.others_total == pytest.approx(42.0)


def test_trend_is_zero_filled_across_the_month(march_expenses):
    summary = compute_spending_summary(march_expenses, CATEGORIES, ACCOUNTS, resolve_range("this_month", TODAY), TODAY)

    assert len(summary.trend) == 31
    assert summary.trend[0].date == date(2024, 3, 1)
    assert summary.trend[0].total == 200.0
    assert summary.trend[1].total == 0.0
    assert summary.trend[-1].date == date(2024, 3, 31)
    assert summary.recent_trend == summary.trend[-31:]


def test_empty_range_has_zero_totals():
    summary = compute_spending_summary([], CATEGORIES, ACCOUNTS, resolve_range("today", TODAY), TODAY)

    assert summary.total_spend == 0.0
    assert summary.transaction_count == 0
    assert summary.average_per_day == 0.0
    assert summary.by_category == []
    assert [point.total for point in summary.trend] == [0.0]


def test_all_time_has_no_average_and_data_bounded_trend(march_expenses):
    summary = compute_spending_summary(march_expenses, CATEGORIES, ACCOUNTS, resolve_range("all", TODAY), TODAY)

    assert summary.range_label == "All time"
    assert summary.transaction_count == 6
    assert summary.days_in_range is None
    assert summary.average_per_day is None
    assert summary.trend[0].date == date(2024, 2, 28)
    assert summary.trend[-1].date == date(2024, 3, 12)
