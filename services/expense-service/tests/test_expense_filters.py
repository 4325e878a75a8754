from datetime import date

from draft_model import ReferenceAccount
from expense_filters import filter_expenses, format_amount
from spending_model import ExpenseRecord

ACCOUNTS = [ReferenceAccount(id="acc-card", name="Visa", type="card")]
EXPENSES = [
    ExpenseRecord(id="e1", amount=450, expense_date=date(2024, 1, 15), category_id="cat-food", account_id="acc-card", description="Cafe Mocha"),
    ExpenseRecord(id="e2", amount=12.5, expense_date=date(2024, 1, 16), category_id=None, account_id=None, description="Parking"),
    ExpenseRecord(id="e3", amount=80, expense_date=date(2024, 1, 17), category_id="cat-fuel", account_id="acc-cash", description=None),
]


def _ids(expenses):
    return [expense.id for expense in expenses]


def test_no_filters_keep_everything():
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS)) == ["e1", "e2", "e3"]


def test_category_tokens_select_ids_and_uncategorised():
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, category_tokens=["cat-fuel"])) == ["e3"]
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, category_tokens=["uncat"])) == ["e2"]
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, category_tokens=["uncat", "cat-food"])) == ["e1", "e2"]


def test_search_matches_description_amount_and_account_label():
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, search="  mocha ")) == ["e1"]
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, search="12.5")) == ["e2"]
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, search="visa (card)")) == ["e1"]
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, search="nothing")) == []


def test_filters_combine():
    assert _ids(filter_expenses(EXPENSES, ACCOUNTS, category_tokens=["cat-food", "cat-fuel"], search="80")) == ["e3"]


def test_format_amount_drops_trailing_zero():
    assert format_amount(450.0) == "450"
    assert format_amount(12.5) == "12.5"
