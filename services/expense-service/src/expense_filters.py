"""Expense list filtering: category tokens plus a free-text search."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from draft_model import ReferenceAccount
from spending_model import ExpenseRecord
from spending_summary import build_account_labels

UNCATEGORISED_TOKEN = "uncat"


def filter_expenses(
    expenses: Iterable[ExpenseRecord],
    accounts: Iterable[ReferenceAccount],
    category_tokens: Sequence[str] = (),
    search: str = "",
) -> List[ExpenseRecord]:
    """
    Apply the expense list filters.

    Category tokens are category ids, or "uncat" for rows without a category;
    an empty token list keeps every row. The search is case-insensitive and
    matches the amount, the description, or the account label.
    """
    needle = _norm(search)
    account_labels = build_account_labels(accounts)

    category_active = len(category_tokens) > 0
    allow_uncategorised = UNCATEGORISED_TOKEN in category_tokens
    allowed_ids = {token for token in category_tokens if token != UNCATEGORISED_TOKEN}

    matches: List[ExpenseRecord] = []
    for expense in expenses:
        if category_active:
            if expense.category_id is None:
                if not allow_uncategorised:
                    continue
            elif expense.category_id not in allowed_ids:
                continue

        if needle:
            haystacks = (
                format_amount(expense.amount),
                expense.description or "",
                account_labels.get(expense.account_id or "", ""),
            )
            if not any(needle in _norm(value) for value in haystacks):
                continue

        matches.append(expense)
    return matches


def format_amount(amount: float) -> str:
    """Render an amount the way it is typed: no trailing ".0" on whole numbers."""
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def _norm(value: str) -> str:
    return value.strip().lower()
