"""
Normalization and guardrails for model-produced receipt drafts.

Model output is untrusted input. Each field passes through a step that returns
either `Accepted(value)` or `Rejected(reason)`, and the steps run in a fixed
order through `_DraftAccumulator`, which is the only place warnings are appended
and the only place confidence can change. The accumulator can lower confidence
to "low" but has no way to raise it.

Step order:
    1. amount          numeric, finite, 0 <= amount <= ceiling, rounded half-up
    2. expense_date    YYYY-MM-DD pattern only
    3. description     trimmed, non-empty
    4. confidence      high | medium | low, otherwise low
    5. warnings        model warnings first, pipeline warnings after
    6. reference ids   category_id / account_id must be in the caller's lists
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Collection, Generic, Mapping, TypeVar, Union

from draft_model import CONFIDENCE_LEVELS, Confidence, DraftExpense
from draft_settings import DEFAULT_AMOUNT_CEILING

T = TypeVar("T")

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

AMOUNT_NOT_NUMERIC_WARNING = "Model returned a non-numeric amount; set to null."
AMOUNT_INVALID_WARNING = "Model returned a negative or non-finite amount; set to null."
AMOUNT_CEILING_WARNING = "Model returned an amount above the {ceiling} limit; set to null."
DATE_INVALID_WARNING = "Model returned an expense_date that is not YYYY-MM-DD; set to null."
CATEGORY_GUARDRAIL_WARNING = "Model suggested a category_id not in allowed list; set to null."
ACCOUNT_GUARDRAIL_WARNING = "Model suggested an account_id not in allowed list; set to null."


@dataclass(frozen=True)
class Accepted(Generic[T]):
    value: T


@dataclass(frozen=True)
class Rejected:
    """
    A value that could not be used.

    `reason` is None when the field is simply absent and nothing needs to be
    reported; `lowers_confidence` marks rejections that make the draft ambiguous.
    """

    reason: str | None = None
    lowers_confidence: bool = False


StepResult = Union[Accepted[T], Rejected]


class _DraftAccumulator:
    def __init__(self) -> None:
        self.warnings: list[str] = []
        self._forced_low = False

    def take(self, result: StepResult[T]) -> T | None:
        if isinstance(result, Accepted):
            return result.value
        if result.reason:
            self.warnings.append(result.reason)
        if result.lowers_confidence:
            self._forced_low = True
        return None

    def confidence(self, claimed: Confidence) -> Confidence:
        return "low" if self._forced_low else claimed


def normalize_amount(value: Any, ceiling: float = DEFAULT_AMOUNT_CEILING) -> StepResult[int]:
    if value is None:
        return Rejected()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return Rejected(AMOUNT_NOT_NUMERIC_WARNING, lowers_confidence=True)
    if (isinstance(value, float) and not math.isfinite(value)) or value < 0:
        return Rejected(AMOUNT_INVALID_WARNING, lowers_confidence=True)
    if value > ceiling:
        return Rejected(AMOUNT_CEILING_WARNING.format(ceiling=_format_ceiling(ceiling)), lowers_confidence=True)
    return Accepted(int(math.floor(value + 0.5)))


def normalize_expense_date(value: Any) -> StepResult[str]:
    if value is None:
        return Rejected()
    if isinstance(value, str) and DATE_PATTERN.match(value):
        return Accepted(value)
    return Rejected(DATE_INVALID_WARNING, lowers_confidence=True)


def normalize_description(value: Any) -> StepResult[str]:
    if isinstance(value, str) and value.strip():
        return Accepted(value.strip())
    return Rejected()


def normalize_confidence(value: Any) -> StepResult[Confidence]:
    if value in CONFIDENCE_LEVELS:
        return Accepted(value)
    return Rejected()


def normalize_model_warnings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def check_reference_id(value: Any, allowed_ids: Collection[str], guardrail_warning: str) -> StepResult[str]:
    """Accept only ids the caller offered; blank or missing ids are simply dropped."""

    if value is None:
        return Rejected()
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return Rejected()
        if candidate in allowed_ids:
            return Accepted(candidate)
    return Rejected(guardrail_warning, lowers_confidence=True)


def normalize_draft(
    parsed: Mapping[str, Any],
    category_ids: Collection[str],
    account_ids: Collection[str],
    *,
    amount_ceiling: float = DEFAULT_AMOUNT_CEILING,
) -> DraftExpense:
    """
    Turn a parsed model answer into a DraftExpense that satisfies every invariant.

    Args:
        parsed: JSON object produced by the model.
        category_ids: Category ids the caller supplied for this request.
        account_ids: Account ids the caller supplied for this request.
        amount_ceiling: Largest amount accepted before the value is nulled.
    """

    accumulator = _DraftAccumulator()

    amount = accumulator.take(normalize_amount(parsed.get("amount"), amount_ceiling))
    expense_date = accumulator.take(normalize_expense_date(parsed.get("expense_date")))
    description = accumulator.take(normalize_description(parsed.get("description")))
    claimed_confidence = accumulator.take(normalize_confidence(parsed.get("confidence"))) or "low"
    model_warnings = normalize_model_warnings(parsed.get("warnings"))

    category_id = accumulator.take(
        check_reference_id(parsed.get("category_id"), category_ids, CATEGORY_GUARDRAIL_WARNING)
    )
    account_id = accumulator.take(
        check_reference_id(parsed.get("account_id"), account_ids, ACCOUNT_GUARDRAIL_WARNING)
    )

    return DraftExpense(
        amount=amount,
        expense_date=expense_date,
        description=description,
        category_id=category_id,
        account_id=account_id,
        confidence=accumulator.confidence(claimed_confidence),
        warnings=model_warnings + accumulator.warnings,
    )


def _format_ceiling(ceiling: float) -> str:
    return str(int(ceiling)) if float(ceiling).is_integer() else str(ceiling)
