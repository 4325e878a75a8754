from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

Confidence = Literal["high", "medium", "low"]
CONFIDENCE_LEVELS: tuple[Confidence, ...] = ("high", "medium", "low")


@dataclass(frozen=True, slots=True)
class ReferenceCategory:
    """A category the caller allows the draft to reference."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class ReferenceAccount:
    """An account the caller allows the draft to reference."""

    id: str
    name: str
    type: str


@dataclass(slots=True)
class DraftExpense:
    """
    Provisional expense proposed from a receipt image.

    Drafts are never persisted by this service; the client applies them to a
    form and the user confirms before anything is stored.
    """

    amount: int | None = None
    expense_date: str | None = None
    description: str | None = None
    category_id: str | None = None
    account_id: str | None = None
    confidence: Confidence = "low"
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
