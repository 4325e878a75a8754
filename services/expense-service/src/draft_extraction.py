"""
Receipt-to-draft extraction pipeline.

`DraftExtractionService.extract_draft` runs one receipt through
Validating -> Prompting -> AwaitingInference -> ParsingResponse -> Normalizing.
Any failure raises a DraftExtractionError subclass; no partial draft is ever
returned, and nothing is persisted.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from shared.observability.privacy import redact_fields, truncate_text

from draft_model import DraftExpense
from draft_normalization import normalize_draft
from draft_settings import DraftGuardrails
from errors import InvalidDraftShape, MalformedModelJSON
from receipt_inputs import ReceiptImage, coerce_accounts, coerce_categories, parse_receipt_image
from receipt_provider import ReceiptDraftProvider, ReceiptDraftRequest
from response_text import extract_response_text

logger = logging.getLogger(__name__)

RAW_PREFIX_CHARS = 300
SAFE_DRAFT_LOG_KEYS = frozenset({"confidence", "category_id", "account_id"})


class DraftExtractionService:
    """
    Turns one receipt image into a guarded DraftExpense.

    The provider (and therefore the credential and HTTP client) is injected by
    the request handler, which also owns its lifecycle.
    """

    def __init__(self, provider: ReceiptDraftProvider, guardrails: DraftGuardrails | None = None):
        self._provider = provider
        self._guardrails = guardrails or DraftGuardrails()

    @property
    def provider_name(self) -> str:
        return self._provider.name

    def extract_draft(self, image_data_url: Any, categories: Any, accounts: Any) -> DraftExpense:
        """
        Extract a draft expense from an embedded receipt image.

        Args:
            image_data_url: `data:image/*;base64,...` payload.
            categories: Caller's categories; malformed input is treated as empty.
            accounts: Caller's accounts; malformed input is treated as empty.
        Returns:
            A DraftExpense whose ids are guaranteed to come from the supplied lists.
        """
        image = parse_receipt_image(image_data_url, self._guardrails.max_image_bytes)
        return self.extract_from_image(image, categories, accounts)

    def extract_from_image(self, image: ReceiptImage, categories: Any, accounts: Any) -> DraftExpense:
        """Run the pipeline for an image that already passed `parse_receipt_image`."""
        request = ReceiptDraftRequest(
            image=image,
            categories=coerce_categories(categories),
            accounts=coerce_accounts(accounts),
        )

        payload = self._provider.infer(request)
        output_text = extract_response_text(payload)
        parsed = parse_draft_json(output_text)

        draft = normalize_draft(
            parsed,
            category_ids={category.id for category in request.categories},
            account_ids={account.id for account in request.accounts},
            amount_ceiling=self._guardrails.amount_ceiling,
        )

        logger.info(
            {
                "event": "receipt_draft_normalized",
                "provider": self._provider.name,
                "draft": redact_fields(draft.to_dict(), SAFE_DRAFT_LOG_KEYS),
                "warning_count": len(draft.warnings),
                "amount_present": draft.amount is not None,
                "date_present": draft.expense_date is not None,
            }
        )
        return draft

    def close(self) -> None:
        """Release the provider's connection; called by the request handler."""
        self._provider.close()


def parse_draft_json(text: str) -> dict[str, Any]:
    """
    Parse the model's answer into a JSON object.

    Raises:
        MalformedModelJSON: when the text is not valid JSON (carries a short prefix).
        InvalidDraftShape: when the JSON is valid but not an object.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raw_prefix = truncate_text(text, RAW_PREFIX_CHARS)
        logger.warning(
            {
                "event": "receipt_draft_json_error",
                "error_message": str(exc),
                "raw_prefix_length": len(raw_prefix),
            }
        )
        raise MalformedModelJSON(raw_prefix) from exc

    if not isinstance(parsed, dict):
        raise InvalidDraftShape(type(parsed).__name__)
    return parsed
