"""
OpenAI-powered receipt draft provider.

Sends one Responses API request per receipt: a system instruction that pins
the output to a strict JSON object, and a user turn carrying the caller's
category/account reference lists plus the embedded image. The provider never
retries; non-success answers and network failures surface as UpstreamError.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, BaseModel, OpenAI
from shared.observability.privacy import hash_payload, truncate_text

from draft_model import ReferenceAccount, ReferenceCategory
from errors import ConfigurationError, UpstreamError
from receipt_provider import ReceiptDraftRequest

logger = logging.getLogger(__name__)

MAX_UPSTREAM_BODY_CHARS = 2000

SYSTEM_PROMPT = """You are extracting a single expense from a receipt image.
Return STRICT JSON only: one JSON object, no markdown, no code fences, no explanations.

## Output fields
- amount: number OR null if unsure. When several amounts are visible (subtotal, tax, tip, total),
  use the final payable amount / grand total.
- expense_date: string in YYYY-MM-DD format OR null if unsure
- description: short merchant + items summary (max ~80 chars) OR null
- category_id: string, MUST be one of the ids in the provided "categories" list, OR null
- account_id: string, MUST be one of the ids in the provided "accounts" list, OR null
- confidence: "high" | "medium" | "low"
- warnings: array of strings describing any issues or assumptions (empty array if none)

## Rules
1. Never invent a category_id or account_id. Only copy ids that appear in the provided lists.
2. If no listed category or account clearly fits, return null for it and add a warning instead of guessing.
3. Use confidence "high" only when BOTH the amount and the date are clearly legible and unambiguous.
4. Be conservative. If unsure about any field, use null, add a warning, and lower confidence."""

TASK_INSTRUCTION = "Extract the best-guess draft expense from this receipt image."


def build_user_payload(categories: list[ReferenceCategory], accounts: list[ReferenceAccount]) -> str:
    """Serialize the reference lists and task as compact JSON for the user turn."""

    payload = {
        "categories": [{"id": category.id, "name": category.name} for category in categories],
        "accounts": [{"id": account.id, "name": account.name, "type": account.type} for account in accounts],
        "task": TASK_INSTRUCTION,
    }
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def build_response_input(request: ReceiptDraftRequest) -> list[dict[str, Any]]:
    return [
        {"role": "system", "content": [{"type": "input_text", "text": SYSTEM_PROMPT}]},
        {
            "role": "user",
            "content": [
                {"type": "input_text", "text": build_user_payload(request.categories, request.accounts)},
                {"type": "input_image", "image_url": request.image.data_url},
            ],
        },
    ]


class OpenAIReceiptDraftProvider:
    """
    Vision-capable OpenAI provider for receipt drafts.

    The OpenAI client is created per instance with retries disabled and the
    configured timeout; the request handler owns the instance and closes it
    once the call completes. An `http_client` can be injected for tests.
    """

    name = "openai"

    def __init__(self, settings: Any | None = None, *, http_client: httpx.Client | None = None):
        self._settings = settings
        self._client: OpenAI | None = None
        if settings is not None and settings.openai is not None:
            self._client = OpenAI(
                api_key=settings.openai.api_key,
                base_url=settings.openai.api_base,
                timeout=settings.timeout_seconds,
                max_retries=0,
                http_client=http_client,
            )

    def infer(self, request: ReceiptDraftRequest) -> dict[str, Any]:
        """
        Run the vision request and return the response payload as a plain dict.

        Raises:
            ConfigurationError: when no OpenAI credential was configured.
            UpstreamError: on non-success status, timeout, connection failure, or a
                response body the SDK could not parse.
        """
        if self._client is None:
            raise ConfigurationError("Missing OPENAI_API_KEY on server")

        settings = self._settings

        response_input = build_response_input(request)
        logger.info(
            {
                "event": "openai_receipt_request",
                "provider": self.name,
                "model": settings.openai.model,
                "prompt_hash": hash_payload({"system": SYSTEM_PROMPT, "user": response_input[1]["content"][0]}),
                "image_hash": hash_payload(request.image.data_url),
                "image_bytes": request.image.byte_size,
                "image_media_type": request.image.media_type,
                "category_count": len(request.categories),
                "account_count": len(request.accounts),
            }
        )

        try:
            response = self._client.responses.create(
                model=settings.openai.model,
                input=response_input,
                text={"format": {"type": "json_object"}},
                temperature=settings.temperature,
                max_output_tokens=settings.max_output_tokens,
            )
        except APIStatusError as exc:
            body = truncate_text(_response_body(exc), MAX_UPSTREAM_BODY_CHARS)
            logger.error(
                {
                    "event": "openai_receipt_error",
                    "provider": self.name,
                    "error_type": type(exc).__name__,
                    "status_code": exc.status_code,
                    "body_prefix": truncate_text(body),
                }
            )
            raise UpstreamError(exc.status_code, body) from exc
        except APIConnectionError as exc:
            detail = "request timed out" if isinstance(exc, APITimeoutError) else str(exc)
            logger.error(
                {
                    "event": "openai_receipt_error",
                    "provider": self.name,
                    "error_type": type(exc).__name__,
                    "error_message": detail,
                }
            )
            raise UpstreamError(None, detail) from exc
        except APIError as exc:
            logger.error(
                {
                    "event": "openai_receipt_error",
                    "provider": self.name,
                    "error_type": type(exc).__name__,
                    "error_message": truncate_text(exc.message),
                }
            )
            raise UpstreamError(None, truncate_text(exc.message, MAX_UPSTREAM_BODY_CHARS)) from exc

        if not isinstance(response, BaseModel):
            # Non-JSON 200 bodies come back from the SDK as plain text.
            body = truncate_text(str(response), MAX_UPSTREAM_BODY_CHARS)
            logger.error(
                {
                    "event": "openai_receipt_error",
                    "provider": self.name,
                    "error_type": "UnreadableResponse",
                    "body_prefix": truncate_text(body),
                }
            )
            raise UpstreamError(None, f"unreadable response body: {body}")

        payload = response.to_dict()
        output_text = getattr(response, "output_text", None)
        if isinstance(output_text, str) and output_text.strip():
            payload["output_text"] = output_text

        logger.info(
            {
                "event": "openai_receipt_response",
                "provider": self.name,
                "response_keys": sorted(payload.keys()),
                "response_hash": hash_payload(payload),
            }
        )
        return payload

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def _response_body(exc: APIStatusError) -> str:
    try:
        return exc.response.text
    except httpx.ResponseNotRead:
        return exc.message
