"""
Input validation for receipt draft requests.

Images must arrive as self-contained base64 data URLs. Reference lists are
coerced leniently: anything malformed becomes an empty list (or is dropped
entry by entry) so the guardrail simply has fewer ids to accept.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any

from draft_model import ReferenceAccount, ReferenceCategory
from errors import InvalidInput

DATA_URL_PATTERN = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,(.*)$", re.DOTALL)


@dataclass(frozen=True, slots=True)
class ReceiptImage:
    """A validated embedded image; `data_url` is forwarded to the provider untouched."""

    data_url: str
    media_type: str
    byte_size: int


def parse_receipt_image(image_data_url: Any, max_bytes: int) -> ReceiptImage:
    """
    Validate that the payload is a base64 image data URL within the size limit.

    Raises:
        InvalidInput: when the value is missing, not an image data URL, not valid
            base64, empty, or larger than `max_bytes` once decoded.
    """

    if not isinstance(image_data_url, str) or not image_data_url:
        raise InvalidInput("imageDataUrl is required")
    if not image_data_url.startswith("data:image/"):
        raise InvalidInput("imageDataUrl must be a data:image/* URL")

    match = DATA_URL_PATTERN.match(image_data_url)
    if match is None:
        raise InvalidInput("imageDataUrl must be a base64-encoded data:image/* URL")

    media_type, encoded = match.group(1).lower(), match.group(2).strip()
    if not encoded:
        raise InvalidInput("imageDataUrl contains no image data")

    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInput("imageDataUrl is not valid base64") from exc

    if not decoded:
        raise InvalidInput("imageDataUrl contains no image data")
    if len(decoded) > max_bytes:
        raise InvalidInput(f"Image is too large ({len(decoded)} bytes, limit {max_bytes})")

    return ReceiptImage(data_url=image_data_url, media_type=media_type, byte_size=len(decoded))


def coerce_categories(raw: Any) -> list[ReferenceCategory]:
    if not isinstance(raw, list):
        return []

    categories: list[ReferenceCategory] = []
    for item in raw:
        item_id = _string_id(item)
        if item_id is None:
            continue
        categories.append(ReferenceCategory(id=item_id, name=_text(item.get("name"))))
    return categories


def coerce_accounts(raw: Any) -> list[ReferenceAccount]:
    if not isinstance(raw, list):
        return []

    accounts: list[ReferenceAccount] = []
    for item in raw:
        item_id = _string_id(item)
        if item_id is None:
            continue
        accounts.append(
            ReferenceAccount(id=item_id, name=_text(item.get("name")), type=_text(item.get("type")))
        )
    return accounts


def _string_id(item: Any) -> str | None:
    if not isinstance(item, dict):
        return None
    item_id = item.get("id")
    if not isinstance(item_id, str) or not item_id:
        return None
    return item_id


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""
