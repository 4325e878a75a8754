"""
Locate the readable text in an inference provider response.

The Responses API can deliver the answer either as a flattened `output_text`
field or as nested `output[].content[]` blocks. Payloads are classified into
exactly one of those two shapes; anything else is treated as empty output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from errors import EmptyModelOutput

READABLE_BLOCK_TYPES = frozenset({"output_text", "summary_text"})


@dataclass(frozen=True, slots=True)
class FlattenedText:
    text: str


@dataclass(frozen=True, slots=True)
class ContentBlocks:
    texts: list[str] = field(default_factory=list)


ResponseShape = Union[FlattenedText, ContentBlocks]


def classify_response(payload: Any) -> ResponseShape | None:
    """Return the shape of `payload`, or None when no readable text exists."""

    if not isinstance(payload, Mapping):
        return None

    direct = payload.get("output_text")
    if isinstance(direct, str) and direct.strip():
        return FlattenedText(text=direct.strip())

    output = payload.get("output")
    if not isinstance(output, list):
        return None

    texts: list[str] = []
    for item in output:
        if not isinstance(item, Mapping):
            continue
        content = item.get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if not isinstance(block, Mapping):
                continue
            text = block.get("text")
            if block.get("type") in READABLE_BLOCK_TYPES and isinstance(text, str) and text.strip():
                texts.append(text.strip())

    if not texts:
        return None
    return ContentBlocks(texts=texts)


def extract_response_text(payload: Any) -> str:
    """
    Return the model's readable answer.

    Raises:
        EmptyModelOutput: when no readable text is found; only the top-level
            field names are reported, never their contents.
    """

    shape = classify_response(payload)
    if isinstance(shape, FlattenedText):
        return shape.text
    if isinstance(shape, ContentBlocks):
        joined = "\n".join(shape.texts).strip()
        if joined:
            return joined

    received_keys = [str(key) for key in payload.keys()] if isinstance(payload, Mapping) else []
    raise EmptyModelOutput(received_keys)
