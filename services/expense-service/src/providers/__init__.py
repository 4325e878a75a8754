"""Pluggable provider implementations for receipt draft inference."""

from .openai_receipt_vision import OpenAIReceiptDraftProvider

__all__ = ["OpenAIReceiptDraftProvider"]
