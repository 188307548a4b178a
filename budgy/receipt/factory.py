import os

from budgy.receipt.base import ReceiptParser
from budgy.receipt.openai_provider import OpenAIReceiptParser


def get_receipt_parser() -> ReceiptParser:
    """Return the configured receipt parsing provider."""
    provider = os.getenv("RECEIPT_PROVIDER", "openai")
    if provider == "openai":
        if not os.getenv("OPENAI_API_KEY"):
            raise ValueError("OpenAI API key not configured")
        return OpenAIReceiptParser()
    raise ValueError(f"Unknown receipt provider: {provider}")
