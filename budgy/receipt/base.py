import json
from typing import Protocol

from budgy.errors import ErrorKind, ReceiptError


class ReceiptParser(Protocol):
    """Turns OCR text into the provider's raw JSON answer."""

    async def generate(self, extracted_text: str) -> str: ...


class TextExtractor(Protocol):
    """On-device OCR: image bytes in, recognized lines joined by newlines out."""

    async def extract_text(self, image_bytes: bytes) -> str: ...


PROMPT_TEMPLATE = """\
Extract receipt information from this text and return ONLY a valid JSON object with this exact structure:

{
  "storeName": "Store Name",
  "date": "YYYY-MM-DD",
  "totalAmount": 0.00,
  "taxAmount": 0.00,
  "tipAmount": 0.00,
  "items": [
    {
      "name": "Item Name",
      "price": 0.00,
      "quantity": 1.0,
      "category": "Food & Dining"
    }
  ]
}

Allowed categories: Food & Dining, Transportation, Shopping, Entertainment, Utilities, Healthcare, Education, Travel, Other.
Use null for anything not present on the receipt.

Receipt text:
<<TEXT>>

Return only the JSON object, no other text."""


def build_prompt(extracted_text: str) -> str:
    return PROMPT_TEMPLATE.replace("<<TEXT>>", extracted_text)


def decode_generation_output(content: str | None) -> dict:
    """Strict JSON decode of the provider's answer; no repair is attempted here."""
    if not content or not content.strip():
        raise ReceiptError(ErrorKind.GENERATION_PARSE_FAILURE, "Invalid response format from AI service")
    try:
        payload = json.loads(content.strip())
    except json.JSONDecodeError as e:
        raise ReceiptError(
            ErrorKind.GENERATION_PARSE_FAILURE, "Invalid response format from AI service", details=str(e),
        ) from e
    if not isinstance(payload, dict):
        raise ReceiptError(ErrorKind.GENERATION_PARSE_FAILURE, "Invalid response format from AI service")
    return payload
