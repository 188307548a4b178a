import asyncio
import logging
import os

from agents import Agent, ModelSettings, Runner

from budgy.errors import ErrorKind, ReceiptError
from budgy.receipt.base import build_prompt

logger = logging.getLogger("budgy")

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 30.0

INSTRUCTIONS = """\
You are a receipt parser. You receive OCR text from a photographed receipt and answer with a single JSON object.

Rules:
- storeName: the merchant name as printed
- date: the purchase date as YYYY-MM-DD, or null if not visible
- items: only purchased products/services; price is the line price as printed
- quantity defaults to 1 when not printed; fractional quantities are fine
- totalAmount, taxAmount, tipAmount: as printed, null if not found
- Never wrap the JSON in markdown or add commentary"""


class OpenAIReceiptParser:
    """Receipt parsing using the OpenAI Agents SDK over plain OCR text."""

    def __init__(self, model: str | None = None, timeout: float | None = None):
        self.timeout = timeout or float(os.getenv("GENERATION_TIMEOUT", str(DEFAULT_TIMEOUT)))
        self.agent = Agent(
            name="Receipt Parser",
            instructions=INSTRUCTIONS,
            model=model or os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
            model_settings=ModelSettings(temperature=0.1, max_tokens=2000),
        )

    async def generate(self, extracted_text: str) -> str:
        try:
            result = await asyncio.wait_for(
                Runner.run(self.agent, input=build_prompt(extracted_text)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ReceiptError(
                ErrorKind.SERVICE_UNAVAILABLE, "AI service did not respond in time",
                details=f"timed out after {self.timeout}s",
            ) from e
        except Exception as e:
            logger.error(f"Receipt generation failed: {e}", exc_info=True)
            raise ReceiptError(ErrorKind.GENERATION_FAILURE, "Failed to process receipt", details=str(e)) from e

        content = result.final_output
        if not content:
            raise ReceiptError(ErrorKind.GENERATION_FAILURE, "No content received from AI service")
        return str(content)
