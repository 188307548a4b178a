"""HTTP client for the receipt relay.

Runs on the device side of the pipeline: OCR text in, normalized ``Receipt``
out, every failure reported as a ``ReceiptError``. Cancel the awaiting task to
abandon a request; the in-flight HTTP call is closed with it.
"""

import logging
from typing import Awaitable, Callable

import httpx

from budgy.client.config import request_timeout, resolve_backend_url
from budgy.errors import ErrorKind, ReceiptError
from budgy.normalizer import Receipt, parse_receipt_document
from budgy.receipt.base import TextExtractor

logger = logging.getLogger("budgy")

TokenProvider = Callable[[], Awaitable[str | None]]


def _error_body(response: httpx.Response) -> tuple[str | None, ErrorKind | None]:
    """Message and kind from a relay error body, either may be missing."""
    try:
        body = response.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    message = body["error"] if isinstance(body.get("error"), str) else None
    try:
        kind = ErrorKind(body.get("kind"))
    except ValueError:
        kind = None
    return message, kind


class RelayClient:
    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str | None = None,
        connectivity: Callable[[], bool] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_provider = token_provider
        self.base_url = base_url or resolve_backend_url()
        self.connectivity = connectivity
        self.timeout = timeout or request_timeout()
        self.transport = transport

    def _ensure_connected(self) -> None:
        if self.connectivity is not None and not self.connectivity():
            raise ReceiptError(ErrorKind.NETWORK_UNAVAILABLE, "No internet connection")

    async def process_image(self, image_bytes: bytes, extractor: TextExtractor, user_id: str | None = None) -> Receipt:
        self._ensure_connected()
        try:
            text = await extractor.extract_text(image_bytes)
        except ReceiptError:
            raise
        except Exception as e:
            logger.error(f"Text extraction failed: {e}", exc_info=True)
            raise ReceiptError(ErrorKind.EXTRACTION_FAILURE, "Unable to read text from the receipt", details=str(e)) from e
        if not text or not text.strip():
            raise ReceiptError(ErrorKind.EXTRACTION_FAILURE, "Unable to read text from the receipt")
        return await self.process_text(text, user_id)

    async def process_text(self, extracted_text: str, user_id: str | None = None) -> Receipt:
        self._ensure_connected()
        if not extracted_text or not extracted_text.strip():
            raise ReceiptError(ErrorKind.INVALID_INPUT, "No text provided for processing")

        token = await self.token_provider()
        if not token:
            raise ReceiptError(ErrorKind.UNAUTHENTICATED, "Not signed in")

        body = {"extractedText": extracted_text}
        if user_id:
            body["userId"] = user_id

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    "/process-receipt",
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.TimeoutException as e:
                raise ReceiptError(ErrorKind.SERVICE_UNAVAILABLE, "Request timed out", details=str(e)) from e
            except httpx.TransportError as e:
                raise ReceiptError(ErrorKind.SERVICE_UNAVAILABLE, "Backend service unreachable", details=str(e)) from e

        logger.info(f"Relay responded with status {response.status_code}")
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> Receipt:
        status = response.status_code
        if status == 200:
            try:
                payload = response.json()
            except ValueError as e:
                raise ReceiptError(ErrorKind.GENERATION_PARSE_FAILURE, "Unable to read receipt response") from e
            receipt = parse_receipt_document(payload)
            if receipt is None:
                raise ReceiptError(ErrorKind.GENERATION_PARSE_FAILURE, "Unable to read receipt response")
            return receipt

        message, kind = _error_body(response)
        if status == 401:
            raise ReceiptError(ErrorKind.UNAUTHENTICATED, message or "Authentication failed")
        if status == 429:
            raise ReceiptError(ErrorKind.QUOTA_EXCEEDED, message or "Processing limit reached")
        if status == 400:
            # Several kinds share 400; older relays send no kind
            raise ReceiptError(kind or ErrorKind.GENERATION_PARSE_FAILURE, message or "Bad request")
        if 500 <= status <= 599:
            raise ReceiptError(ErrorKind.SERVICE_UNAVAILABLE, message or "Backend service unavailable")
        raise ReceiptError(ErrorKind.SERVICE_UNAVAILABLE, f"Unexpected response: {status}")
