"""Failure kinds shared by the relay and the client.

Kinds carry structured data only. Titles, messages and recovery hints shown to
people live in ``budgy.client.presentation``.
"""

import logging
from enum import Enum

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("budgy")


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_INPUT = "invalid_input"
    EXTRACTION_FAILURE = "extraction_failure"
    GENERATION_FAILURE = "generation_failure"
    GENERATION_PARSE_FAILURE = "generation_parse_failure"
    STORE_FAILURE = "store_failure"
    NETWORK_UNAVAILABLE = "network_unavailable"
    SERVICE_UNAVAILABLE = "service_unavailable"


# Quota means "retry later", not "retry now"; callers decide the wait.
RETRYABLE_KINDS = frozenset({
    ErrorKind.QUOTA_EXCEEDED,
    ErrorKind.GENERATION_FAILURE,
    ErrorKind.STORE_FAILURE,
    ErrorKind.NETWORK_UNAVAILABLE,
    ErrorKind.SERVICE_UNAVAILABLE,
})

HTTP_STATUS = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.EXTRACTION_FAILURE: 400,
    ErrorKind.GENERATION_PARSE_FAILURE: 400,
    ErrorKind.GENERATION_FAILURE: 502,
    ErrorKind.STORE_FAILURE: 503,
    ErrorKind.NETWORK_UNAVAILABLE: 503,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
}


class ReceiptError(Exception):
    """A tagged failure in the receipt pipeline."""

    def __init__(self, kind: ErrorKind, message: str, details: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def __repr__(self) -> str:
        return f"ReceiptError({self.kind.value!r}, {self.message!r})"


async def receipt_error_handler(request: Request, exc: ReceiptError) -> JSONResponse:
    body = {"error": exc.message, "kind": exc.kind.value}
    if exc.details:
        body["details"] = exc.details
    if exc.status_code >= 500:
        logger.error(
            f"{exc.kind.value}: {exc.message}",
            extra={"extra_data": {"path": request.url.path, "kind": exc.kind.value, "details": exc.details}},
        )
    return JSONResponse(status_code=exc.status_code, content=body)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Same ``{"error": ...}`` body for 404s and other plain HTTP errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are invalid input: 400, not FastAPI's 422."""
    return JSONResponse(
        status_code=HTTP_STATUS[ErrorKind.INVALID_INPUT],
        content={
            "error": "Invalid request",
            "kind": ErrorKind.INVALID_INPUT.value,
            "details": _describe_validation_errors(exc),
        },
    )
