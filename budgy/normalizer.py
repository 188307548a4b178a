"""Canonical receipt shape and tolerant decoding of stored receipt documents.

Documents arrive from the store, from the generation provider, or from the
relay over HTTP, and all of them may have drifted from the current schema.
``parse_receipt_document`` first validates the whole document against the
``Receipt`` model. When that fails it falls back to resolving every field on
its own, so one malformed value costs that field, never the record.
"""

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, date as date_type, time, timedelta, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, ValidationError, field_validator

logger = logging.getLogger("budgy")


class SpendingCategory(str, Enum):
    FOOD = "Food & Dining"
    TRANSPORTATION = "Transportation"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    UTILITIES = "Utilities"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    TRAVEL = "Travel"
    OTHER = "Other"


def new_id() -> str:
    return str(uuid.uuid4())


def _number(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("expected a number")
    return value


def _category(value: Any) -> Any:
    if isinstance(value, str):
        wanted = value.strip().lower()
        for category in SpendingCategory:
            if category.value.lower() == wanted:
                return category
    return value


def _from_epoch(seconds: float) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp out of range: {seconds}") from exc


def coerce_timestamp(value: Any) -> datetime | None:
    """Accept a datetime, a date, an ISO-8601 string, epoch seconds, or a
    ``{"_seconds", "_nanoseconds"}`` / ``{"seconds", "nanos"}`` timestamp mapping.

    Naive values are taken to be UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date_type):
        result = datetime.combine(value, time(), tzinfo=timezone.utc)
    elif isinstance(value, bool):
        raise ValueError("expected a timestamp")
    elif isinstance(value, (int, float)):
        result = _from_epoch(value)
    elif isinstance(value, str):
        result = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    elif isinstance(value, Mapping):
        seconds = value.get("_seconds", value.get("seconds"))
        nanos = value.get("_nanoseconds", value.get("nanos", 0))
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            raise ValueError("timestamp mapping without seconds")
        if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
            nanos = 0
        result = _from_epoch(seconds) + timedelta(microseconds=int(nanos) // 1000)
    else:
        raise ValueError(f"unsupported timestamp type: {type(value).__name__}")

    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


Amount = Annotated[float, BeforeValidator(_number), Field(ge=0)]
Category = Annotated[SpendingCategory, BeforeValidator(_category)]
Timestamp = Annotated[datetime, BeforeValidator(coerce_timestamp)]


class ReceiptItem(BaseModel):
    model_config = {"populate_by_name": True}

    id: str = Field(default_factory=new_id)
    name: str | None = None
    price: Amount | None = None
    quantity: Amount | None = None  # fractional quantities allowed (e.g. 1.25 lb)
    category: Category | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _ensure_id(cls, value):
        if isinstance(value, str) and value.strip():
            return value
        return new_id()


class Receipt(BaseModel):
    model_config = {"populate_by_name": True}

    id: str = Field(default_factory=new_id)
    store_name: str | None = Field(None, alias="storeName")
    date: str | None = None  # free-form, as printed on the receipt
    transaction_date_time: Timestamp | None = Field(None, alias="transactionDateTime")
    total_amount: Amount | None = Field(None, alias="totalAmount")
    tax_amount: Amount | None = Field(None, alias="taxAmount")
    tip_amount: Amount | None = Field(None, alias="tipAmount")
    items: list[ReceiptItem] | None = None
    scanned_time: Timestamp | None = Field(None, alias="scannedTime")
    user_id: str | None = Field(None, alias="userId")
    category: Category = SpendingCategory.OTHER

    @field_validator("id", mode="before")
    @classmethod
    def _ensure_id(cls, value):
        if isinstance(value, str) and value.strip():
            return value
        return new_id()

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value):
        return SpendingCategory.OTHER if value is None else value


def _document_keys(model_cls: type[BaseModel]) -> set[str]:
    return {info.alias or name for name, info in model_cls.model_fields.items()}


RECEIPT_KEYS = _document_keys(Receipt)
ITEM_KEYS = _document_keys(ReceiptItem)


def _resolve_fields(model_cls: type[BaseModel], raw: Mapping, skip: tuple[str, ...] = ()) -> dict:
    """Validate each field on its own; a field that fails is left out."""
    fields = {}
    for name, info in model_cls.model_fields.items():
        key = info.alias or name
        if name in skip or key not in raw:
            continue
        try:
            fields[name] = getattr(model_cls.model_validate({key: raw[key]}), name)
        except ValidationError:
            logger.debug(f"Dropping malformed {model_cls.__name__}.{key}")
    return fields


def parse_receipt_item(raw: Any) -> ReceiptItem | None:
    if not isinstance(raw, Mapping) or not ITEM_KEYS.intersection(raw):
        return None
    try:
        return ReceiptItem.model_validate(raw)
    except ValidationError:
        return ReceiptItem(**_resolve_fields(ReceiptItem, raw))


def parse_receipt_document(raw: Any, doc_id: str | None = None) -> Receipt | None:
    """Decode a loosely-typed receipt document.

    ``doc_id`` is the key the document is stored under; it stands in for a
    missing ``id``. Returns ``None`` only when ``raw`` is not a mapping or has
    no receipt field at all.
    """
    if not isinstance(raw, Mapping) or not RECEIPT_KEYS.intersection(raw):
        return None

    data = dict(raw)
    if doc_id and not (isinstance(data.get("id"), str) and data["id"].strip()):
        data["id"] = doc_id

    try:
        return Receipt.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "Receipt document failed typed decode, using field-level fallback",
            extra={"extra_data": {"document_id": data.get("id"), "error_count": exc.error_count()}},
        )

    fields = _resolve_fields(Receipt, data, skip=("items",))
    raw_items = data.get("items")
    if isinstance(raw_items, list):
        fields["items"] = [item for item in map(parse_receipt_item, raw_items) if item is not None]
    return Receipt(**fields)


def receipt_to_document(receipt: Receipt) -> dict:
    return receipt.model_dump(by_alias=True, mode="json", exclude_none=True)


_DATETIME_FORMATS = (
    "%m/%d/%Y %H:%M",
    "%m-%d-%Y %H:%M",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m-%d-%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)
_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%Y-%m-%d",
    "%m/%d/%y",
    "%m-%d-%y",
)


def parse_date_string(text: str | None) -> datetime | None:
    """Parse a printed receipt date in local time.

    Strings carrying a time of day are tried first; date-only strings resolve
    to local midnight. Anything else is ``None``.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    text = text.strip()
    for fmt in _DATETIME_FORMATS + _DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed.astimezone()
    return None


def effective_instant(receipt: Receipt) -> datetime | None:
    """Best-known purchase time: transactionDateTime, then the printed date, then scan time."""
    if receipt.transaction_date_time is not None:
        return receipt.transaction_date_time
    parsed = parse_date_string(receipt.date)
    if parsed is not None:
        return parsed
    return receipt.scanned_time


def _sort_key(receipt: Receipt) -> tuple[int, float]:
    instant = effective_instant(receipt)
    if instant is None:
        return (0, 0.0)
    return (1, instant.timestamp())


def sort_receipts(receipts) -> list[Receipt]:
    """Most recent first; receipts without any resolvable time go last."""
    return sorted(receipts, key=_sort_key, reverse=True)


def finalize_generated_receipt(payload: Mapping, user_id: str, now: datetime | None = None) -> Receipt | None:
    """Turn generation output into a new receipt owned by ``user_id``.

    The receipt always gets a fresh id; items keep an id only if they came with one.
    """
    data = {key: value for key, value in payload.items() if key not in ("id", "scannedTime", "userId")}
    receipt = parse_receipt_document(data)
    if receipt is None:
        return None

    updates = {
        "id": new_id(),
        "scanned_time": now or datetime.now(timezone.utc),
        "user_id": user_id,
    }
    if receipt.total_amount is None and receipt.items:
        priced = [item for item in receipt.items if item.price is not None]
        if priced:
            total = sum(item.price * (item.quantity if item.quantity is not None else 1) for item in priced)
            updates["total_amount"] = round(total, 2)
    return receipt.model_copy(update=updates)
