"""Receipt and budget services over a document store.

Each service is constructed explicitly and handed to whoever needs it; the
snapshot it keeps is plain data, and observers are told about every change.
Store calls run off the event loop, are bounded by a timeout, and go through
the retry wrapper.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from budgy.budget import BudgetSummary, summarize_budget
from budgy.documents import DocumentStore, StoreError
from budgy.errors import ErrorKind, ReceiptError
from budgy.normalizer import Receipt, parse_receipt_document, receipt_to_document, sort_receipts
from budgy.retry import DEFAULT_DELAY, DEFAULT_MAX_RETRIES, with_retry

logger = logging.getLogger("budgy")

BUDGET_DOCUMENT = "budget"

Observer = Callable[[str, list[Receipt]], None]


@dataclass
class StorePolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_DELAY
    timeout: float = 10.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    @classmethod
    def from_env(cls) -> "StorePolicy":
        return cls(
            max_retries=int(os.getenv("STORE_MAX_RETRIES", str(DEFAULT_MAX_RETRIES))),
            retry_delay=float(os.getenv("STORE_RETRY_DELAY", str(DEFAULT_DELAY))),
            timeout=float(os.getenv("STORE_TIMEOUT", "10")),
        )


async def call_store(policy: StorePolicy, description: str, fn: Callable, *args):
    """Run a blocking store call in a worker thread, bounded by the policy timeout and retried.

    A worker thread cannot be interrupted, and the store's session is not
    thread-safe. After a timeout the next attempt only starts once the
    abandoned call has returned, so two attempts never touch the store at once.
    """

    async def attempt():
        call = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        done, _ = await asyncio.wait({call}, timeout=policy.timeout)
        if call in done:
            return call.result()

        logger.warning(
            f"{description} timed out, waiting for the abandoned call before retrying",
            extra={"extra_data": {"timeout": policy.timeout}},
        )
        # Outcome of the abandoned call is discarded; the attempt already failed
        await asyncio.gather(call, return_exceptions=True)
        raise StoreError(f"{description} timed out after {policy.timeout}s")

    try:
        return await with_retry(
            attempt,
            max_retries=policy.max_retries,
            delay=policy.retry_delay,
            sleep=policy.sleep,
            description=description,
        )
    except StoreError as e:
        raise ReceiptError(ErrorKind.STORE_FAILURE, "Failed to access receipt storage", details=str(e)) from e


class ReceiptRepository:
    def __init__(self, store: DocumentStore, policy: StorePolicy | None = None):
        self.store = store
        self.policy = policy or StorePolicy()
        self._receipts: dict[str, list[Receipt]] = {}
        self._observers: list[Observer] = []

    def snapshot(self, user_id: str) -> list[Receipt]:
        return list(self._receipts.get(user_id, []))

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer(user_id, receipts)``; returns a function that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self, user_id: str, receipts: list[Receipt]) -> None:
        self._receipts[user_id] = sort_receipts(receipts)
        for observer in list(self._observers):
            observer(user_id, self.snapshot(user_id))

    async def refresh(self, user_id: str) -> list[Receipt]:
        documents = await call_store(self.policy, "list receipts", self.store.list, user_id)
        receipts = []
        for doc_id, doc in documents:
            receipt = parse_receipt_document(doc, doc_id)
            if receipt is None:
                logger.warning("Skipping unrecognizable receipt document", extra={"extra_data": {"document_id": doc_id}})
                continue
            receipts.append(receipt)
        self._publish(user_id, receipts)
        return self.snapshot(user_id)

    async def get(self, user_id: str, receipt_id: str) -> Receipt | None:
        doc = await call_store(self.policy, "get receipt", self.store.get, user_id, receipt_id)
        if doc is None:
            return None
        return parse_receipt_document(doc, receipt_id)

    async def save(self, user_id: str, receipt: Receipt) -> Receipt:
        await call_store(self.policy, "save receipt", self.store.set, user_id, receipt.id, receipt_to_document(receipt))
        others = [r for r in self._receipts.get(user_id, []) if r.id != receipt.id]
        self._publish(user_id, others + [receipt])
        return receipt

    async def delete(self, user_id: str, receipt_id: str) -> bool:
        deleted = await call_store(self.policy, "delete receipt", self.store.delete, user_id, receipt_id)
        self._publish(user_id, [r for r in self._receipts.get(user_id, []) if r.id != receipt_id])
        return deleted

    async def delete_all(self, user_id: str) -> int:
        documents = await call_store(self.policy, "list receipts", self.store.list, user_id)
        count = 0
        for doc_id, _ in documents:
            if await call_store(self.policy, "delete receipt", self.store.delete, user_id, doc_id):
                count += 1
        self._publish(user_id, [])
        logger.info("Deleted all receipts", extra={"extra_data": {"user_id": user_id, "count": count}})
        return count


class BudgetService:
    """Monthly budget target stored at users/{user_id}/settings/budget."""

    def __init__(self, store: DocumentStore, policy: StorePolicy | None = None):
        self.store = store
        self.policy = policy or StorePolicy()
        self.monthly_budgets: dict[str, float] = {}

    async def fetch_budget(self, user_id: str) -> float:
        doc = await call_store(self.policy, "get budget", self.store.get, user_id, BUDGET_DOCUMENT)
        amount = 0.0
        if isinstance(doc, dict):
            value = doc.get("monthlyBudget")
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
                amount = float(value)
        self.monthly_budgets[user_id] = amount
        return amount

    async def set_budget(self, user_id: str, amount: float, now: datetime | None = None) -> dict:
        if amount < 0:
            raise ReceiptError(ErrorKind.INVALID_INPUT, "Monthly budget cannot be negative")
        doc = {
            "monthlyBudget": float(amount),
            "updatedAt": (now or datetime.now(timezone.utc)).isoformat(),
        }
        await call_store(self.policy, "set budget", self.store.set, user_id, BUDGET_DOCUMENT, doc)
        self.monthly_budgets[user_id] = float(amount)
        return doc

    async def summary(self, user_id: str, receipts: list[Receipt], now: datetime | None = None) -> BudgetSummary:
        if user_id not in self.monthly_budgets:
            await self.fetch_budget(user_id)
        return summarize_budget(self.monthly_budgets[user_id], receipts, now)
