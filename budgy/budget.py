from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from budgy.normalizer import Receipt, effective_instant

WARNING_THRESHOLD = 0.7
CRITICAL_THRESHOLD = 0.9


class BudgetStatus(str, Enum):
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def message(self) -> str:
        return STATUS_MESSAGES[self]


STATUS_MESSAGES = {
    BudgetStatus.GOOD: "You're on track with your budget!",
    BudgetStatus.WARNING: "You're approaching your budget limit.",
    BudgetStatus.CRITICAL: "You've nearly reached your budget limit!",
}


@dataclass(frozen=True)
class BudgetSummary:
    monthly_budget: float
    spent: float
    remaining: float
    progress: float
    status: BudgetStatus


def current_month_spend(receipts: list[Receipt], now: datetime | None = None) -> float:
    """Sum totals of receipts whose purchase time falls in the current local month.

    Purchase time, not scan time: a receipt scanned today for last month's
    dinner counts against last month.
    """
    now = (now or datetime.now()).astimezone()
    spent = 0.0
    for receipt in receipts:
        instant = effective_instant(receipt)
        if instant is None:
            continue
        # Local zone rules at that instant, not today's UTC offset
        local = instant.astimezone()
        if local.year == now.year and local.month == now.month:
            spent += receipt.total_amount or 0.0
    return spent


def budget_status(progress: float) -> BudgetStatus:
    if progress >= CRITICAL_THRESHOLD:
        return BudgetStatus.CRITICAL
    if progress >= WARNING_THRESHOLD:
        return BudgetStatus.WARNING
    return BudgetStatus.GOOD


def summarize_budget(monthly_budget: float, receipts: list[Receipt], now: datetime | None = None) -> BudgetSummary:
    spent = current_month_spend(receipts, now)
    progress = min(1.0, spent / monthly_budget) if monthly_budget > 0 else 0.0
    return BudgetSummary(
        monthly_budget=monthly_budget,
        spent=spent,
        remaining=max(0.0, monthly_budget - spent),
        progress=progress,
        status=budget_status(progress),
    )
