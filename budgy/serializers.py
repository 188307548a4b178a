from datetime import datetime

from budgy.budget import BudgetSummary
from budgy.models import User
from budgy.normalizer import Receipt, receipt_to_document
from budgy.quota import is_premium, remaining_quota, usage_this_month


def serialize_receipt(receipt: Receipt) -> dict:
    return receipt_to_document(receipt)


def serialize_budget_summary(summary: BudgetSummary) -> dict:
    return {
        "monthlyBudget": summary.monthly_budget,
        "spent": round(summary.spent, 2),
        "remaining": round(summary.remaining, 2),
        "progress": summary.progress,
        "status": summary.status.value,
        "message": summary.status.message,
    }


def serialize_user(user: User, now: datetime | None = None) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "isPremium": is_premium(user),
        "usageThisMonth": usage_this_month(user, now),
        "remainingReceipts": remaining_quota(user, now),
        "lastUsedAt": user.last_used_at.isoformat() if user.last_used_at else None,
    }
