import logging

from fastapi import APIRouter, Depends, Request

from budgy.deps import get_budget_service, get_current_user, get_receipt_repository
from budgy.models import User
from budgy.ratelimit import API_RATE_LIMIT, API_SCOPE, limiter
from budgy.repository import BudgetService, ReceiptRepository
from budgy.schemas import BudgetIn
from budgy.serializers import serialize_budget_summary

logger = logging.getLogger("budgy")
router = APIRouter()


@router.get("/budget")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def get_budget(
    request: Request,
    user: User = Depends(get_current_user),
    budgets: BudgetService = Depends(get_budget_service),
):
    return {"monthlyBudget": await budgets.fetch_budget(user.id)}


@router.put("/budget")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def set_budget(
    data: BudgetIn,
    request: Request,
    user: User = Depends(get_current_user),
    budgets: BudgetService = Depends(get_budget_service),
):
    user_id = user.id
    doc = await budgets.set_budget(user_id, data.monthly_budget)
    logger.info("Budget updated", extra={"extra_data": {"user_id": user_id, "monthly_budget": data.monthly_budget}})
    return doc


@router.get("/budget/summary")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def get_budget_summary(
    request: Request,
    user: User = Depends(get_current_user),
    budgets: BudgetService = Depends(get_budget_service),
    repository: ReceiptRepository = Depends(get_receipt_repository),
):
    user_id = user.id
    receipts = await repository.refresh(user_id)
    summary = await budgets.summary(user_id, receipts)
    return serialize_budget_summary(summary)
