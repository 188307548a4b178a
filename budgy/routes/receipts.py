import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import sessionmaker

from budgy.database import get_session_factory
from budgy.deps import get_current_user, get_receipt_repository
from budgy.errors import ErrorKind, ReceiptError
from budgy.models import User
from budgy.normalizer import finalize_generated_receipt, parse_receipt_document, receipt_to_document
from budgy.quota import has_quota, record_usage_in_background
from budgy.ratelimit import API_RATE_LIMIT, API_SCOPE, limiter
from budgy.receipt.base import decode_generation_output
from budgy.receipt.factory import get_receipt_parser
from budgy.repository import ReceiptRepository
from budgy.schemas import ProcessReceiptIn, UpdateReceiptIn
from budgy.serializers import serialize_receipt

logger = logging.getLogger("budgy")
router = APIRouter()


@router.post("/process-receipt")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def process_receipt(
    request: Request,
    data: ProcessReceiptIn,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    repository: ReceiptRepository = Depends(get_receipt_repository),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    user_id = user.id
    if data.user_id and data.user_id != user_id:
        logger.warning("Token does not match requested user", extra={"extra_data": {"user_id": user_id}})
        raise ReceiptError(ErrorKind.UNAUTHENTICATED, "Authentication token does not match the requested user")

    if not data.extracted_text.strip():
        raise ReceiptError(ErrorKind.INVALID_INPUT, "No text provided for processing")

    if not has_quota(user):
        logger.info("Quota exceeded", extra={"extra_data": {"user_id": user_id}})
        raise ReceiptError(ErrorKind.QUOTA_EXCEEDED, "Processing quota exceeded. Please upgrade your plan.")

    logger.info("Processing receipt", extra={"extra_data": {"user_id": user_id, "text_length": len(data.extracted_text)}})

    try:
        parser = get_receipt_parser()
    except ValueError as e:
        logger.error(f"Receipt parser config error: {e}")
        raise ReceiptError(ErrorKind.SERVICE_UNAVAILABLE, "Receipt processing is not available")

    content = await parser.generate(data.extracted_text)
    receipt = finalize_generated_receipt(decode_generation_output(content), user_id)
    if receipt is None:
        raise ReceiptError(ErrorKind.GENERATION_PARSE_FAILURE, "Invalid response format from AI service")

    background_tasks.add_task(record_usage_in_background, session_factory, user_id, len(data.extracted_text))
    await repository.save(user_id, receipt)

    logger.info(
        "Receipt processed",
        extra={"extra_data": {"user_id": user_id, "receipt_id": receipt.id, "items_count": len(receipt.items or [])}},
    )
    return serialize_receipt(receipt)


@router.get("/receipts")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def list_receipts(
    request: Request,
    user: User = Depends(get_current_user),
    repository: ReceiptRepository = Depends(get_receipt_repository),
):
    receipts = await repository.refresh(user.id)
    return [serialize_receipt(r) for r in receipts]


@router.delete("/receipts")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def delete_all_receipts(
    request: Request,
    user: User = Depends(get_current_user),
    repository: ReceiptRepository = Depends(get_receipt_repository),
):
    user_id = user.id
    deleted = await repository.delete_all(user_id)
    return {"deleted": deleted}


@router.get("/receipts/{receipt_id}")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def get_receipt(
    receipt_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    repository: ReceiptRepository = Depends(get_receipt_repository),
):
    receipt = await repository.get(user.id, receipt_id)
    if not receipt:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return serialize_receipt(receipt)


@router.put("/receipts/{receipt_id}")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def update_receipt(
    receipt_id: str,
    data: UpdateReceiptIn,
    request: Request,
    user: User = Depends(get_current_user),
    repository: ReceiptRepository = Depends(get_receipt_repository),
):
    user_id = user.id
    existing = await repository.get(user_id, receipt_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Receipt not found")

    # Explicit nulls clear a field; omitted fields are left alone
    document = receipt_to_document(existing)
    for key, value in data.model_dump(by_alias=True, exclude_unset=True, mode="json").items():
        if value is None:
            document.pop(key, None)
        else:
            document[key] = value

    receipt = parse_receipt_document(document, receipt_id)
    await repository.save(user_id, receipt)
    logger.info("Receipt updated", extra={"extra_data": {"user_id": user_id, "receipt_id": receipt_id}})
    return serialize_receipt(receipt)


@router.delete("/receipts/{receipt_id}", status_code=204)
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
async def delete_receipt(
    receipt_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    repository: ReceiptRepository = Depends(get_receipt_repository),
):
    user_id = user.id
    if not await repository.delete(user_id, receipt_id):
        raise HTTPException(status_code=404, detail="Receipt not found")
    logger.info("Receipt deleted", extra={"extra_data": {"user_id": user_id, "receipt_id": receipt_id}})
    return None
