"""Monthly receipt-processing quota for free accounts.

The check in ``has_quota`` and the increment in ``record_usage`` are separate
steps, so two concurrent requests from a user with one receipt left can both
pass the check. The limit is best-effort. The counter itself is never lost:
``record_usage`` increments in a single UPDATE statement, not read-modify-write.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import case
from sqlalchemy.orm import Session, sessionmaker

from budgy.models import UsageLog, User

logger = logging.getLogger("budgy")

FREE_RECEIPTS_PER_MONTH = 10
COST_PER_1K_CHARS = Decimal("0.002")  # rough estimate


def month_key(now: datetime) -> str:
    return now.strftime("%Y-%m")


def is_premium(user: User) -> bool:
    return user.subscription_status == "active"


def usage_this_month(user: User, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    if user.usage_month != month_key(now):
        return 0
    return user.usage_this_month or 0


def has_quota(user: User, now: datetime | None = None) -> bool:
    return is_premium(user) or usage_this_month(user, now) < FREE_RECEIPTS_PER_MONTH


def remaining_quota(user: User, now: datetime | None = None) -> int | None:
    """Receipts left this month, or None when unlimited."""
    if is_premium(user):
        return None
    return max(0, FREE_RECEIPTS_PER_MONTH - usage_this_month(user, now))


def estimate_cost(text_length: int) -> Decimal:
    return Decimal(text_length) / 1000 * COST_PER_1K_CHARS


def record_usage(db: Session, user_id: str, text_length: int, now: datetime | None = None) -> None:
    now = now or datetime.now(timezone.utc)
    month = month_key(now)

    db.add(UsageLog(
        user_id=user_id,
        timestamp=now,
        text_length=text_length,
        estimated_cost=estimate_cost(text_length),
    ))
    # Resets to 1 when the stored counter belongs to an earlier month
    db.query(User).filter(User.id == user_id).update(
        {
            User.usage_this_month: case(
                (User.usage_month == month, User.usage_this_month + 1),
                else_=1,
            ),
            User.usage_month: month,
            User.last_used_at: now,
        },
        synchronize_session=False,
    )
    db.commit()


def record_usage_in_background(session_factory: sessionmaker, user_id: str, text_length: int) -> None:
    """Background-task entry point; runs after the response on its own session."""
    db = session_factory()
    try:
        record_usage(db, user_id, text_length)
        logger.info("Usage recorded", extra={"extra_data": {"user_id": user_id, "text_length": text_length}})
    except Exception:
        db.rollback()
        # The response is already sent; nothing upstream can act on this
        logger.error("Failed to record usage", exc_info=True, extra={"extra_data": {"user_id": user_id}})
    finally:
        db.close()
