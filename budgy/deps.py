import hashlib
import logging
import secrets

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from budgy.database import get_db
from budgy.documents import RECEIPTS, SETTINGS, SqlDocumentStore
from budgy.errors import ErrorKind, ReceiptError
from budgy.models import User
from budgy.repository import BudgetService, ReceiptRepository, StorePolicy

logger = logging.getLogger("budgy")


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def create_user(db: Session, email: str | None = None, premium: bool = False, user_id: str | None = None) -> User:
    user = User(email=email, subscription_status="active" if premium else None)
    if user_id:
        user.id = user_id
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def issue_token(db: Session, user: User) -> str:
    """Create a new bearer token for ``user``; any earlier token stops working."""
    token = generate_token()
    user.token_hash = hash_token(token)
    db.commit()
    return token


def _bearer_token(request: Request) -> str:
    authorization = request.headers.get("Authorization")
    if not authorization:
        raise ReceiptError(ErrorKind.UNAUTHENTICATED, "No authentication token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ReceiptError(ErrorKind.UNAUTHENTICATED, "Invalid authentication token")
    return token.strip()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Resolve the bearer token to a verified user."""
    token = _bearer_token(request)
    user = db.query(User).filter(User.token_hash == hash_token(token)).first()
    if not user:
        logger.warning("Token verification failed", extra={"extra_data": {"path": request.url.path}})
        raise ReceiptError(ErrorKind.UNAUTHENTICATED, "Invalid authentication token")
    request.state.user_id = user.id
    return user


def get_store_policy() -> StorePolicy:
    return StorePolicy.from_env()


def get_receipt_repository(
    db: Session = Depends(get_db),
    policy: StorePolicy = Depends(get_store_policy),
) -> ReceiptRepository:
    return ReceiptRepository(SqlDocumentStore(db, RECEIPTS), policy)


def get_budget_service(
    db: Session = Depends(get_db),
    policy: StorePolicy = Depends(get_store_policy),
) -> BudgetService:
    return BudgetService(SqlDocumentStore(db, SETTINGS), policy)
