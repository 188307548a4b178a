import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Column, String, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint,
)

from budgy.database import Base


def new_uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    token_hash = Column(String(64), unique=True, nullable=True, index=True)
    email = Column(String(255), nullable=True)
    subscription_status = Column(String(20), nullable=True)  # "active" = premium
    usage_this_month = Column(Integer, nullable=False, default=0)
    usage_month = Column(String(7), nullable=True)  # "YYYY-MM" the counter belongs to
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class StoredDocument(Base):
    """A schemaless per-user document, addressed as users/{user_id}/{collection}/{document_id}."""

    __tablename__ = "documents"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    collection = Column(String(64), nullable=False)
    document_id = Column(String(255), nullable=False)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "collection", "document_id"),)


class UsageLog(Base):
    __tablename__ = "usage"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    text_length = Column(Integer, nullable=False)
    estimated_cost = Column(Numeric(12, 6), nullable=False)
