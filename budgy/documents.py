import logging
from typing import Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from budgy.models import StoredDocument

logger = logging.getLogger("budgy")

RECEIPTS = "receipts"
SETTINGS = "settings"


class StoreError(Exception):
    """A document store read or write failed."""


class DocumentStore(Protocol):
    def get(self, user_id: str, doc_id: str) -> dict | None: ...

    def set(self, user_id: str, doc_id: str, doc: dict) -> None: ...

    def list(self, user_id: str) -> list[tuple[str, dict]]: ...

    def delete(self, user_id: str, doc_id: str) -> bool: ...


class SqlDocumentStore:
    """Per-user JSON documents in one collection (users/{user_id}/{collection}/{doc_id})."""

    def __init__(self, db: Session, collection: str = RECEIPTS):
        self.db = db
        self.collection = collection

    def _query(self, user_id: str):
        return self.db.query(StoredDocument).filter(
            StoredDocument.user_id == user_id,
            StoredDocument.collection == self.collection,
        )

    def get(self, user_id: str, doc_id: str) -> dict | None:
        try:
            row = self._query(user_id).filter(StoredDocument.document_id == doc_id).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to read {self.collection}/{doc_id}: {e}") from e
        return row.data if row else None

    def set(self, user_id: str, doc_id: str, doc: dict) -> None:
        try:
            row = self._query(user_id).filter(StoredDocument.document_id == doc_id).first()
            if row:
                row.data = doc
            else:
                self.db.add(StoredDocument(
                    user_id=user_id,
                    collection=self.collection,
                    document_id=doc_id,
                    data=doc,
                ))
            self.db.commit()
        except IntegrityError:
            # Race condition: another request created the same document first
            self.db.rollback()
            try:
                self._query(user_id).filter(StoredDocument.document_id == doc_id).update(
                    {StoredDocument.data: doc}, synchronize_session=False,
                )
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StoreError(f"Failed to write {self.collection}/{doc_id}: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to write {self.collection}/{doc_id}: {e}") from e

    def list(self, user_id: str) -> list[tuple[str, dict]]:
        try:
            rows = self._query(user_id).order_by(StoredDocument.document_id).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to list {self.collection}: {e}") from e
        return [(row.document_id, row.data) for row in rows]

    def delete(self, user_id: str, doc_id: str) -> bool:
        try:
            deleted = self._query(user_id).filter(StoredDocument.document_id == doc_id).delete(
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to delete {self.collection}/{doc_id}: {e}") from e
        return deleted > 0
