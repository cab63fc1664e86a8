"""CRUD helpers for documents and in-app notifications."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import database
from .models import Document, InAppNotification
from .utils import utcnow

RESERVATIONS = "reservations"
EVENTS = "events"
USERS = "users"


class DocumentNotFoundError(LookupError):
    """Raised when updating a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


def get_document(session: Session, collection: str, doc_id: str) -> Document | None:
    if not doc_id:
        return None
    return session.get(Document, (collection, doc_id))


def put_document(
    session: Session, collection: str, doc_id: str, data: dict[str, Any]
) -> Document:
    """Create or replace a document."""
    document = get_document(session, collection, doc_id)
    if document is None:
        document = Document(collection=collection, id=doc_id, data=dict(data))
    else:
        document.data = dict(data)
        document.updated_at = utcnow()
    session.add(document)
    session.flush()
    return document


def update_document(
    session: Session, collection: str, doc_id: str, fields: dict[str, Any]
) -> Document:
    """Shallow-merge ``fields`` into an existing document."""
    document = get_document(session, collection, doc_id)
    if document is None:
        raise DocumentNotFoundError(collection, doc_id)
    # JSON columns only notice reassignment, not in-place mutation.
    document.data = {**(document.data or {}), **fields}
    document.updated_at = utcnow()
    session.add(document)
    session.flush()
    return document


def create_in_app_notification(
    session: Session,
    *,
    user_id: str,
    type: str,
    title: str,
    body: str,
    event_id: str | None = None,
) -> InAppNotification:
    notification = InAppNotification(
        user_id=user_id,
        type=type,
        title=title,
        body=body,
        event_id=event_id,
        read=False,
        created_at=utcnow(),
    )
    session.add(notification)
    session.flush()
    return notification


def list_in_app_notifications(
    session: Session, user_id: str, limit: int | None = None
) -> Sequence[InAppNotification]:
    stmt = (
        select(InAppNotification)
        .where(InAppNotification.user_id == user_id)
        .order_by(InAppNotification.created_at.desc())
    )
    if limit and limit > 0:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()


class DocumentStore:
    """get/update access to documents, one short transaction per call."""

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with database.session_scope(self._session_factory) as session:
            document = get_document(session, collection, doc_id)
            return dict(document.data or {}) if document else None

    def put(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        with database.session_scope(self._session_factory) as session:
            put_document(session, collection, doc_id, data)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        with database.session_scope(self._session_factory) as session:
            update_document(session, collection, doc_id, fields)
