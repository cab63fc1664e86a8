"""SQLAlchemy models for hostnotify."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Document(Base):
    """One schemaless document addressed by ``(collection, id)``."""

    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class InAppNotification(Base):
    __tablename__ = "in_app_notifications"
    __table_args__ = (Index("ix_in_app_notifications_user_id", "user_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False)
    type = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    event_id = Column(String(128), nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
