# wellbeing/entities.py
from datetime import datetime, timezone
from uuid import uuid4
from sqlalchemy.orm import Mapped, declarative_base, mapped_column
from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Index,
    JSON,
)

from typing import TypeAlias
UUID: TypeAlias = str
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "user"

    id: Mapped[UUID] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )


class StoredDocument(Base):
    """
    One document of a per-user collection.

    A document lives under (app_id, owner_id, collection), the same scoping as
    artifacts/{app_id}/users/{owner_id}/{collection}. The timestamp is assigned
    by the store at insert time, never by the caller.
    """
    __tablename__ = "stored_document"

    id: Mapped[UUID] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    app_id: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    collection: Mapped[str] = mapped_column(String(64), nullable=False)

    payload: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False, default=dict)

    timestamp: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=_utcnow,
    )

    __table_args__ = (
        Index("ix_stored_document_scope", "app_id", "owner_id", "collection"),
    )
