"""Shared envelope for versioned profile entity tables."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import Boolean, Float, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.models.base import IdMixin, TimestampMixin


class EntitySource(str, Enum):
    """Where a version's payload came from."""

    USER_MANUAL = "USER_MANUAL"
    AI_EXTRACTION = "AI_EXTRACTION"


def new_logical_entity_id() -> str:
    return str(uuid.uuid4())


class VersionedEntityMixin(IdMixin, TimestampMixin):
    """Append-only version rows sharing one ``logical_entity_id``.

    Rows are never updated in place except for flipping ``is_active`` off when
    a newer version takes over. A partial unique index keeps at most one active
    row per logical entity on both PostgreSQL and SQLite.
    """

    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    logical_entity_id: Mapped[str] = mapped_column(
        String(36),
        index=True,
        nullable=False,
        default=new_logical_entity_id,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default=EntitySource.USER_MANUAL.value)
    source_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    @declared_attr.directive
    def __table_args__(cls) -> tuple[object, ...]:
        table = cls.__tablename__
        return (
            UniqueConstraint("logical_entity_id", "version", name=f"uq_{table}_logical_version"),
            Index(
                f"uq_{table}_one_active",
                "logical_entity_id",
                unique=True,
                postgresql_where=text("is_active"),
                sqlite_where=text("is_active"),
            ),
        )
