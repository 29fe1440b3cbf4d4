"""Merge decision ledger ORM model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, IdMixin, TimestampMixin


class MergeDecision(Base, IdMixin, TimestampMixin):
    """A recorded disposition for one classified candidate field."""

    __tablename__ = "merge_decisions"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "resume_version_id",
            "parsed_entity_id",
            "field_name",
            name="uq_merge_decisions_version_entity_field",
        ),
    )

    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    resume_version_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    parsed_entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    field_name: Mapped[str] = mapped_column(String(128), nullable=False)
    decision_type: Mapped[str] = mapped_column(String(16), nullable=False)
    parsed_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmed_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    profile_entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    profile_entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    profile_entity_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reviewed_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
