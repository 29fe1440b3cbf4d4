"""Extracted candidate field storage model."""

from sqlalchemy import Float, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, CreatedAtMixin, IdMixin


class ParsedResumeEntity(Base, IdMixin, CreatedAtMixin):
    """One candidate field value produced by resume extraction."""

    __tablename__ = "parsed_resume_entities"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "resume_version_id",
            "parsed_entity_id",
            "field_name",
            name="uq_parsed_resume_entities_version_entity_field",
        ),
    )

    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    resume_version_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    parsed_entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    field_name: Mapped[str] = mapped_column(String(128), nullable=False)
    raw_value: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    matched_entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
