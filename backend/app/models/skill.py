"""Skill ORM model."""

from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.versioned import VersionedEntityMixin


class Skill(Base, VersionedEntityMixin):
    """One version of a skill."""

    __tablename__ = "skill"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    proficiency_level: Mapped[str | None] = mapped_column(String(64), nullable=True)
    years_of_experience: Mapped[float | None] = mapped_column(Float, nullable=True)
