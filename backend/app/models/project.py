"""Project ORM model."""

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.versioned import VersionedEntityMixin


class Project(Base, VersionedEntityMixin):
    """One version of a portfolio project."""

    __tablename__ = "project"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    technologies_used: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    start_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    end_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    project_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    repository_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
