"""Certification ORM model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.versioned import VersionedEntityMixin


class Certification(Base, VersionedEntityMixin):
    """One version of a certification or license."""

    __tablename__ = "certification"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issuing_organization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issue_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    expiration_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    credential_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    credential_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
