"""SQLAlchemy metadata registry import for Alembic."""

from app.models import (
    Certification,
    Education,
    MergeDecision,
    ParsedResumeEntity,
    Project,
    Skill,
    WorkExperience,
)
from app.models.base import Base

__all__ = [
    "Base",
    "Certification",
    "Education",
    "MergeDecision",
    "ParsedResumeEntity",
    "Project",
    "Skill",
    "WorkExperience",
]
