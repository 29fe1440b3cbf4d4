"""ORM models package exports."""

from app.models.certification import Certification
from app.models.education import Education
from app.models.merge_decision import MergeDecision
from app.models.parsed_resume_entity import ParsedResumeEntity
from app.models.project import Project
from app.models.skill import Skill
from app.models.versioned import EntitySource, VersionedEntityMixin
from app.models.work_experience import WorkExperience

__all__ = [
    "Certification",
    "Education",
    "EntitySource",
    "MergeDecision",
    "ParsedResumeEntity",
    "Project",
    "Skill",
    "VersionedEntityMixin",
    "WorkExperience",
]
