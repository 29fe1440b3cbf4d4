"""Schemas for versioned profile entities."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.versioned import VersionedEntityMixin
from app.schema.entity_types import ProfileEntityType
from app.schema.profile_fields import field_names


class WorkExperiencePayload(BaseModel):
    """Editable work experience fields."""

    model_config = ConfigDict(extra="forbid")

    company: str | None = None
    title: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    description: str | None = None


class EducationPayload(BaseModel):
    """Editable education fields."""

    model_config = ConfigDict(extra="forbid")

    institution: str | None = None
    degree: str | None = None
    field_of_study: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    gpa: str | None = None
    description: str | None = None


class SkillPayload(BaseModel):
    """Editable skill fields."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    category: str | None = None
    proficiency_level: str | None = None
    years_of_experience: float | None = Field(default=None, ge=0.0)


class ProjectPayload(BaseModel):
    """Editable project fields."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    description: str | None = None
    technologies_used: list[str] | None = None
    start_date: str | None = None
    end_date: str | None = None
    project_url: str | None = None
    repository_url: str | None = None


class CertificationPayload(BaseModel):
    """Editable certification fields."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    issuing_organization: str | None = None
    issue_date: str | None = None
    expiration_date: str | None = None
    credential_id: str | None = None
    credential_url: str | None = None


ENTITY_PAYLOAD_MODELS: dict[ProfileEntityType, type[BaseModel]] = {
    ProfileEntityType.WORK_EXPERIENCE: WorkExperiencePayload,
    ProfileEntityType.EDUCATION: EducationPayload,
    ProfileEntityType.SKILL: SkillPayload,
    ProfileEntityType.PROJECT: ProjectPayload,
    ProfileEntityType.CERTIFICATION: CertificationPayload,
}


class EntityEditRequest(BaseModel):
    """Field changes made against a specific entity version."""

    expected_version: int = Field(ge=1)
    changes: dict[str, Any]

    @model_validator(mode="after")
    def validate_non_empty_update(self) -> "EntityEditRequest":
        if not self.changes:
            raise ValueError("At least one field must be provided.")
        return self


class _VersionedRead(BaseModel):
    id: int
    user_id: str
    logical_entity_id: str
    version: int
    is_active: bool
    source: str
    source_confidence: float | None
    created_at: datetime
    updated_at: datetime


class WorkExperienceRead(_VersionedRead, WorkExperiencePayload):
    model_config = ConfigDict(extra="ignore")

    entity_type: Literal["work_experience"] = "work_experience"


class EducationRead(_VersionedRead, EducationPayload):
    model_config = ConfigDict(extra="ignore")

    entity_type: Literal["education"] = "education"


class SkillRead(_VersionedRead, SkillPayload):
    model_config = ConfigDict(extra="ignore")

    entity_type: Literal["skill"] = "skill"


class ProjectRead(_VersionedRead, ProjectPayload):
    model_config = ConfigDict(extra="ignore")

    entity_type: Literal["project"] = "project"


class CertificationRead(_VersionedRead, CertificationPayload):
    model_config = ConfigDict(extra="ignore")

    entity_type: Literal["certification"] = "certification"


ProfileEntityRead = Annotated[
    Union[WorkExperienceRead, EducationRead, SkillRead, ProjectRead, CertificationRead],
    Field(discriminator="entity_type"),
]

_READ_MODELS: dict[ProfileEntityType, type[_VersionedRead]] = {
    ProfileEntityType.WORK_EXPERIENCE: WorkExperienceRead,
    ProfileEntityType.EDUCATION: EducationRead,
    ProfileEntityType.SKILL: SkillRead,
    ProfileEntityType.PROJECT: ProjectRead,
    ProfileEntityType.CERTIFICATION: CertificationRead,
}


class ProfileRead(BaseModel):
    """Active version of every profile entity, grouped by type."""

    user_id: str
    work_experience: list[WorkExperienceRead] = Field(default_factory=list)
    education: list[EducationRead] = Field(default_factory=list)
    skill: list[SkillRead] = Field(default_factory=list)
    project: list[ProjectRead] = Field(default_factory=list)
    certification: list[CertificationRead] = Field(default_factory=list)


def to_entity_read(entity_type: ProfileEntityType, entity: VersionedEntityMixin) -> _VersionedRead:
    """Serialize one version row with its entity type tag."""

    values = {
        name: getattr(entity, name)
        for name in (*_VersionedRead.model_fields, *field_names(entity_type))
    }
    return _READ_MODELS[entity_type].model_validate(values)
