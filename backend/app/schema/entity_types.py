"""Controlled profile entity type system."""

from __future__ import annotations

import re
from enum import Enum


class ProfileEntityType(str, Enum):
    """Closed set of versioned profile entity tables."""

    WORK_EXPERIENCE = "work_experience"
    EDUCATION = "education"
    SKILL = "skill"
    PROJECT = "project"
    CERTIFICATION = "certification"


ENTITY_TYPE_VALUES: tuple[str, ...] = tuple(member.value for member in ProfileEntityType)
ENTITY_TYPE_SET = set(ENTITY_TYPE_VALUES)

_ENTITY_TYPE_SYNONYMS: dict[str, ProfileEntityType] = {
    "work_experience": ProfileEntityType.WORK_EXPERIENCE,
    "work": ProfileEntityType.WORK_EXPERIENCE,
    "experience": ProfileEntityType.WORK_EXPERIENCE,
    "employment": ProfileEntityType.WORK_EXPERIENCE,
    "job": ProfileEntityType.WORK_EXPERIENCE,
    "position": ProfileEntityType.WORK_EXPERIENCE,
    "education": ProfileEntityType.EDUCATION,
    "degree": ProfileEntityType.EDUCATION,
    "school": ProfileEntityType.EDUCATION,
    "university": ProfileEntityType.EDUCATION,
    "college": ProfileEntityType.EDUCATION,
    "skill": ProfileEntityType.SKILL,
    "skills": ProfileEntityType.SKILL,
    "competency": ProfileEntityType.SKILL,
    "project": ProfileEntityType.PROJECT,
    "projects": ProfileEntityType.PROJECT,
    "portfolio": ProfileEntityType.PROJECT,
    "certification": ProfileEntityType.CERTIFICATION,
    "certifications": ProfileEntityType.CERTIFICATION,
    "certificate": ProfileEntityType.CERTIFICATION,
    "license": ProfileEntityType.CERTIFICATION,
}

# Keyword order matters: "skill" before "work" so "work_skills" is a skill.
_SECTION_KEYWORDS: tuple[tuple[str, ProfileEntityType], ...] = (
    ("skill", ProfileEntityType.SKILL),
    ("certif", ProfileEntityType.CERTIFICATION),
    ("license", ProfileEntityType.CERTIFICATION),
    ("project", ProfileEntityType.PROJECT),
    ("education", ProfileEntityType.EDUCATION),
    ("degree", ProfileEntityType.EDUCATION),
    ("school", ProfileEntityType.EDUCATION),
    ("university", ProfileEntityType.EDUCATION),
    ("college", ProfileEntityType.EDUCATION),
    ("institution", ProfileEntityType.EDUCATION),
    ("work", ProfileEntityType.WORK_EXPERIENCE),
    ("job", ProfileEntityType.WORK_EXPERIENCE),
    ("company", ProfileEntityType.WORK_EXPERIENCE),
    ("employer", ProfileEntityType.WORK_EXPERIENCE),
    ("title", ProfileEntityType.WORK_EXPERIENCE),
    ("experience", ProfileEntityType.WORK_EXPERIENCE),
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_entity_type(raw_type: str | ProfileEntityType | None) -> ProfileEntityType | None:
    """Map a raw entity type label onto the controlled list, or None."""

    if isinstance(raw_type, ProfileEntityType):
        return raw_type
    cleaned = _clean_key(raw_type)
    if not cleaned:
        return None
    return _ENTITY_TYPE_SYNONYMS.get(cleaned)


def infer_entity_type_from_field(field_name: str | None) -> ProfileEntityType | None:
    """Guess the profile section a bare extracted field name belongs to."""

    cleaned = _clean_key(field_name)
    if not cleaned:
        return None
    if "." in (field_name or ""):
        prefix = normalize_entity_type(str(field_name).split(".", 1)[0])
        if prefix is not None:
            return prefix
    for keyword, entity_type in _SECTION_KEYWORDS:
        if keyword in cleaned:
            return entity_type
    return None


def _clean_key(value: str | None) -> str:
    if not value:
        return ""
    return _NON_ALNUM_RE.sub("_", value.strip().lower()).strip("_")
