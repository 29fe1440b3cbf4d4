"""Payload field registry for each profile entity type."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum

from app.schema.entity_types import ProfileEntityType


class FieldKind(str, Enum):
    """How a payload field is normalized and compared."""

    TEXT = "text"
    ENUM = "enum"
    DATE = "date"
    EXACT = "exact"
    NUMBER = "number"
    LIST = "list"
    URL = "url"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One payload column of a profile entity type."""

    name: str
    kind: FieldKind
    identity: bool = False


_FIELDS: dict[ProfileEntityType, tuple[FieldSpec, ...]] = {
    ProfileEntityType.WORK_EXPERIENCE: (
        FieldSpec("company", FieldKind.TEXT, identity=True),
        FieldSpec("title", FieldKind.TEXT, identity=True),
        FieldSpec("start_date", FieldKind.DATE),
        FieldSpec("end_date", FieldKind.DATE),
        FieldSpec("description", FieldKind.TEXT),
    ),
    ProfileEntityType.EDUCATION: (
        FieldSpec("institution", FieldKind.TEXT, identity=True),
        FieldSpec("degree", FieldKind.TEXT, identity=True),
        FieldSpec("field_of_study", FieldKind.TEXT),
        FieldSpec("start_date", FieldKind.DATE),
        FieldSpec("end_date", FieldKind.DATE),
        FieldSpec("gpa", FieldKind.TEXT),
        FieldSpec("description", FieldKind.TEXT),
    ),
    ProfileEntityType.SKILL: (
        FieldSpec("name", FieldKind.TEXT, identity=True),
        FieldSpec("category", FieldKind.TEXT),
        FieldSpec("proficiency_level", FieldKind.ENUM),
        FieldSpec("years_of_experience", FieldKind.NUMBER),
    ),
    ProfileEntityType.PROJECT: (
        FieldSpec("name", FieldKind.TEXT, identity=True),
        FieldSpec("description", FieldKind.TEXT),
        FieldSpec("technologies_used", FieldKind.LIST),
        FieldSpec("start_date", FieldKind.DATE),
        FieldSpec("end_date", FieldKind.DATE),
        FieldSpec("project_url", FieldKind.URL),
        FieldSpec("repository_url", FieldKind.URL),
    ),
    ProfileEntityType.CERTIFICATION: (
        FieldSpec("name", FieldKind.TEXT, identity=True),
        FieldSpec("issuing_organization", FieldKind.TEXT, identity=True),
        FieldSpec("issue_date", FieldKind.DATE),
        FieldSpec("expiration_date", FieldKind.DATE),
        FieldSpec("credential_id", FieldKind.EXACT),
        FieldSpec("credential_url", FieldKind.URL),
    ),
}

# Extractor labels seen in resumes that map onto payload columns.
_FIELD_ALIASES: dict[ProfileEntityType, dict[str, str]] = {
    ProfileEntityType.WORK_EXPERIENCE: {
        "employer": "company",
        "organization": "company",
        "company_name": "company",
        "position": "title",
        "role": "title",
        "job_title": "title",
        "start": "start_date",
        "from": "start_date",
        "end": "end_date",
        "to": "end_date",
        "summary": "description",
        "responsibility": "description",
    },
    ProfileEntityType.EDUCATION: {
        "school": "institution",
        "university": "institution",
        "college": "institution",
        "major": "field_of_study",
        "field": "field_of_study",
        "start": "start_date",
        "end": "end_date",
        "graduation_date": "end_date",
    },
    ProfileEntityType.SKILL: {
        "skill": "name",
        "skill_name": "name",
        "type": "category",
        "level": "proficiency_level",
        "proficiency": "proficiency_level",
        "year": "years_of_experience",
    },
    ProfileEntityType.PROJECT: {
        "project": "name",
        "project_name": "name",
        "title": "name",
        "technology": "technologies_used",
        "tech_stack": "technologies_used",
        "url": "project_url",
        "repository": "repository_url",
        "repo": "repository_url",
    },
    ProfileEntityType.CERTIFICATION: {
        "certification": "name",
        "certificate": "name",
        "issuer": "issuing_organization",
        "organization": "issuing_organization",
        "issued": "issue_date",
        "expiry": "expiration_date",
        "expire": "expiration_date",
        "url": "credential_url",
    },
}


def field_specs(entity_type: ProfileEntityType) -> tuple[FieldSpec, ...]:
    """Return the payload fields for one entity type."""

    return _FIELDS[entity_type]


def field_names(entity_type: ProfileEntityType) -> tuple[str, ...]:
    return tuple(spec.name for spec in _FIELDS[entity_type])


def identity_field_names(entity_type: ProfileEntityType) -> tuple[str, ...]:
    return tuple(spec.name for spec in _FIELDS[entity_type] if spec.identity)


def get_field_spec(entity_type: ProfileEntityType, field_name: str) -> FieldSpec | None:
    return next((spec for spec in _FIELDS[entity_type] if spec.name == field_name), None)


def resolve_field_name(entity_type: ProfileEntityType, raw_field_name: str | None) -> str | None:
    """Map an extracted field label (optionally ``type.field``) onto a payload column."""

    if not raw_field_name:
        return None
    label = raw_field_name.rsplit(".", 1)[-1]
    normalized = normalize_field_label(label)
    if not normalized:
        return None
    if normalized in field_names(entity_type):
        return normalized
    return _FIELD_ALIASES[entity_type].get(normalized)


def normalize_field_label(value: str | None) -> str:
    """Normalize field labels to singular snake_case."""

    if not value:
        return ""
    cleaned = re.sub(r"\s+", " ", value).strip(" \t\r\n.,:;\"'")
    if not cleaned:
        return ""
    normalized = re.sub(r"[^a-z0-9]+", "_", cleaned.lower()).strip("_")
    return _singularize_last_token(normalized)


def _singularize_last_token(value: str) -> str:
    if "_" in value:
        head, tail = value.rsplit("_", 1)
        return f"{head}_{_singularize_token(tail)}"
    return _singularize_token(value)


def _singularize_token(token: str) -> str:
    if len(token) <= 4:
        return token
    if token.endswith("ies"):
        return token[:-3] + "y"
    if token.endswith(("ss", "us", "is")):
        return token
    if token.endswith("s"):
        return token[:-1]
    return token


def split_list_value(raw: object) -> list[str]:
    """Split a JSON list or comma-separated string into clean items."""

    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        text = str(raw).strip()
        items = []
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list):
                items = [_list_item_text(item) for item in decoded]
        if not items:
            items = text.split(",")
    return [item.strip() for item in items if item and item.strip()]


def _list_item_text(item: object) -> str:
    if isinstance(item, dict):
        return str(item.get("name") or item.get("skill") or item.get("title") or "")
    return "" if item is None else str(item)
