"""Versioned profile entity persistence."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.certification import Certification
from app.models.education import Education
from app.models.project import Project
from app.models.skill import Skill
from app.models.versioned import EntitySource, VersionedEntityMixin, new_logical_entity_id
from app.models.work_experience import WorkExperience
from app.schema.entity_types import ProfileEntityType, normalize_entity_type
from app.schema.profile_fields import FieldKind, field_names, get_field_spec, split_list_value
from app.services.errors import EntityNotFoundError, ValidationError

ENTITY_MODELS: dict[ProfileEntityType, type[VersionedEntityMixin]] = {
    ProfileEntityType.WORK_EXPERIENCE: WorkExperience,
    ProfileEntityType.EDUCATION: Education,
    ProfileEntityType.SKILL: Skill,
    ProfileEntityType.PROJECT: Project,
    ProfileEntityType.CERTIFICATION: Certification,
}


def coerce_entity_type(raw_type: str | ProfileEntityType | None) -> ProfileEntityType:
    """Resolve a caller-provided entity type or raise ``ValidationError``."""

    entity_type = normalize_entity_type(raw_type)
    if entity_type is None:
        raise ValidationError(f"Unknown profile entity type: {raw_type!r}")
    return entity_type


def get_entity_model(entity_type: ProfileEntityType) -> type[VersionedEntityMixin]:
    return ENTITY_MODELS[entity_type]


def entity_payload(entity_type: ProfileEntityType, entity: VersionedEntityMixin) -> dict[str, Any]:
    """Return the type-specific payload columns of one version row."""

    payload: dict[str, Any] = {}
    for name in field_names(entity_type):
        value = getattr(entity, name)
        payload[name] = list(value) if isinstance(value, list) else value
    return payload


def clean_payload(entity_type: ProfileEntityType, values: dict[str, Any]) -> dict[str, Any]:
    """Validate payload keys and coerce values to their column types."""

    unknown = sorted(set(values) - set(field_names(entity_type)))
    if unknown:
        raise ValidationError(f"Unknown {entity_type.value} fields: {', '.join(unknown)}")
    return {name: coerce_field_value(entity_type, name, value) for name, value in values.items()}


def coerce_field_value(entity_type: ProfileEntityType, field_name: str, value: Any) -> Any:
    """Convert a raw candidate or caller value into the column representation."""

    spec = get_field_spec(entity_type, field_name)
    if spec is None:
        raise ValidationError(f"Unknown {entity_type.value} field: {field_name}")
    if value is None:
        return None
    if spec.kind is FieldKind.LIST:
        return split_list_value(value)
    if spec.kind is FieldKind.NUMBER:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        text = str(value).strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError as exc:
            raise ValidationError(f"{field_name} must be numeric, got {value!r}") from exc
    text = str(value).strip()
    return text or None


def get_active_entity(
    db: Session,
    entity_type: ProfileEntityType,
    user_id: str,
    logical_entity_id: str,
    *,
    for_update: bool = False,
) -> VersionedEntityMixin | None:
    """Return the active version of a logical entity owned by ``user_id``."""

    model = get_entity_model(entity_type)
    stmt = select(model).where(
        model.user_id == user_id,
        model.logical_entity_id == logical_entity_id,
        model.is_active.is_(True),
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.scalar(stmt)


def require_active_entity(
    db: Session,
    entity_type: ProfileEntityType,
    user_id: str,
    logical_entity_id: str,
    *,
    for_update: bool = False,
) -> VersionedEntityMixin:
    entity = get_active_entity(db, entity_type, user_id, logical_entity_id, for_update=for_update)
    if entity is None:
        raise EntityNotFoundError(entity_type.value, logical_entity_id)
    return entity


def list_active_entities(
    db: Session,
    entity_type: ProfileEntityType,
    user_id: str,
) -> list[VersionedEntityMixin]:
    """List the active version of every logical entity of one type."""

    model = get_entity_model(entity_type)
    stmt = (
        select(model)
        .where(model.user_id == user_id, model.is_active.is_(True))
        .order_by(model.created_at.asc(), model.id.asc())
    )
    return list(db.scalars(stmt).all())


def get_profile(db: Session, user_id: str) -> dict[ProfileEntityType, list[VersionedEntityMixin]]:
    """Return the caller's confirmed profile grouped by entity type."""

    return {entity_type: list_active_entities(db, entity_type, user_id) for entity_type in ProfileEntityType}


def get_entity_history(
    db: Session,
    entity_type: ProfileEntityType,
    user_id: str,
    logical_entity_id: str,
) -> list[VersionedEntityMixin]:
    """Return every version of a logical entity, newest first."""

    model = get_entity_model(entity_type)
    stmt = (
        select(model)
        .where(model.user_id == user_id, model.logical_entity_id == logical_entity_id)
        .order_by(model.version.desc())
    )
    return list(db.scalars(stmt).all())


def get_entity_version(
    db: Session,
    entity_type: ProfileEntityType,
    user_id: str,
    logical_entity_id: str,
    version: int,
) -> VersionedEntityMixin | None:
    model = get_entity_model(entity_type)
    return db.scalar(
        select(model).where(
            model.user_id == user_id,
            model.logical_entity_id == logical_entity_id,
            model.version == version,
        )
    )


def create_entity(
    db: Session,
    entity_type: ProfileEntityType,
    user_id: str,
    payload: dict[str, Any],
    *,
    source: EntitySource,
    source_confidence: float | None = None,
) -> VersionedEntityMixin:
    """Insert version 1 of a brand-new logical entity. Caller commits."""

    model = get_entity_model(entity_type)
    entity = model(
        user_id=user_id,
        logical_entity_id=new_logical_entity_id(),
        version=1,
        is_active=True,
        source=source.value,
        source_confidence=source_confidence if source is EntitySource.AI_EXTRACTION else None,
        **clean_payload(entity_type, payload),
    )
    db.add(entity)
    db.flush()
    return entity


def create_manual_entity(
    db: Session,
    user_id: str,
    entity_type: ProfileEntityType,
    payload: dict[str, Any],
) -> VersionedEntityMixin:
    """Create a user-entered entity and commit it."""

    cleaned = clean_payload(entity_type, payload)
    if not any(value not in (None, []) for value in cleaned.values()):
        raise ValidationError("At least one field must be provided.")
    entity = create_entity(db, entity_type, user_id, cleaned, source=EntitySource.USER_MANUAL)
    db.commit()
    db.refresh(entity)
    return entity
