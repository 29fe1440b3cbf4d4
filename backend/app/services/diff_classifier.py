"""Classify extracted candidate fields against the confirmed profile."""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy.orm import Session

from app.config import get_settings
from app.entity_resolution.match_lookup import MatchLookupInterface
from app.extraction.types import CandidateField
from app.schema.entity_types import ProfileEntityType, infer_entity_type_from_field, normalize_entity_type
from app.schema.profile_fields import FieldKind, get_field_spec, resolve_field_name, split_list_value
from app.schemas.review import DiffItem
from app.services.entity_store import get_active_entity
from app.services.errors import MatchLookupError, ValidationError

logger = logging.getLogger(__name__)

_MULTISPACE_RE = re.compile(r"\s+")


def resolve_candidate_target(candidate: CandidateField) -> tuple[ProfileEntityType, str]:
    """Return the entity type and payload column a candidate field maps onto."""

    if candidate.entity_type:
        entity_type = normalize_entity_type(candidate.entity_type)
        if entity_type is None:
            raise ValidationError(f"Unknown profile entity type: {candidate.entity_type!r}")
    else:
        entity_type = infer_entity_type_from_field(candidate.field_name)
        if entity_type is None:
            raise ValidationError(f"Cannot infer entity type for field {candidate.field_name!r}")
    field_name = resolve_field_name(entity_type, candidate.field_name)
    if field_name is None:
        raise ValidationError(f"Unknown {entity_type.value} field: {candidate.field_name!r}")
    return entity_type, field_name


def classify_candidate(
    db: Session,
    user_id: str,
    candidate: CandidateField,
    lookup: MatchLookupInterface,
) -> DiffItem:
    """Classify one candidate as new, equivalent, or conflicting."""

    entity_type, field_name = resolve_candidate_target(candidate)
    confidence = candidate.confidence
    if confidence is None:
        confidence = get_settings().default_ai_confidence

    matched = None
    if candidate.matched_entity_id:
        matched = get_active_entity(db, entity_type, user_id, candidate.matched_entity_id)
    if matched is None:
        matched_id = _lookup_match(db, user_id, entity_type, candidate, lookup)
        if matched_id is not None:
            matched = get_active_entity(db, entity_type, user_id, matched_id)
            if matched is None:
                raise MatchLookupError(f"Match lookup returned unknown {entity_type.value} entity {matched_id}")

    if matched is None:
        return DiffItem(
            field_name=field_name,
            parsed_entity_id=candidate.parsed_entity_id,
            profile_entity_type=entity_type.value,
            diff_type="new",
            parsed_value=candidate.raw_value,
            confidence_score=confidence,
            justification=f"No existing {entity_type.value} matches this record.",
        )

    profile_value = format_field_value(getattr(matched, field_name))
    kind = get_field_spec(entity_type, field_name).kind
    if values_equivalent(kind, candidate.raw_value, profile_value):
        diff_type = "equivalent"
        justification = f"{field_name} matches the profile value."
    else:
        diff_type = "conflicting"
        if profile_value is None:
            justification = f"Profile has no {field_name}; resume supplies one."
        else:
            justification = f"{field_name} differs from the profile value."
    return DiffItem(
        field_name=field_name,
        parsed_entity_id=candidate.parsed_entity_id,
        profile_entity_id=matched.logical_entity_id,
        profile_entity_type=entity_type.value,
        profile_entity_version=matched.version,
        diff_type=diff_type,
        parsed_value=candidate.raw_value,
        profile_value=profile_value,
        confidence_score=confidence,
        justification=justification,
        requires_review=diff_type == "conflicting",
    )


def _lookup_match(
    db: Session,
    user_id: str,
    entity_type: ProfileEntityType,
    candidate: CandidateField,
    lookup: MatchLookupInterface,
) -> str | None:
    try:
        return lookup.find_similar_entity(db, user_id, entity_type, candidate)
    except MatchLookupError:
        logger.exception(
            "classifier.match_lookup_failed parsed_entity_id=%s field=%s",
            candidate.parsed_entity_id,
            candidate.field_name,
        )
        raise
    except Exception as exc:
        logger.exception(
            "classifier.match_lookup_failed parsed_entity_id=%s field=%s",
            candidate.parsed_entity_id,
            candidate.field_name,
        )
        raise MatchLookupError(f"Match lookup failed: {exc}") from exc


def format_field_value(value: Any) -> str | None:
    """Render a stored column value the way candidates carry it."""

    if value is None:
        return None
    if isinstance(value, list):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_value(kind: FieldKind, value: Any) -> Any:
    """Comparison key for a field value of the given kind."""

    if value is None:
        return None
    if kind is FieldKind.LIST:
        items = frozenset(_normalize_text(item) for item in split_list_value(value))
        return items or None
    text = str(value).strip()
    if not text:
        return None
    if kind is FieldKind.TEXT:
        return _normalize_text(text)
    if kind is FieldKind.NUMBER:
        try:
            return float(text)
        except ValueError:
            return _normalize_text(text)
    if kind is FieldKind.URL:
        return _normalize_url(text)
    return text


def values_equivalent(kind: FieldKind, left: Any, right: Any) -> bool:
    return normalize_value(kind, left) == normalize_value(kind, right)


def _normalize_text(value: str) -> str:
    normalized = unicodedata.normalize("NFKC", value)
    return _MULTISPACE_RE.sub(" ", normalized).strip().casefold()


def _normalize_url(value: str) -> str:
    parts = urlsplit(value)
    rebuilt = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment))
    return rebuilt.rstrip("/")
