"""Optimistic concurrency guard for versioned profile entities."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.versioned import EntitySource, VersionedEntityMixin
from app.schema.entity_types import ProfileEntityType
from app.services.entity_store import (
    clean_payload,
    entity_payload,
    get_active_entity,
    get_entity_model,
)
from app.services.errors import ConflictError, EntityNotFoundError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def advance_entity_version(
    db: Session,
    entity_type: ProfileEntityType,
    user_id: str,
    logical_entity_id: str,
    expected_version: int,
    updates: dict[str, Any],
    *,
    source: EntitySource | None = None,
    source_confidence: float | None = None,
) -> VersionedEntityMixin:
    """Supersede the active version with ``expected_version + 1``.

    Raises ``EntityNotFoundError`` when the entity has no active version and
    ``ConflictError`` when the active version is not ``expected_version``.
    The caller owns the transaction.
    """

    current = get_active_entity(db, entity_type, user_id, logical_entity_id, for_update=True)
    if current is None:
        raise EntityNotFoundError(entity_type.value, logical_entity_id)
    if current.version != expected_version:
        raise ConflictError(
            entity_type.value,
            logical_entity_id,
            expected_version=expected_version,
            actual_version=current.version,
        )

    merged = entity_payload(entity_type, current)
    merged.update(clean_payload(entity_type, updates))
    next_source = source.value if source is not None else current.source
    if source is None:
        next_confidence = current.source_confidence
    elif source is EntitySource.AI_EXTRACTION:
        next_confidence = source_confidence
    else:
        next_confidence = None

    model = get_entity_model(entity_type)
    result = db.execute(
        update(model)
        .where(
            model.logical_entity_id == logical_entity_id,
            model.version == expected_version,
            model.is_active.is_(True),
        )
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            entity_type.value,
            logical_entity_id,
            expected_version=expected_version,
            actual_version=None,
        )
    db.expire(current)

    successor = model(
        user_id=user_id,
        logical_entity_id=logical_entity_id,
        version=expected_version + 1,
        is_active=True,
        source=next_source,
        source_confidence=next_confidence,
        **merged,
    )
    db.add(successor)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictError(
            entity_type.value,
            logical_entity_id,
            expected_version=expected_version,
            actual_version=None,
        ) from exc
    return successor


def verify_and_edit(
    db: Session,
    user_id: str,
    entity_type: ProfileEntityType,
    logical_entity_id: str,
    expected_version: int,
    updates: dict[str, Any],
) -> VersionedEntityMixin:
    """Apply a user edit made against ``expected_version`` and commit it."""

    if not updates:
        raise ValidationError("At least one field must be provided.")
    if expected_version < 1:
        raise ValidationError("expected_version must be a positive integer.")
    try:
        entity = advance_entity_version(
            db,
            entity_type,
            user_id,
            logical_entity_id,
            expected_version,
            updates,
            source=EntitySource.USER_MANUAL,
        )
        db.commit()
    except ConflictError as exc:
        db.rollback()
        logger.warning(
            "profile.edit_conflict entity_type=%s logical_entity_id=%s expected_version=%s actual_version=%s",
            entity_type.value,
            logical_entity_id,
            exc.expected_version,
            exc.actual_version,
        )
        raise
    except Exception:
        db.rollback()
        raise
    db.refresh(entity)
    return entity


def retry_on_conflict(
    operation: Callable[[int], T],
    *,
    attempts: int,
    backoff_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation(attempt)`` until it stops raising ``ConflictError``.

    ``attempts`` counts retries after the first call. The wait before retry
    ``n`` is ``n * backoff_seconds``.
    """

    attempt = 0
    while True:
        try:
            return operation(attempt)
        except ConflictError:
            if attempt >= attempts:
                raise
            attempt += 1
            if backoff_seconds > 0:
                sleep(backoff_seconds * attempt)
