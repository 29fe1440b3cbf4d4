"""Apply recorded merge decisions to the versioned profile."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.entity_resolution.match_lookup import MatchLookupInterface
from app.models.base import utc_now
from app.models.merge_decision import MergeDecision
from app.models.versioned import EntitySource, VersionedEntityMixin
from app.schema.entity_types import ProfileEntityType
from app.schema.profile_fields import split_list_value
from app.schemas.review import (
    ApplySummary,
    BulkApplyGroupResult,
    BulkApplySummary,
    DecisionResult,
    DiffItem,
)
from app.services.concurrency import advance_entity_version, retry_on_conflict
from app.services.diff_classifier import format_field_value
from app.services.entity_store import coerce_entity_type, create_entity, get_active_entity
from app.services.errors import ApplicationError, ConflictError, EntityNotFoundError, ValidationError
from app.services.merge_ledger import list_decisions, list_pending_decisions
from app.services.review import list_review_items

logger = logging.getLogger(__name__)


class ReviewedValueChangedError(ApplicationError):
    """The target field no longer holds the value the decision was reviewed against."""


@dataclass(slots=True)
class _ApplyUnit:
    """Decisions written together in one transaction."""

    decisions: list[MergeDecision]
    new_entity: bool = False
    parsed_entity_id: str = ""
    entity_type: str = ""


def apply_all(
    db: Session,
    user_id: str,
    version_id: str,
    *,
    retry_attempts: int | None = None,
    backoff_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ApplySummary:
    """Apply every pending decision of a resume version, one unit at a time.

    Failed units are rolled back, keep their ``last_error`` and stay pending.
    Only reading the ledger can make this raise.
    """

    settings = get_settings()
    attempts = settings.conflict_retry_attempts if retry_attempts is None else retry_attempts
    backoff = settings.conflict_retry_backoff_seconds if backoff_seconds is None else backoff_seconds

    started_at = perf_counter()
    pending = list_pending_decisions(db, user_id, version_id)
    summary = ApplySummary()
    for unit in _build_units(pending):
        decision_ids = [decision.id for decision in unit.decisions]
        try:
            if unit.new_entity:
                results = _apply_new_entity_unit(db, user_id, version_id, unit, attempts, backoff, sleep)
            elif unit.decisions[0].decision_type == "reject":
                results = [_apply_reject(db, unit.decisions[0])]
            else:
                results = [_apply_targeted(db, user_id, unit.decisions[0], attempts, backoff, sleep)]
        except Exception as exc:
            db.rollback()
            if isinstance(exc, (ConflictError, ReviewedValueChangedError)):
                logger.warning(
                    "reconciliation.apply_conflict version_id=%s decision_ids=%s error=%s",
                    version_id,
                    decision_ids,
                    exc,
                )
            else:
                logger.exception(
                    "reconciliation.apply_failed version_id=%s decision_ids=%s",
                    version_id,
                    decision_ids,
                )
            results = _record_failure(db, decision_ids, exc)

        for result in results:
            summary.results.append(result)
            if result.status == "applied":
                summary.applied += 1
            elif result.status == "overridden":
                summary.overridden += 1
            elif result.status == "rejected":
                summary.rejected += 1
            else:
                summary.failed += 1

    logger.info(
        "reconciliation.apply_timing version_id=%s applied=%d rejected=%d overridden=%d failed=%d total_ms=%.2f",
        version_id,
        summary.applied,
        summary.rejected,
        summary.overridden,
        summary.failed,
        (perf_counter() - started_at) * 1000,
    )
    return summary


def _build_units(pending: list[MergeDecision]) -> list[_ApplyUnit]:
    units: list[_ApplyUnit] = []
    new_units: dict[tuple[str, str], _ApplyUnit] = {}
    for decision in pending:
        if decision.decision_type != "reject" and decision.profile_entity_id is None:
            key = (decision.parsed_entity_id, decision.profile_entity_type)
            unit = new_units.get(key)
            if unit is None:
                unit = _ApplyUnit(
                    decisions=[],
                    new_entity=True,
                    parsed_entity_id=decision.parsed_entity_id,
                    entity_type=decision.profile_entity_type,
                )
                new_units[key] = unit
                units.append(unit)
            unit.decisions.append(decision)
        else:
            units.append(_ApplyUnit(decisions=[decision]))
    return units


def _status_for(decision: MergeDecision) -> str:
    return "overridden" if decision.decision_type == "override" else "applied"


def _mark_applied(decision: MergeDecision, logical_entity_id: str | None) -> None:
    decision.applied = True
    decision.applied_at = utc_now()
    decision.applied_entity_id = logical_entity_id
    decision.last_error = None


def _apply_reject(db: Session, decision: MergeDecision) -> DecisionResult:
    _mark_applied(decision, None)
    db.commit()
    return DecisionResult(
        decision_id=decision.id,
        parsed_entity_id=decision.parsed_entity_id,
        field_name=decision.field_name,
        entity_type=decision.profile_entity_type,
        status="rejected",
        logical_entity_id=decision.profile_entity_id,
    )


def _apply_targeted(
    db: Session,
    user_id: str,
    decision: MergeDecision,
    attempts: int,
    backoff: float,
    sleep: Callable[[float], None],
) -> DecisionResult:
    entity_type = coerce_entity_type(decision.profile_entity_type)
    logical_entity_id = decision.profile_entity_id
    field_name = decision.field_name
    if decision.decision_type == "override":
        source, confidence = EntitySource.USER_MANUAL, None
    else:
        source, confidence = EntitySource.AI_EXTRACTION, decision.confidence_score
    decision_id = decision.id
    confirmed_value = decision.confirmed_value
    reviewed_value = decision.reviewed_value
    snapshot_version = decision.profile_entity_version

    def attempt(number: int) -> VersionedEntityMixin:
        expected = snapshot_version
        if number > 0 or expected is None:
            active = get_active_entity(db, entity_type, user_id, logical_entity_id)
            if active is None:
                raise EntityNotFoundError(entity_type.value, logical_entity_id)
            current_value = format_field_value(getattr(active, field_name))
            if number > 0 and current_value != reviewed_value:
                raise ReviewedValueChangedError(
                    f"{entity_type.value} {logical_entity_id} {field_name} changed since review "
                    f"(version {active.version})"
                )
            expected = active.version
            logger.info(
                "reconciliation.rebase decision_id=%s logical_entity_id=%s expected_version=%s attempt=%d",
                decision_id,
                logical_entity_id,
                expected,
                number,
            )
        try:
            entity = advance_entity_version(
                db,
                entity_type,
                user_id,
                logical_entity_id,
                expected,
                {field_name: confirmed_value},
                source=source,
                source_confidence=confidence,
            )
            stored = db.get(MergeDecision, decision_id)
            _mark_applied(stored, logical_entity_id)
            db.commit()
        except ConflictError:
            db.rollback()
            raise
        return entity

    entity = retry_on_conflict(attempt, attempts=attempts, backoff_seconds=backoff, sleep=sleep)
    stored = db.get(MergeDecision, decision_id)
    return DecisionResult(
        decision_id=decision_id,
        parsed_entity_id=stored.parsed_entity_id,
        field_name=field_name,
        entity_type=entity_type.value,
        status=_status_for(stored),
        logical_entity_id=logical_entity_id,
        version=entity.version,
        applied_value=confirmed_value,
    )


def _previously_created_entity_id(
    db: Session,
    user_id: str,
    version_id: str,
    parsed_entity_id: str,
    entity_type: str,
) -> str | None:
    return db.scalar(
        select(MergeDecision.applied_entity_id)
        .where(
            MergeDecision.user_id == user_id,
            MergeDecision.resume_version_id == version_id,
            MergeDecision.parsed_entity_id == parsed_entity_id,
            MergeDecision.profile_entity_type == entity_type,
            MergeDecision.profile_entity_id.is_(None),
            MergeDecision.applied.is_(True),
            MergeDecision.applied_entity_id.is_not(None),
        )
        .order_by(MergeDecision.applied_at.asc(), MergeDecision.id.asc())
        .limit(1)
    )


def _apply_new_entity_unit(
    db: Session,
    user_id: str,
    version_id: str,
    unit: _ApplyUnit,
    attempts: int,
    backoff: float,
    sleep: Callable[[float], None],
) -> list[DecisionResult]:
    entity_type = coerce_entity_type(unit.entity_type)
    decision_ids = [decision.id for decision in unit.decisions]
    payload = {decision.field_name: decision.confirmed_value for decision in unit.decisions}
    confidences = [decision.confidence_score for decision in unit.decisions if decision.confidence_score is not None]
    confidence = min(confidences) if confidences else get_settings().default_ai_confidence

    existing_id = _previously_created_entity_id(db, user_id, version_id, unit.parsed_entity_id, unit.entity_type)
    if existing_id is None:
        entity = create_entity(
            db,
            entity_type,
            user_id,
            payload,
            source=EntitySource.AI_EXTRACTION,
            source_confidence=confidence,
        )
        for decision in unit.decisions:
            _mark_applied(decision, entity.logical_entity_id)
        db.commit()
    else:

        def attempt(number: int) -> VersionedEntityMixin:
            active = get_active_entity(db, entity_type, user_id, existing_id)
            if active is None:
                raise EntityNotFoundError(entity_type.value, existing_id)
            try:
                advanced = advance_entity_version(
                    db,
                    entity_type,
                    user_id,
                    existing_id,
                    active.version,
                    payload,
                    source=EntitySource.AI_EXTRACTION,
                    source_confidence=confidence,
                )
                for decision_id in decision_ids:
                    _mark_applied(db.get(MergeDecision, decision_id), existing_id)
                db.commit()
            except ConflictError:
                db.rollback()
                raise
            return advanced

        entity = retry_on_conflict(attempt, attempts=attempts, backoff_seconds=backoff, sleep=sleep)

    results = []
    for decision_id in decision_ids:
        decision = db.get(MergeDecision, decision_id)
        results.append(
            DecisionResult(
                decision_id=decision_id,
                parsed_entity_id=decision.parsed_entity_id,
                field_name=decision.field_name,
                entity_type=entity_type.value,
                status=_status_for(decision),
                logical_entity_id=entity.logical_entity_id,
                version=entity.version,
                applied_value=decision.confirmed_value,
            )
        )
    return results


def _record_failure(db: Session, decision_ids: list[int], exc: Exception) -> list[DecisionResult]:
    message = f"{type(exc).__name__}: {exc}"
    results = []
    for decision_id in decision_ids:
        decision = db.get(MergeDecision, decision_id)
        if decision is None:
            continue
        decision.last_error = message
        results.append(
            DecisionResult(
                decision_id=decision_id,
                parsed_entity_id=decision.parsed_entity_id,
                field_name=decision.field_name,
                entity_type=decision.profile_entity_type,
                status="failed",
                logical_entity_id=decision.profile_entity_id,
                error=message,
            )
        )
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("reconciliation.record_failure_failed decision_ids=%s", decision_ids)
    return results


def apply_all_resume_data_to_profile(
    db: Session,
    user_id: str,
    version_id: str,
    lookup: MatchLookupInterface,
) -> BulkApplySummary:
    """Accept every candidate of a resume version as brand-new profile entities.

    Refused when any candidate matches an existing entity. Each parsed record
    becomes one entity, except skill names holding a list, which become one
    skill per name. Fields that already carry a decision of any kind are left
    to ``apply_all``; a record whose entity an earlier decision created
    advances that entity instead of creating another.
    """

    started_at = perf_counter()
    items = list_review_items(db, user_id, version_id, lookup)
    matched = [item for item in items if item.diff_type != "new"]
    if matched:
        raise ValidationError(
            f"{len(matched)} extracted field(s) match existing profile entries; review them before applying."
        )

    decided = {
        (decision.parsed_entity_id, decision.field_name)
        for decision in list_decisions(db, user_id, version_id)
    }
    groups: dict[tuple[str, str], list[DiffItem]] = {}
    for item in items:
        if (item.parsed_entity_id, item.field_name) in decided:
            continue
        groups.setdefault((item.parsed_entity_id, item.profile_entity_type), []).append(item)

    summary = BulkApplySummary()
    for (parsed_entity_id, raw_type), group in groups.items():
        entity_type = coerce_entity_type(raw_type)
        try:
            existing_id = _previously_created_entity_id(db, user_id, version_id, parsed_entity_id, raw_type)
            if existing_id is None:
                logical_ids = _create_bulk_group(db, user_id, version_id, entity_type, group)
            else:
                logical_ids = [_advance_bulk_group(db, user_id, version_id, entity_type, existing_id, group)]
        except Exception as exc:
            db.rollback()
            logger.exception(
                "reconciliation.bulk_group_failed version_id=%s parsed_entity_id=%s",
                version_id,
                parsed_entity_id,
            )
            summary.errors += 1
            summary.results.append(
                BulkApplyGroupResult(
                    parsed_entity_id=parsed_entity_id,
                    entity_type=entity_type.value,
                    status="failed",
                    error=f"{type(exc).__name__}: {exc}",
                )
            )
            continue
        if existing_id is None:
            summary.entities_created += len(logical_ids)
        else:
            summary.entities_updated += 1
        summary.results.append(
            BulkApplyGroupResult(
                parsed_entity_id=parsed_entity_id,
                entity_type=entity_type.value,
                status="created" if existing_id is None else "updated",
                logical_entity_ids=logical_ids,
            )
        )

    logger.info(
        "reconciliation.bulk_apply_timing version_id=%s entities_created=%d entities_updated=%d errors=%d "
        "total_ms=%.2f",
        version_id,
        summary.entities_created,
        summary.entities_updated,
        summary.errors,
        (perf_counter() - started_at) * 1000,
    )
    return summary


def _bulk_payload(group: list[DiffItem]) -> tuple[dict[str, str | None], float]:
    payload = {item.field_name: item.parsed_value for item in group}
    confidences = [item.confidence_score for item in group if item.confidence_score is not None]
    confidence = min(confidences) if confidences else get_settings().default_ai_confidence
    return payload, confidence


def _create_bulk_group(
    db: Session,
    user_id: str,
    version_id: str,
    entity_type: ProfileEntityType,
    group: list[DiffItem],
) -> list[str]:
    payload, confidence = _bulk_payload(group)

    payloads = [payload]
    if entity_type is ProfileEntityType.SKILL and payload.get("name"):
        names = split_list_value(payload["name"])
        if len(names) > 1:
            payloads = [{**payload, "name": name} for name in names]

    created: list[str] = []
    for entity_payload in payloads:
        entity = create_entity(
            db,
            entity_type,
            user_id,
            entity_payload,
            source=EntitySource.AI_EXTRACTION,
            source_confidence=confidence,
        )
        created.append(entity.logical_entity_id)

    _record_bulk_accepts(db, user_id, version_id, group, created[0])
    db.commit()
    return created


def _advance_bulk_group(
    db: Session,
    user_id: str,
    version_id: str,
    entity_type: ProfileEntityType,
    logical_entity_id: str,
    group: list[DiffItem],
) -> str:
    payload, confidence = _bulk_payload(group)
    active = get_active_entity(db, entity_type, user_id, logical_entity_id)
    if active is None:
        raise EntityNotFoundError(entity_type.value, logical_entity_id)
    advance_entity_version(
        db,
        entity_type,
        user_id,
        logical_entity_id,
        active.version,
        payload,
        source=EntitySource.AI_EXTRACTION,
        source_confidence=confidence,
    )
    _record_bulk_accepts(db, user_id, version_id, group, logical_entity_id)
    db.commit()
    return logical_entity_id


def _record_bulk_accepts(
    db: Session,
    user_id: str,
    version_id: str,
    group: list[DiffItem],
    logical_entity_id: str,
) -> None:
    for item in group:
        decision = MergeDecision(
            user_id=user_id,
            resume_version_id=version_id,
            parsed_entity_id=item.parsed_entity_id,
            field_name=item.field_name,
            decision_type="accept",
            parsed_value=item.parsed_value,
            confirmed_value=item.parsed_value,
            justification=item.justification,
            confidence_score=item.confidence_score,
            profile_entity_type=item.profile_entity_type,
        )
        db.add(decision)
        _mark_applied(decision, logical_entity_id)
