"""Merge decision ledger: durable record of review outcomes."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.merge_decision import MergeDecision
from app.schemas.review import DiffItem
from app.services.errors import ValidationError

logger = logging.getLogger(__name__)

DECISION_TYPES = ("accept", "reject", "override")


def get_decision(
    db: Session,
    user_id: str,
    version_id: str,
    parsed_entity_id: str,
    field_name: str,
) -> MergeDecision | None:
    return db.scalar(
        select(MergeDecision).where(
            MergeDecision.user_id == user_id,
            MergeDecision.resume_version_id == version_id,
            MergeDecision.parsed_entity_id == parsed_entity_id,
            MergeDecision.field_name == field_name,
        )
    )


def record_decision(
    db: Session,
    user_id: str,
    version_id: str,
    item: DiffItem,
    decision_type: str,
    override_value: str | None = None,
    justification: str | None = None,
) -> MergeDecision:
    """Insert or update the decision for one review item and commit it."""

    clean_type = (decision_type or "").strip().lower()
    if clean_type not in DECISION_TYPES:
        raise ValidationError(f"Unknown decision type: {decision_type!r}")
    clean_override = override_value.strip() if override_value is not None else None
    if clean_type == "override" and not clean_override:
        raise ValidationError("override_value is required for override decisions.")

    if clean_type == "accept":
        confirmed = item.parsed_value
    elif clean_type == "override":
        confirmed = clean_override
    else:
        confirmed = None

    decision = get_decision(db, user_id, version_id, item.parsed_entity_id, item.field_name)
    if decision is not None and decision.applied:
        raise ValidationError(
            f"Decision for {item.parsed_entity_id}.{item.field_name} was already applied."
        )
    if decision is None:
        decision = MergeDecision(
            user_id=user_id,
            resume_version_id=version_id,
            parsed_entity_id=item.parsed_entity_id,
            field_name=item.field_name,
        )
        db.add(decision)

    decision.decision_type = clean_type
    decision.parsed_value = item.parsed_value
    decision.override_value = clean_override if clean_type == "override" else None
    decision.confirmed_value = confirmed
    decision.justification = justification if justification is not None else item.justification
    decision.confidence_score = item.confidence_score
    decision.profile_entity_id = item.profile_entity_id
    decision.profile_entity_type = item.profile_entity_type
    decision.profile_entity_version = item.profile_entity_version
    decision.reviewed_value = item.profile_value
    decision.applied = False
    decision.applied_at = None
    decision.last_error = None

    try:
        db.commit()
    except IntegrityError:
        # Another request inserted the same key first; update that row instead.
        db.rollback()
        existing = get_decision(db, user_id, version_id, item.parsed_entity_id, item.field_name)
        if existing is None:
            raise
        return record_decision(
            db,
            user_id,
            version_id,
            item,
            clean_type,
            override_value=clean_override,
            justification=justification,
        )
    db.refresh(decision)
    logger.info(
        "ledger.record version_id=%s parsed_entity_id=%s field=%s decision=%s",
        version_id,
        item.parsed_entity_id,
        item.field_name,
        clean_type,
    )
    return decision


def list_pending_decisions(db: Session, user_id: str, version_id: str) -> list[MergeDecision]:
    """Unapplied decisions in the order they were recorded."""

    stmt = (
        select(MergeDecision)
        .where(
            MergeDecision.user_id == user_id,
            MergeDecision.resume_version_id == version_id,
            MergeDecision.applied.is_(False),
        )
        .order_by(MergeDecision.created_at.asc(), MergeDecision.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_decisions(db: Session, user_id: str, version_id: str) -> list[MergeDecision]:
    """Every decision for a resume version, newest first."""

    stmt = (
        select(MergeDecision)
        .where(
            MergeDecision.user_id == user_id,
            MergeDecision.resume_version_id == version_id,
        )
        .order_by(MergeDecision.created_at.desc(), MergeDecision.id.desc())
    )
    return list(db.scalars(stmt).all())


def has_pending_review(db: Session, user_id: str, version_id: str, items: list[DiffItem]) -> bool:
    """True while a conflicting item lacks a decision or any decision is unapplied."""

    decisions = list_decisions(db, user_id, version_id)
    if any(not decision.applied for decision in decisions):
        return True
    decided = {(decision.parsed_entity_id, decision.field_name) for decision in decisions}
    return any(
        item.requires_review and (item.parsed_entity_id, item.field_name) not in decided
        for item in items
    )
