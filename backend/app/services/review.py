"""Review queue services for extracted resume data."""

from __future__ import annotations

import json
import logging
from time import perf_counter

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.entity_resolution.match_lookup import MatchLookupInterface
from app.extraction.candidate_source import CandidateSourceInterface, DatabaseCandidateSource
from app.extraction.types import CandidateField
from app.models.merge_decision import MergeDecision
from app.models.parsed_resume_entity import ParsedResumeEntity
from app.schemas.review import CandidateCreate, DecisionRecordRequest, DiffItem, ReviewItemsRead, ReviewSummary
from app.services.diff_classifier import classify_candidate, resolve_candidate_target
from app.services.errors import ValidationError
from app.services.merge_ledger import has_pending_review, record_decision

logger = logging.getLogger(__name__)


def ingest_candidates(
    db: Session,
    user_id: str,
    version_id: str,
    candidates: list[CandidateCreate],
) -> int:
    """Store extractor output for a resume version, replacing same-key rows."""

    clean_version_id = version_id.strip()
    if not clean_version_id:
        raise ValidationError("resume version id is required.")

    prepared: list[tuple[CandidateCreate, str]] = []
    for candidate in candidates:
        raw_value = candidate.raw_value
        stored_value = json.dumps(raw_value, ensure_ascii=False) if isinstance(raw_value, list) else raw_value
        resolve_candidate_target(
            CandidateField(
                parsed_entity_id=candidate.parsed_entity_id,
                field_name=candidate.field_name,
                raw_value=stored_value,
                entity_type=candidate.entity_type,
            )
        )
        prepared.append((candidate, stored_value))

    for candidate, stored_value in prepared:
        row = db.scalar(
            select(ParsedResumeEntity).where(
                ParsedResumeEntity.user_id == user_id,
                ParsedResumeEntity.resume_version_id == clean_version_id,
                ParsedResumeEntity.parsed_entity_id == candidate.parsed_entity_id,
                ParsedResumeEntity.field_name == candidate.field_name,
            )
        )
        if row is None:
            row = ParsedResumeEntity(
                user_id=user_id,
                resume_version_id=clean_version_id,
                parsed_entity_id=candidate.parsed_entity_id,
                field_name=candidate.field_name,
            )
            db.add(row)
        row.entity_type = candidate.entity_type
        row.raw_value = stored_value
        row.confidence_score = candidate.confidence_score
        row.matched_entity_id = candidate.matched_entity_id
        db.flush()

    db.commit()
    logger.info("review.ingest version_id=%s stored=%d", clean_version_id, len(candidates))
    return len(candidates)


def list_review_items(
    db: Session,
    user_id: str,
    version_id: str,
    lookup: MatchLookupInterface,
    *,
    source: CandidateSourceInterface | None = None,
) -> list[DiffItem]:
    """Classify every candidate of a resume version against the profile."""

    started_at = perf_counter()
    candidate_source = source or DatabaseCandidateSource()
    candidates = candidate_source.list_candidates(db, user_id, version_id)
    items = [classify_candidate(db, user_id, candidate, lookup) for candidate in candidates]
    logger.info(
        "review.classify_timing version_id=%s candidates=%d total_ms=%.2f",
        version_id,
        len(items),
        (perf_counter() - started_at) * 1000,
    )
    return items


def summarize_review_items(items: list[DiffItem]) -> ReviewSummary:
    summary = ReviewSummary(total=len(items))
    for item in items:
        if item.diff_type == "new":
            summary.new += 1
        elif item.diff_type == "equivalent":
            summary.equivalent += 1
        else:
            summary.conflicting += 1
        if item.requires_review:
            summary.requires_review += 1
    return summary


def get_review_items(
    db: Session,
    user_id: str,
    version_id: str,
    lookup: MatchLookupInterface,
) -> ReviewItemsRead:
    """Review items plus summary counts and pending-review state."""

    items = list_review_items(db, user_id, version_id, lookup)
    return ReviewItemsRead(
        resume_version_id=version_id,
        items=items,
        summary=summarize_review_items(items),
        has_pending_review=has_pending_review(db, user_id, version_id, items),
    )


def record_decision_for_candidate(
    db: Session,
    user_id: str,
    version_id: str,
    payload: DecisionRecordRequest,
    lookup: MatchLookupInterface,
) -> MergeDecision:
    """Classify the addressed candidate and record the caller's decision on it."""

    candidates = [
        candidate
        for candidate in DatabaseCandidateSource().list_candidates(db, user_id, version_id)
        if candidate.parsed_entity_id == payload.parsed_entity_id
    ]
    for candidate in candidates:
        item = classify_candidate(db, user_id, candidate, lookup)
        if payload.field_name in (item.field_name, candidate.field_name):
            return record_decision(
                db,
                user_id,
                version_id,
                item,
                payload.decision_type,
                override_value=payload.override_value,
                justification=payload.justification,
            )
    raise ValidationError(
        f"No review item {payload.parsed_entity_id}.{payload.field_name} for resume version {version_id}"
    )
