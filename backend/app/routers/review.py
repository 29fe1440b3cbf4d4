"""Resume review, merge decision, and apply routes."""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from app.db.dependencies import get_db
from app.entity_resolution.match_lookup import MatchLookupInterface
from app.routers.dependencies import get_current_user_id, get_match_lookup, http_error_for
from app.schemas.common import ApiResponse
from app.schemas.review import (
    ApplySummary,
    BulkApplySummary,
    CandidateIngestRequest,
    CandidateIngestResult,
    DecisionRecordRequest,
    MergeDecisionRead,
    ReviewItemsRead,
)
from app.services.decision_applicator import apply_all, apply_all_resume_data_to_profile
from app.services.errors import ReconciliationError
from app.services.merge_ledger import list_decisions, list_pending_decisions
from app.services.review import get_review_items, ingest_candidates, record_decision_for_candidate

router = APIRouter(prefix="/resume-versions")


@router.post("/{version_id}/candidates", response_model=ApiResponse[CandidateIngestResult])
def post_candidates(
    payload: CandidateIngestRequest,
    version_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[CandidateIngestResult]:
    """Store extracted candidate fields for one resume version."""

    try:
        stored = ingest_candidates(db, user_id, version_id, payload.candidates)
    except ReconciliationError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=CandidateIngestResult(resume_version_id=version_id, stored=stored))


@router.get("/{version_id}/review-items", response_model=ApiResponse[ReviewItemsRead])
def get_version_review_items(
    version_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    lookup: MatchLookupInterface = Depends(get_match_lookup),
) -> ApiResponse[ReviewItemsRead]:
    """Classify extracted fields against the caller's profile."""

    try:
        review = get_review_items(db, user_id, version_id, lookup)
    except ReconciliationError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=review)


@router.put("/{version_id}/decisions", response_model=ApiResponse[MergeDecisionRead])
def put_decision(
    payload: DecisionRecordRequest,
    version_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    lookup: MatchLookupInterface = Depends(get_match_lookup),
) -> ApiResponse[MergeDecisionRead]:
    """Record or replace the decision for one review item."""

    try:
        decision = record_decision_for_candidate(db, user_id, version_id, payload, lookup)
    except ReconciliationError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=MergeDecisionRead.model_validate(decision))


@router.get("/{version_id}/decisions", response_model=ApiResponse[list[MergeDecisionRead]])
def get_decisions(
    version_id: str = Path(..., min_length=1),
    pending_only: bool = Query(default=False),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[list[MergeDecisionRead]]:
    """List recorded decisions, or only those not yet applied."""

    if pending_only:
        rows = list_pending_decisions(db, user_id, version_id)
    else:
        rows = list_decisions(db, user_id, version_id)
    return ApiResponse(data=[MergeDecisionRead.model_validate(row) for row in rows])


@router.post("/{version_id}/apply", response_model=ApiResponse[ApplySummary])
def post_apply(
    version_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[ApplySummary]:
    """Write every pending decision to the profile."""

    return ApiResponse(data=apply_all(db, user_id, version_id))


@router.post("/{version_id}/apply-new", response_model=ApiResponse[BulkApplySummary])
def post_apply_new(
    version_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    lookup: MatchLookupInterface = Depends(get_match_lookup),
) -> ApiResponse[BulkApplySummary]:
    """Add every extracted record as a new profile entity."""

    try:
        summary = apply_all_resume_data_to_profile(db, user_id, version_id, lookup)
    except ReconciliationError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=summary)
