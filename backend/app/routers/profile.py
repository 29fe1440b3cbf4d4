"""Versioned profile entity routes."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Path
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.db.dependencies import get_db
from app.routers.dependencies import get_current_user_id, http_error_for
from app.schema.entity_types import ProfileEntityType
from app.schemas.common import ApiResponse
from app.schemas.profile import (
    ENTITY_PAYLOAD_MODELS,
    EntityEditRequest,
    ProfileEntityRead,
    ProfileRead,
    to_entity_read,
)
from app.services.concurrency import verify_and_edit
from app.services.entity_store import (
    coerce_entity_type,
    create_manual_entity,
    get_entity_history,
    get_entity_version,
    get_profile,
    list_active_entities,
    require_active_entity,
)
from app.services.errors import ReconciliationError

router = APIRouter(prefix="/profile")


def _entity_type_or_404(raw_type: str) -> ProfileEntityType:
    try:
        return coerce_entity_type(raw_type)
    except ReconciliationError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _validated_fields(entity_type: ProfileEntityType, values: dict[str, Any]) -> dict[str, Any]:
    try:
        model = ENTITY_PAYLOAD_MODELS[entity_type].model_validate(values)
    except PydanticValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc
    return model.model_dump(exclude_unset=True)


@router.get("", response_model=ApiResponse[ProfileRead])
def read_profile(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[ProfileRead]:
    """Return the active version of every profile entity."""

    grouped = get_profile(db, user_id)
    data = {
        entity_type.value: [to_entity_read(entity_type, entity) for entity in entities]
        for entity_type, entities in grouped.items()
    }
    return ApiResponse(data=ProfileRead(user_id=user_id, **data))


@router.get("/{entity_type}", response_model=ApiResponse[list[ProfileEntityRead]])
def read_entities(
    entity_type: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[list[ProfileEntityRead]]:
    """List active entities of one type."""

    clean_type = _entity_type_or_404(entity_type)
    entities = list_active_entities(db, clean_type, user_id)
    return ApiResponse(data=[to_entity_read(clean_type, entity) for entity in entities])


@router.post("/{entity_type}", response_model=ApiResponse[ProfileEntityRead], status_code=201)
def create_entity_route(
    entity_type: str = Path(..., min_length=1),
    payload: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[ProfileEntityRead]:
    """Create a user-entered entity at version 1."""

    clean_type = _entity_type_or_404(entity_type)
    fields = _validated_fields(clean_type, payload)
    try:
        entity = create_manual_entity(db, user_id, clean_type, fields)
    except ReconciliationError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=to_entity_read(clean_type, entity))


@router.get("/{entity_type}/{logical_entity_id}", response_model=ApiResponse[ProfileEntityRead])
def read_entity(
    entity_type: str = Path(..., min_length=1),
    logical_entity_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[ProfileEntityRead]:
    """Return the active version of one entity."""

    clean_type = _entity_type_or_404(entity_type)
    try:
        entity = require_active_entity(db, clean_type, user_id, logical_entity_id)
    except ReconciliationError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=to_entity_read(clean_type, entity))


@router.patch("/{entity_type}/{logical_entity_id}", response_model=ApiResponse[ProfileEntityRead])
def edit_entity(
    payload: EntityEditRequest,
    entity_type: str = Path(..., min_length=1),
    logical_entity_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[ProfileEntityRead]:
    """Edit an entity the caller last saw at ``expected_version``."""

    clean_type = _entity_type_or_404(entity_type)
    changes = _validated_fields(clean_type, payload.changes)
    try:
        entity = verify_and_edit(
            db,
            user_id,
            clean_type,
            logical_entity_id,
            payload.expected_version,
            changes,
        )
    except ReconciliationError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=to_entity_read(clean_type, entity))


@router.get(
    "/{entity_type}/{logical_entity_id}/history",
    response_model=ApiResponse[list[ProfileEntityRead]],
)
def read_entity_history(
    entity_type: str = Path(..., min_length=1),
    logical_entity_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[list[ProfileEntityRead]]:
    """Return every version of one entity, newest first."""

    clean_type = _entity_type_or_404(entity_type)
    history = get_entity_history(db, clean_type, user_id, logical_entity_id)
    if not history:
        raise HTTPException(status_code=404, detail="Entity not found")
    return ApiResponse(data=[to_entity_read(clean_type, entity) for entity in history])


@router.get(
    "/{entity_type}/{logical_entity_id}/versions/{version}",
    response_model=ApiResponse[ProfileEntityRead],
)
def read_entity_version(
    entity_type: str = Path(..., min_length=1),
    logical_entity_id: str = Path(..., min_length=1),
    version: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[ProfileEntityRead]:
    """Return one specific version of an entity."""

    clean_type = _entity_type_or_404(entity_type)
    entity = get_entity_version(db, clean_type, user_id, logical_entity_id, version)
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity version not found")
    return ApiResponse(data=to_entity_read(clean_type, entity))
