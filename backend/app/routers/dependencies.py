"""Request-scoped dependencies shared by API routers."""

from fastapi import Header, HTTPException

from app.entity_resolution.match_lookup import MatchLookupInterface, get_default_match_lookup
from app.schemas.common import ConflictDetail
from app.services.errors import (
    ConflictError,
    EntityNotFoundError,
    MatchLookupError,
    ReconciliationError,
    ValidationError,
)


def get_current_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """Return the caller identity forwarded by the authenticating gateway."""

    clean = (x_user_id or "").strip()
    if not clean:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return clean


def get_match_lookup() -> MatchLookupInterface:
    return get_default_match_lookup()


def http_error_for(exc: ReconciliationError) -> HTTPException:
    """Map a reconciliation failure onto its HTTP status."""

    if isinstance(exc, ConflictError):
        detail = ConflictDetail(
            entity_type=exc.entity_type,
            logical_entity_id=exc.logical_entity_id,
            expected_version=exc.expected_version,
            actual_version=exc.actual_version,
        )
        return HTTPException(status_code=409, detail=detail.model_dump())
    if isinstance(exc, EntityNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, MatchLookupError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
