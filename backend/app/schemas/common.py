"""Shared API envelope and error payloads."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Consistent JSON envelope for API responses."""

    data: T


class ConflictDetail(BaseModel):
    """Body of a 409 answer telling the client which snapshot went stale."""

    message: str = "Stale data, please refresh."
    entity_type: str
    logical_entity_id: str
    expected_version: int | None = None
    actual_version: int | None = None
