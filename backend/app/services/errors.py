"""Error taxonomy for profile reconciliation."""

from __future__ import annotations


class ReconciliationError(RuntimeError):
    """Base class for reconciliation failures surfaced to callers."""


class ValidationError(ReconciliationError):
    """Malformed caller input; correct and resubmit."""


class EntityNotFoundError(ReconciliationError):
    """No active version exists for the requested logical entity."""

    def __init__(self, entity_type: str, logical_entity_id: str) -> None:
        super().__init__(f"No active {entity_type} entity {logical_entity_id}")
        self.entity_type = entity_type
        self.logical_entity_id = logical_entity_id


class ConflictError(ReconciliationError):
    """The caller's version snapshot is stale."""

    def __init__(
        self,
        entity_type: str,
        logical_entity_id: str,
        *,
        expected_version: int | None,
        actual_version: int | None,
    ) -> None:
        super().__init__(
            f"{entity_type} {logical_entity_id} was changed elsewhere "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.entity_type = entity_type
        self.logical_entity_id = logical_entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class MatchLookupError(ReconciliationError):
    """The entity matching collaborator failed or timed out."""


class ApplicationError(ReconciliationError):
    """A single decision could not be written for a reason other than a conflict."""
