"""Typed extractor outputs independent of persistence."""

from dataclasses import dataclass, field


@dataclass(slots=True)
class CandidateField:
    """One candidate field value produced by resume extraction.

    ``parsed_entity_id`` is the extractor's own id for the parsed record the
    field belongs to; sibling fields of the same record share it and are
    exposed through ``context`` so matching can use them.
    """

    parsed_entity_id: str
    field_name: str
    raw_value: str
    entity_type: str | None = None
    confidence: float | None = None
    matched_entity_id: str | None = None
    context: dict[str, str] = field(default_factory=dict)
