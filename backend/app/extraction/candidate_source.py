"""Candidate source interface for pluggable extractor adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.extraction.types import CandidateField
from app.models.parsed_resume_entity import ParsedResumeEntity


class CandidateSourceInterface(ABC):
    """Abstract producer of extracted candidate fields for a resume version."""

    @abstractmethod
    def list_candidates(self, db: Session, user_id: str, version_id: str) -> list[CandidateField]:
        """Return candidate fields for one resume version."""


class DatabaseCandidateSource(CandidateSourceInterface):
    """Reads candidates persisted in ``parsed_resume_entities``."""

    def list_candidates(self, db: Session, user_id: str, version_id: str) -> list[CandidateField]:
        rows = list(
            db.scalars(
                select(ParsedResumeEntity)
                .where(
                    ParsedResumeEntity.user_id == user_id,
                    ParsedResumeEntity.resume_version_id == version_id,
                )
                .order_by(ParsedResumeEntity.id.asc())
            ).all()
        )
        siblings: dict[str, dict[str, str]] = defaultdict(dict)
        for row in rows:
            siblings[row.parsed_entity_id][row.field_name] = row.raw_value
        return [
            CandidateField(
                parsed_entity_id=row.parsed_entity_id,
                field_name=row.field_name,
                raw_value=row.raw_value,
                entity_type=row.entity_type,
                confidence=row.confidence_score,
                matched_entity_id=row.matched_entity_id,
                context=dict(siblings[row.parsed_entity_id]),
            )
            for row in rows
        ]
