"""Entity matching collaborators used by the diff classifier."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any
from urllib import error as urllib_error
from urllib import request as urllib_request

from sqlalchemy.orm import Session

from app.config import get_settings
from app.entity_resolution.similarity import identity_field_scores
from app.extraction.types import CandidateField
from app.schema.entity_types import ProfileEntityType
from app.schema.profile_fields import identity_field_names, resolve_field_name
from app.services.entity_store import list_active_entities
from app.services.errors import MatchLookupError

logger = logging.getLogger(__name__)


class MatchLookupInterface(ABC):
    """Finds the existing profile entity a parsed record refers to."""

    @abstractmethod
    def find_similar_entity(
        self,
        db: Session,
        user_id: str,
        entity_type: ProfileEntityType,
        candidate: CandidateField,
    ) -> str | None:
        """Return the matched logical entity id, or None when nothing matches."""


def candidate_identity_values(entity_type: ProfileEntityType, candidate: CandidateField) -> dict[str, str]:
    """Collect identity field values from a candidate and its parsed siblings."""

    identity = set(identity_field_names(entity_type))
    values: dict[str, str] = {}
    raw_fields = dict(candidate.context)
    raw_fields.setdefault(candidate.field_name, candidate.raw_value)
    for raw_name, raw_value in raw_fields.items():
        field_name = resolve_field_name(entity_type, raw_name)
        if field_name in identity and raw_value and str(raw_value).strip():
            values[field_name] = str(raw_value)
    return values


@dataclass(slots=True)
class SimilarityMatchLookup(MatchLookupInterface):
    """Deterministic matcher over identity fields of active entities.

    The leading identity field the parsed record carries anchors the match:
    an entity qualifies when that field clears the threshold on its own, so a
    promotion keeps landing on the same job. Otherwise the mean over all
    carried identity fields must clear it. Qualifying entities are ranked by
    that mean.
    """

    threshold: float = 0.85

    def find_similar_entity(
        self,
        db: Session,
        user_id: str,
        entity_type: ProfileEntityType,
        candidate: CandidateField,
    ) -> str | None:
        wanted = candidate_identity_values(entity_type, candidate)
        if not wanted:
            return None
        anchor = next(name for name in identity_field_names(entity_type) if name in wanted)

        best_id: str | None = None
        best_score = -1.0
        for entity in list_active_entities(db, entity_type, user_id):
            scores = identity_field_scores(wanted, {name: getattr(entity, name) for name in wanted})
            score = sum(scores.values()) / len(scores)
            if scores[anchor] < self.threshold and score < self.threshold:
                continue
            if score > best_score:
                best_id = entity.logical_entity_id
                best_score = score
        return best_id


@dataclass(slots=True)
class HttpMatchLookup(MatchLookupInterface):
    """Delegates matching to an external service using stdlib HTTP.

    The service receives the candidate as JSON and answers
    ``{"logical_entity_id": "<id>" | null}``.
    """

    url: str
    timeout_seconds: int = 10

    def find_similar_entity(
        self,
        db: Session,
        user_id: str,
        entity_type: ProfileEntityType,
        candidate: CandidateField,
    ) -> str | None:
        payload: dict[str, Any] = {
            "user_id": user_id,
            "entity_type": entity_type.value,
            "parsed_entity_id": candidate.parsed_entity_id,
            "field_name": candidate.field_name,
            "raw_value": candidate.raw_value,
            "context": candidate.context,
        }
        req = urllib_request.Request(
            url=self.url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            with urllib_request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except urllib_error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise MatchLookupError(f"Match service HTTP {exc.code}: {detail}") from exc
        except urllib_error.URLError as exc:
            raise MatchLookupError(f"Match service request failed: {exc.reason}") from exc
        except TimeoutError as exc:
            raise MatchLookupError("Match service timed out") from exc

        try:
            decoded = json.loads(raw)
            matched = decoded["logical_entity_id"]
        except (KeyError, TypeError, json.JSONDecodeError) as exc:
            raise MatchLookupError("Match service returned an unexpected response") from exc
        if matched is not None and not isinstance(matched, str):
            raise MatchLookupError("Match service returned a non-string entity id")
        return matched or None


def get_default_match_lookup() -> MatchLookupInterface:
    """Build the configured matcher: HTTP when a service URL is set, else similarity."""

    settings = get_settings()
    if settings.match_service_url:
        logger.info("match_lookup.http url=%s", settings.match_service_url)
        return HttpMatchLookup(
            url=settings.match_service_url,
            timeout_seconds=settings.match_service_timeout_seconds,
        )
    return SimilarityMatchLookup(threshold=settings.match_similarity_threshold)
