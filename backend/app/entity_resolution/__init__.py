"""Entity resolution package."""

from app.entity_resolution.match_lookup import (
    HttpMatchLookup,
    MatchLookupInterface,
    SimilarityMatchLookup,
    candidate_identity_values,
    get_default_match_lookup,
)

__all__ = [
    "HttpMatchLookup",
    "MatchLookupInterface",
    "SimilarityMatchLookup",
    "candidate_identity_values",
    "get_default_match_lookup",
]
