"""Deterministic string similarity for matching parsed records to profile entities."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Mapping
from difflib import SequenceMatcher


_NON_ALNUM_RE = re.compile(r"[^\w\s]")
_MULTISPACE_RE = re.compile(r"\s+")


def normalize_identity_text(value: str) -> str:
    """Fold case, width, and punctuation out of an identity value."""

    folded = unicodedata.normalize("NFKC", value).casefold()
    cleaned = _NON_ALNUM_RE.sub(" ", folded).replace("_", " ")
    return _MULTISPACE_RE.sub(" ", cleaned).strip()


def token_set_similarity(left: str, right: str) -> float:
    """Return token overlap similarity in [0, 1]."""

    left_tokens = set(left.split())
    right_tokens = set(right.split())
    if not left_tokens or not right_tokens:
        return 0.0
    return len(left_tokens & right_tokens) / len(left_tokens | right_tokens)


def string_similarity(left: str, right: str) -> float:
    """Best of sequence ratio and token overlap on normalized text."""

    norm_left = normalize_identity_text(left)
    norm_right = normalize_identity_text(right)
    if not norm_left or not norm_right:
        return 0.0
    if norm_left == norm_right:
        return 1.0
    sequence = SequenceMatcher(a=norm_left, b=norm_right).ratio()
    return max(sequence, token_set_similarity(norm_left, norm_right))


def identity_field_scores(wanted: Mapping[str, str], existing: Mapping[str, object]) -> dict[str, float]:
    """Per-field similarity for the identity fields a parsed record carries.

    A field missing or blank on the existing entity scores 0.0.
    """

    scores: dict[str, float] = {}
    for field_name, value in wanted.items():
        current = existing.get(field_name)
        if current is None or not str(current).strip():
            scores[field_name] = 0.0
            continue
        scores[field_name] = string_similarity(value, str(current))
    return scores
