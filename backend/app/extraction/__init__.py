"""Extractor adapter contracts."""

from app.extraction.candidate_source import CandidateSourceInterface, DatabaseCandidateSource
from app.extraction.types import CandidateField

__all__ = ["CandidateField", "CandidateSourceInterface", "DatabaseCandidateSource"]
