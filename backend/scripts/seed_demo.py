"""Seed a demo profile and resume extraction for review.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import delete

# Make `app` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.db.session import SessionLocal
from app.entity_resolution.match_lookup import get_default_match_lookup
from app.models.merge_decision import MergeDecision
from app.models.parsed_resume_entity import ParsedResumeEntity
from app.schema.entity_types import ProfileEntityType
from app.schemas.review import CandidateCreate
from app.services.entity_store import ENTITY_MODELS, create_manual_entity
from app.services.review import get_review_items, ingest_candidates


DEFAULT_USER_ID = "demo-user"
DEFAULT_VERSION_ID = "resume-demo-001"


def build_demo_profile() -> list[tuple[ProfileEntityType, dict[str, object]]]:
    """Return confirmed profile entries the demo resume is compared against."""

    return [
        (
            ProfileEntityType.WORK_EXPERIENCE,
            {"company": "Acme Corp", "title": "Backend Engineer", "start_date": "2019-03", "end_date": "2022-06"},
        ),
        (ProfileEntityType.EDUCATION, {"institution": "State University", "degree": "BSc Computer Science"}),
        (ProfileEntityType.SKILL, {"name": "Python", "proficiency_level": "expert", "years_of_experience": 6}),
    ]


def build_demo_candidates() -> list[CandidateCreate]:
    """Return a deterministic resume extraction with new, equivalent, and conflicting fields."""

    return [
        CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.company", raw_value="ACME Corp"),
        CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.title", raw_value="Backend Engineer"),
        CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.end_date", raw_value="2023-01"),
        CandidateCreate(parsed_entity_id="job-2", field_name="work_experience.company", raw_value="Globex"),
        CandidateCreate(parsed_entity_id="job-2", field_name="work_experience.title", raw_value="Staff Engineer"),
        CandidateCreate(parsed_entity_id="skills-1", field_name="skill.name", raw_value="Go, Rust"),
        CandidateCreate(
            parsed_entity_id="cert-1",
            entity_type="certification",
            field_name="name",
            raw_value="AWS Solutions Architect",
            confidence_score=0.92,
        ),
    ]


def reset_user(db, user_id: str) -> None:
    """Remove existing records for the demo user."""

    db.execute(delete(MergeDecision).where(MergeDecision.user_id == user_id))
    db.execute(delete(ParsedResumeEntity).where(ParsedResumeEntity.user_id == user_id))
    for model in ENTITY_MODELS.values():
        db.execute(delete(model).where(model.user_id == user_id))
    db.commit()


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed a demo profile and resume extraction.")
    parser.add_argument(
        "--user-id",
        default=DEFAULT_USER_ID,
        help=f"Caller identity to seed (default: {DEFAULT_USER_ID})",
    )
    parser.add_argument(
        "--version-id",
        default=DEFAULT_VERSION_ID,
        help=f"Resume version ID to seed (default: {DEFAULT_VERSION_ID})",
    )
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Do not delete existing records for the user before seeding.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo data and print a short summary."""

    args = parse_args()
    user_id: str = args.user_id
    version_id: str = args.version_id

    with SessionLocal() as db:
        if not args.no_reset:
            reset_user(db, user_id)

        for entity_type, payload in build_demo_profile():
            create_manual_entity(db, user_id, entity_type, payload)
        stored = ingest_candidates(db, user_id, version_id, build_demo_candidates())
        review = get_review_items(db, user_id, version_id, get_default_match_lookup())

    print("Seed complete")
    print(f"user_id={user_id}")
    print(f"resume_version_id={version_id}")
    print(f"candidates_stored={stored}")
    print(f"review_new={review.summary.new}")
    print(f"review_equivalent={review.summary.equivalent}")
    print(f"review_conflicting={review.summary.conflicting}")
    print()
    print(f"Inspect (send header X-User-Id: {user_id}):")
    print(f"  GET /resume-versions/{version_id}/review-items")
    print(f"  GET /resume-versions/{version_id}/decisions")
    print("  GET /profile")


if __name__ == "__main__":
    main()
