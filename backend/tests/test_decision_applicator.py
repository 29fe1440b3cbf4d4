"""Service-level tests for applying merge decisions to the profile."""

from __future__ import annotations

import unittest

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.entity_resolution.match_lookup import MatchLookupInterface, SimilarityMatchLookup
from app.models.base import Base
from app.models.merge_decision import MergeDecision
from app.models.skill import Skill
from app.models.versioned import EntitySource
from app.models.work_experience import WorkExperience
from app.schema.entity_types import ProfileEntityType
from app.schemas.review import CandidateCreate, DecisionRecordRequest
from app.services.concurrency import verify_and_edit
from app.services.decision_applicator import apply_all, apply_all_resume_data_to_profile
from app.services.entity_store import (
    create_manual_entity,
    get_active_entity,
    get_entity_history,
    list_active_entities,
)
from app.services.errors import ValidationError
from app.services.merge_ledger import list_pending_decisions
from app.services.review import get_review_items, ingest_candidates, record_decision_for_candidate

USER_ID = "user-1"
VERSION_ID = "resume-v1"


class _MappedLookup(MatchLookupInterface):
    """Matches parsed records to fixed logical entity ids."""

    def __init__(self, matches: dict[str, str] | None = None) -> None:
        self.matches = matches or {}

    def find_similar_entity(self, db, user_id, entity_type, candidate):
        return self.matches.get(candidate.parsed_entity_id)


def _no_sleep(_: float) -> None:
    return None


class DecisionApplicatorTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self._reset_tables()

    def tearDown(self) -> None:
        self.db.close()

    def test_accepting_new_candidate_creates_version_one(self) -> None:
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [CandidateCreate(parsed_entity_id="p1", field_name="title", raw_value="Senior Engineer", confidence_score=0.77)],
        )
        review = get_review_items(self.db, USER_ID, VERSION_ID, lookup)
        self.assertEqual(review.summary.new, 1)
        self.assertFalse(review.has_pending_review)

        self._decide("p1", "title", "accept", lookup)
        # Awaiting acceptance lives in the ledger only; no inactive entity row exists yet.
        self.assertEqual(len(list_pending_decisions(self.db, USER_ID, VERSION_ID)), 1)
        self.assertEqual(self.db.scalar(select(func.count()).select_from(WorkExperience)), 0)

        summary = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((summary.applied, summary.rejected, summary.overridden, summary.failed), (1, 0, 0, 0))
        entities = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual(len(entities), 1)
        entity = entities[0]
        self.assertEqual(entity.version, 1)
        self.assertEqual(entity.title, "Senior Engineer")
        self.assertEqual(entity.source, EntitySource.AI_EXTRACTION.value)
        self.assertEqual(entity.source_confidence, 0.77)
        self.assertEqual(summary.results[0].logical_entity_id, entity.logical_entity_id)

        decision = self.db.scalar(select(MergeDecision))
        self.assertTrue(decision.applied)
        self.assertIsNotNone(decision.applied_at)
        self.assertEqual(decision.applied_entity_id, entity.logical_entity_id)
        self.assertEqual(list_pending_decisions(self.db, USER_ID, VERSION_ID), [])

    def test_fields_of_one_parsed_record_share_one_new_entity(self) -> None:
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.company", raw_value="Globex"),
                CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.title", raw_value="Staff Engineer"),
                CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.end_date", raw_value="2024-05"),
            ],
        )
        self._decide("job-1", "company", "accept", lookup)
        self._decide("job-1", "title", "accept", lookup)

        first = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual(first.applied, 2)
        entities = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual(len(entities), 1)
        self.assertEqual((entities[0].company, entities[0].title, entities[0].version), ("Globex", "Staff Engineer", 1))

        self._decide("job-1", "end_date", "accept", lookup)
        second = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual(second.applied, 1)
        entities = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual(len(entities), 1)
        self.assertEqual(entities[0].version, 2)
        self.assertEqual(entities[0].end_date, "2024-05")
        self.assertEqual(entities[0].company, "Globex")

    def test_override_advances_matched_entity(self) -> None:
        entity = create_manual_entity(
            self.db,
            USER_ID,
            ProfileEntityType.WORK_EXPERIENCE,
            {"company": "Acme", "title": "Engineer"},
        )
        lookup = _MappedLookup({"p1": entity.logical_entity_id})
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [CandidateCreate(parsed_entity_id="p1", field_name="title", raw_value="Senior Engineer")],
        )
        review = get_review_items(self.db, USER_ID, VERSION_ID, lookup)
        self.assertEqual(review.items[0].diff_type, "conflicting")
        self.assertTrue(review.has_pending_review)

        self._decide("p1", "title", "override", lookup, override_value="Staff Engineer")
        summary = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((summary.applied, summary.overridden, summary.failed), (0, 1, 0))
        history = get_entity_history(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID, entity.logical_entity_id)
        self.assertEqual([row.version for row in history], [2, 1])
        self.assertEqual(history[0].title, "Staff Engineer")
        self.assertTrue(history[0].is_active)
        self.assertEqual(history[0].source, EntitySource.USER_MANUAL.value)
        self.assertFalse(history[1].is_active)
        self.assertEqual(history[1].title, "Engineer")
        self.assertFalse(get_review_items(self.db, USER_ID, VERSION_ID, lookup).has_pending_review)

    def test_reject_leaves_profile_unchanged(self) -> None:
        entity = create_manual_entity(self.db, USER_ID, ProfileEntityType.SKILL, {"name": "Go", "category": "language"})
        lookup = _MappedLookup({"s1": entity.logical_entity_id})
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [CandidateCreate(parsed_entity_id="s1", field_name="skill.category", raw_value="tool")],
        )
        self._decide("s1", "category", "reject", lookup)

        summary = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((summary.applied, summary.rejected), (0, 1))
        active = get_active_entity(self.db, ProfileEntityType.SKILL, USER_ID, entity.logical_entity_id)
        self.assertEqual((active.version, active.category), (1, "language"))

    def test_batch_with_one_conflict_applies_the_rest(self) -> None:
        names = ["Go", "Rust", "Python", "Java", "Kotlin"]
        skills = [
            create_manual_entity(self.db, USER_ID, ProfileEntityType.SKILL, {"name": name, "proficiency_level": "beginner"})
            for name in names
        ]
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(
                    parsed_entity_id=f"s{index}",
                    field_name="skill.proficiency_level",
                    raw_value="expert",
                    matched_entity_id=skill.logical_entity_id,
                )
                for index, skill in enumerate(skills, start=1)
            ],
        )
        for index in range(1, 6):
            self._decide(f"s{index}", "proficiency_level", "accept", lookup)

        # The third skill is edited after review, so its decision is stale.
        verify_and_edit(
            self.db,
            USER_ID,
            ProfileEntityType.SKILL,
            skills[2].logical_entity_id,
            1,
            {"proficiency_level": "intermediate"},
        )

        summary = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((summary.applied, summary.failed), (4, 1))
        self.assertEqual([result.status for result in summary.results].count("failed"), 1)
        decisions = {
            row.parsed_entity_id: row
            for row in self.db.scalars(select(MergeDecision)).all()
        }
        self.assertEqual(sum(1 for row in decisions.values() if row.applied), 4)
        self.assertFalse(decisions["s3"].applied)
        self.assertIn("changed since review", decisions["s3"].last_error)

        levels = {
            skill.name: (skill.proficiency_level, skill.version)
            for skill in list_active_entities(self.db, ProfileEntityType.SKILL, USER_ID)
        }
        self.assertEqual(levels["Python"], ("intermediate", 2))
        for name in ("Go", "Rust", "Java", "Kotlin"):
            self.assertEqual(levels[name], ("expert", 2))

    def test_conflict_on_untouched_field_is_rebased(self) -> None:
        skill = create_manual_entity(
            self.db,
            USER_ID,
            ProfileEntityType.SKILL,
            {"name": "Go", "proficiency_level": "beginner", "years_of_experience": 1},
        )
        lookup = _MappedLookup({"s1": skill.logical_entity_id})
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [CandidateCreate(parsed_entity_id="s1", field_name="skill.proficiency_level", raw_value="expert")],
        )
        self._decide("s1", "proficiency_level", "accept", lookup)
        verify_and_edit(
            self.db,
            USER_ID,
            ProfileEntityType.SKILL,
            skill.logical_entity_id,
            1,
            {"years_of_experience": 3},
        )

        summary = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((summary.applied, summary.failed), (1, 0))
        active = get_active_entity(self.db, ProfileEntityType.SKILL, USER_ID, skill.logical_entity_id)
        self.assertEqual(active.version, 3)
        self.assertEqual(active.proficiency_level, "expert")
        self.assertEqual(active.years_of_experience, 3.0)

    def test_conflict_without_retries_stays_pending(self) -> None:
        skill = create_manual_entity(self.db, USER_ID, ProfileEntityType.SKILL, {"name": "Go", "category": "language"})
        lookup = _MappedLookup({"s1": skill.logical_entity_id})
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [CandidateCreate(parsed_entity_id="s1", field_name="skill.category", raw_value="systems")],
        )
        self._decide("s1", "category", "accept", lookup)
        verify_and_edit(self.db, USER_ID, ProfileEntityType.SKILL, skill.logical_entity_id, 1, {"name": "Golang"})

        summary = apply_all(self.db, USER_ID, VERSION_ID, retry_attempts=0, sleep=_no_sleep)

        self.assertEqual((summary.applied, summary.failed), (0, 1))
        pending = list_pending_decisions(self.db, USER_ID, VERSION_ID)
        self.assertEqual(len(pending), 1)
        self.assertIn("ConflictError", pending[0].last_error)

    def test_write_failure_is_recorded_and_left_pending(self) -> None:
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="s1", field_name="skill.name", raw_value="Go"),
                CandidateCreate(parsed_entity_id="s1", field_name="skill.years_of_experience", raw_value="lots"),
                CandidateCreate(parsed_entity_id="s2", field_name="skill.name", raw_value="Rust"),
            ],
        )
        self._decide("s1", "name", "accept", lookup)
        self._decide("s1", "years_of_experience", "accept", lookup)
        self._decide("s2", "name", "accept", lookup)

        summary = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((summary.applied, summary.failed), (1, 2))
        skills = list_active_entities(self.db, ProfileEntityType.SKILL, USER_ID)
        self.assertEqual([skill.name for skill in skills], ["Rust"])
        pending = list_pending_decisions(self.db, USER_ID, VERSION_ID)
        self.assertEqual({row.field_name for row in pending}, {"name", "years_of_experience"})
        self.assertTrue(all(row.last_error for row in pending))

    def test_apply_new_refuses_when_anything_matches(self) -> None:
        skill = create_manual_entity(self.db, USER_ID, ProfileEntityType.SKILL, {"name": "Go"})
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="s1", field_name="skill.name", raw_value="go"),
                CandidateCreate(parsed_entity_id="s2", field_name="skill.name", raw_value="Rust"),
            ],
        )

        with self.assertRaises(ValidationError):
            apply_all_resume_data_to_profile(
                self.db,
                USER_ID,
                VERSION_ID,
                _MappedLookup({"s1": skill.logical_entity_id}),
            )
        self.assertEqual(len(list_active_entities(self.db, ProfileEntityType.SKILL, USER_ID)), 1)

    def test_apply_new_groups_records_and_splits_skill_lists(self) -> None:
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.company", raw_value="Globex"),
                CandidateCreate(parsed_entity_id="job-1", field_name="work_experience.title", raw_value="Staff Engineer"),
                CandidateCreate(parsed_entity_id="skills-1", field_name="skill.name", raw_value=["Go", "Rust"]),
                CandidateCreate(parsed_entity_id="skills-1", field_name="skill.category", raw_value="language"),
            ],
        )

        summary = apply_all_resume_data_to_profile(self.db, USER_ID, VERSION_ID, lookup)

        self.assertEqual((summary.entities_created, summary.errors), (3, 0))
        jobs = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual([(job.company, job.title) for job in jobs], [("Globex", "Staff Engineer")])
        skills = list_active_entities(self.db, ProfileEntityType.SKILL, USER_ID)
        self.assertEqual(sorted((skill.name, skill.category) for skill in skills), [("Go", "language"), ("Rust", "language")])
        self.assertTrue(all(skill.source == EntitySource.AI_EXTRACTION.value for skill in skills))
        self.assertEqual(list_pending_decisions(self.db, USER_ID, VERSION_ID), [])

        rerun = apply_all_resume_data_to_profile(self.db, USER_ID, VERSION_ID, lookup)
        self.assertEqual(rerun.entities_created, 0)
        total_skills = self.db.scalar(select(func.count()).select_from(Skill))
        total_jobs = self.db.scalar(select(func.count()).select_from(WorkExperience))
        self.assertEqual((total_skills, total_jobs), (2, 1))
        self._assert_version_invariants(Skill)
        self._assert_version_invariants(WorkExperience)

    def test_apply_new_leaves_rejected_field_out_of_the_profile(self) -> None:
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.company", raw_value="Globex"),
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.title", raw_value="Senior Engineer"),
                CandidateCreate(parsed_entity_id="s1", field_name="skill.name", raw_value="Go"),
            ],
        )
        self._decide("p1", "title", "reject", lookup)

        summary = apply_all_resume_data_to_profile(self.db, USER_ID, VERSION_ID, lookup)

        self.assertEqual((summary.entities_created, summary.errors), (2, 0))
        jobs = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual([(job.company, job.title) for job in jobs], [("Globex", None)])
        rejected = self.db.scalar(select(MergeDecision).where(MergeDecision.field_name == "title"))
        self.assertEqual(rejected.decision_type, "reject")
        self.assertFalse(rejected.applied)

        applied = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((applied.rejected, applied.failed), (1, 0))
        jobs = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual([(job.title, job.version) for job in jobs], [(None, 1)])
        self._assert_version_invariants(WorkExperience)
        self._assert_version_invariants(Skill)

    def test_apply_new_keeps_pending_override_for_apply_all(self) -> None:
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.company", raw_value="Globex"),
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.title", raw_value="Senior Engineer"),
            ],
        )
        self._decide("p1", "title", "override", lookup, override_value="Staff Engineer")

        summary = apply_all_resume_data_to_profile(self.db, USER_ID, VERSION_ID, lookup)

        self.assertEqual(summary.entities_created, 1)
        override = self.db.scalar(select(MergeDecision).where(MergeDecision.field_name == "title"))
        self.assertEqual((override.decision_type, override.applied), ("override", False))
        self.assertEqual(override.confirmed_value, "Staff Engineer")
        jobs = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual([(job.title, job.version) for job in jobs], [(None, 1)])

        applied = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((applied.overridden, applied.failed), (1, 0))
        jobs = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual(len(jobs), 1)
        self.assertEqual((jobs[0].company, jobs[0].title, jobs[0].version), ("Globex", "Staff Engineer", 2))
        self._assert_version_invariants(WorkExperience)

    def test_apply_new_advances_entity_created_by_earlier_accept(self) -> None:
        lookup = _MappedLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.company", raw_value="Globex"),
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.title", raw_value="Staff Engineer"),
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.end_date", raw_value="2024-05"),
            ],
        )
        self._decide("p1", "company", "accept", lookup)
        apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)
        accepted = self.db.scalar(select(MergeDecision).where(MergeDecision.field_name == "company"))
        accepted_at = accepted.applied_at

        summary = apply_all_resume_data_to_profile(self.db, USER_ID, VERSION_ID, lookup)

        self.assertEqual((summary.entities_created, summary.entities_updated, summary.errors), (0, 1, 0))
        self.assertEqual(summary.results[0].status, "updated")
        jobs = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual(len(jobs), 1)
        self.assertEqual(
            (jobs[0].company, jobs[0].title, jobs[0].end_date, jobs[0].version),
            ("Globex", "Staff Engineer", "2024-05", 2),
        )
        self.assertEqual(summary.results[0].logical_entity_ids, [jobs[0].logical_entity_id])
        accepted = self.db.scalar(select(MergeDecision).where(MergeDecision.field_name == "company"))
        self.assertEqual((accepted.decision_type, accepted.applied_at), ("accept", accepted_at))
        self.assertEqual(list_pending_decisions(self.db, USER_ID, VERSION_ID), [])
        self._assert_version_invariants(WorkExperience)

        rerun = apply_all_resume_data_to_profile(self.db, USER_ID, VERSION_ID, lookup)
        self.assertEqual((rerun.entities_created, rerun.entities_updated), (0, 0))

    def test_promotion_found_by_default_lookup_advances_existing_job(self) -> None:
        job = create_manual_entity(
            self.db,
            USER_ID,
            ProfileEntityType.WORK_EXPERIENCE,
            {"company": "Acme", "title": "Engineer"},
        )
        lookup = SimilarityMatchLookup()
        ingest_candidates(
            self.db,
            USER_ID,
            VERSION_ID,
            [
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.company", raw_value="Acme"),
                CandidateCreate(parsed_entity_id="p1", field_name="work_experience.title", raw_value="Senior Engineer"),
            ],
        )

        review = get_review_items(self.db, USER_ID, VERSION_ID, lookup)

        self.assertEqual(
            sorted((item.field_name, item.diff_type, item.profile_entity_id) for item in review.items),
            [
                ("company", "equivalent", job.logical_entity_id),
                ("title", "conflicting", job.logical_entity_id),
            ],
        )

        self._decide("p1", "title", "override", lookup, override_value="Staff Engineer")
        summary = apply_all(self.db, USER_ID, VERSION_ID, sleep=_no_sleep)

        self.assertEqual((summary.overridden, summary.failed), (1, 0))
        jobs = list_active_entities(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID)
        self.assertEqual(len(jobs), 1)
        self.assertEqual(
            (jobs[0].logical_entity_id, jobs[0].title, jobs[0].version),
            (job.logical_entity_id, "Staff Engineer", 2),
        )
        history = get_entity_history(self.db, ProfileEntityType.WORK_EXPERIENCE, USER_ID, job.logical_entity_id)
        self.assertEqual([(row.version, row.is_active) for row in history], [(2, True), (1, False)])
        self._assert_version_invariants(WorkExperience)

    def _assert_version_invariants(self, model: type) -> None:
        versions_by_entity: dict[str, list] = {}
        for row in self.db.scalars(select(model)).all():
            versions_by_entity.setdefault(row.logical_entity_id, []).append(row)
        for logical_entity_id, rows in versions_by_entity.items():
            self.assertEqual(
                sorted(row.version for row in rows),
                list(range(1, len(rows) + 1)),
                logical_entity_id,
            )
            self.assertEqual(sum(1 for row in rows if row.is_active), 1, logical_entity_id)

    def _decide(
        self,
        parsed_entity_id: str,
        field_name: str,
        decision_type: str,
        lookup: MatchLookupInterface,
        override_value: str | None = None,
    ) -> MergeDecision:
        return record_decision_for_candidate(
            self.db,
            USER_ID,
            VERSION_ID,
            DecisionRecordRequest(
                parsed_entity_id=parsed_entity_id,
                field_name=field_name,
                decision_type=decision_type,
                override_value=override_value,
            ),
            lookup,
        )

    def _reset_tables(self) -> None:
        for table in reversed(Base.metadata.sorted_tables):
            self.db.execute(delete(table))
        self.db.commit()


if __name__ == "__main__":
    unittest.main()
