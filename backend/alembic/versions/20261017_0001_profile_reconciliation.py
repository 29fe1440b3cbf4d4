"""versioned profile entities and merge decision ledger

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

VERSIONED_TABLES = ("work_experience", "education", "skill", "project", "certification")


def _versioned_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("logical_entity_id", sa.String(length=36), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("source_confidence", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _create_versioned_table(table: str, *payload: sa.Column) -> None:
    op.create_table(
        table,
        *_versioned_columns(),
        *payload,
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("logical_entity_id", "version", name=f"uq_{table}_logical_version"),
    )
    op.create_index(f"ix_{table}_user_id", table, ["user_id"], unique=False)
    op.create_index(f"ix_{table}_logical_entity_id", table, ["logical_entity_id"], unique=False)
    op.create_index(
        f"uq_{table}_one_active",
        table,
        ["logical_entity_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active"),
    )


def upgrade() -> None:
    _create_versioned_table(
        "work_experience",
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("start_date", sa.String(length=32), nullable=True),
        sa.Column("end_date", sa.String(length=32), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    _create_versioned_table(
        "education",
        sa.Column("institution", sa.String(length=255), nullable=True),
        sa.Column("degree", sa.String(length=255), nullable=True),
        sa.Column("field_of_study", sa.String(length=255), nullable=True),
        sa.Column("start_date", sa.String(length=32), nullable=True),
        sa.Column("end_date", sa.String(length=32), nullable=True),
        sa.Column("gpa", sa.String(length=32), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    _create_versioned_table(
        "skill",
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("proficiency_level", sa.String(length=64), nullable=True),
        sa.Column("years_of_experience", sa.Float(), nullable=True),
    )
    _create_versioned_table(
        "project",
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("technologies_used", sa.JSON(), nullable=True),
        sa.Column("start_date", sa.String(length=32), nullable=True),
        sa.Column("end_date", sa.String(length=32), nullable=True),
        sa.Column("project_url", sa.String(length=1024), nullable=True),
        sa.Column("repository_url", sa.String(length=1024), nullable=True),
    )
    _create_versioned_table(
        "certification",
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("issuing_organization", sa.String(length=255), nullable=True),
        sa.Column("issue_date", sa.String(length=32), nullable=True),
        sa.Column("expiration_date", sa.String(length=32), nullable=True),
        sa.Column("credential_id", sa.String(length=255), nullable=True),
        sa.Column("credential_url", sa.String(length=1024), nullable=True),
    )

    op.create_table(
        "parsed_resume_entities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("resume_version_id", sa.String(length=255), nullable=False),
        sa.Column("parsed_entity_id", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=True),
        sa.Column("field_name", sa.String(length=128), nullable=False),
        sa.Column("raw_value", sa.Text(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("matched_entity_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id",
            "resume_version_id",
            "parsed_entity_id",
            "field_name",
            name="uq_parsed_resume_entities_version_entity_field",
        ),
    )
    op.create_index("ix_parsed_resume_entities_user_id", "parsed_resume_entities", ["user_id"], unique=False)
    op.create_index(
        "ix_parsed_resume_entities_resume_version_id",
        "parsed_resume_entities",
        ["resume_version_id"],
        unique=False,
    )

    op.create_table(
        "merge_decisions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("resume_version_id", sa.String(length=255), nullable=False),
        sa.Column("parsed_entity_id", sa.String(length=255), nullable=False),
        sa.Column("field_name", sa.String(length=128), nullable=False),
        sa.Column("decision_type", sa.String(length=16), nullable=False),
        sa.Column("parsed_value", sa.Text(), nullable=True),
        sa.Column("override_value", sa.Text(), nullable=True),
        sa.Column("confirmed_value", sa.Text(), nullable=True),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("profile_entity_id", sa.String(length=36), nullable=True),
        sa.Column("profile_entity_type", sa.String(length=32), nullable=False),
        sa.Column("profile_entity_version", sa.Integer(), nullable=True),
        sa.Column("reviewed_value", sa.Text(), nullable=True),
        sa.Column("applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_entity_id", sa.String(length=36), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id",
            "resume_version_id",
            "parsed_entity_id",
            "field_name",
            name="uq_merge_decisions_version_entity_field",
        ),
    )
    op.create_index("ix_merge_decisions_user_id", "merge_decisions", ["user_id"], unique=False)
    op.create_index("ix_merge_decisions_resume_version_id", "merge_decisions", ["resume_version_id"], unique=False)
    op.create_index("ix_merge_decisions_applied", "merge_decisions", ["applied"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_merge_decisions_applied", table_name="merge_decisions")
    op.drop_index("ix_merge_decisions_resume_version_id", table_name="merge_decisions")
    op.drop_index("ix_merge_decisions_user_id", table_name="merge_decisions")
    op.drop_table("merge_decisions")

    op.drop_index("ix_parsed_resume_entities_resume_version_id", table_name="parsed_resume_entities")
    op.drop_index("ix_parsed_resume_entities_user_id", table_name="parsed_resume_entities")
    op.drop_table("parsed_resume_entities")

    for table in reversed(VERSIONED_TABLES):
        op.drop_index(f"uq_{table}_one_active", table_name=table)
        op.drop_index(f"ix_{table}_logical_entity_id", table_name=table)
        op.drop_index(f"ix_{table}_user_id", table_name=table)
        op.drop_table(table)
