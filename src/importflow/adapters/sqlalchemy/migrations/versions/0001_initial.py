"""Initial pipeline schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16 00:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _json() -> sa.JSON:
    return sa.JSON(none_as_null=True)


def _timestamp() -> sa.DateTime:
    return sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "dataset",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("schema_config", _json(), nullable=False),
        sa.Column("deduplication_config", _json(), nullable=False),
        sa.Column("id_strategy", _json(), nullable=False),
        sa.Column("geocoding_enabled", sa.Boolean(), nullable=False),
        sa.Column("created_at", _timestamp(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_dataset"),
    )
    op.create_table(
        "schema_version",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("dataset_id", sa.Uuid(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("schema", _json(), nullable=False),
        sa.Column("field_metadata", _json(), nullable=False),
        sa.Column("approval_required", sa.Boolean(), nullable=False),
        sa.Column("auto_approved", sa.Boolean(), nullable=False),
        sa.Column("approved_by", sa.String(), nullable=True),
        sa.Column("conflicts", _json(), nullable=False),
        sa.Column("import_sources", _json(), nullable=False),
        sa.Column("created_at", _timestamp(), nullable=False),
        sa.ForeignKeyConstraint(
            ["dataset_id"],
            ["dataset.id"],
            name="fk_schema_version_dataset_id_dataset",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_schema_version"),
        sa.UniqueConstraint(
            "dataset_id", "version_number", name="uq_schema_version_dataset_number"
        ),
    )
    op.create_table(
        "import_job",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("dataset_id", sa.Uuid(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("stage", sa.String(length=32), nullable=False),
        sa.Column("last_successful_stage", sa.String(length=32), nullable=True),
        sa.Column("retry_attempts", sa.Integer(), nullable=False),
        sa.Column("last_retry_at", _timestamp(), nullable=True),
        sa.Column("next_retry_at", _timestamp(), nullable=True),
        sa.Column("error_log", _json(), nullable=False),
        sa.Column("schema_builder_state", _json(), nullable=True),
        sa.Column("detected_schema", _json(), nullable=True),
        sa.Column("schema_validation", _json(), nullable=True),
        sa.Column("duplicates", _json(), nullable=True),
        sa.Column("progress", _json(), nullable=False),
        sa.Column("field_mappings", _json(), nullable=False),
        sa.Column("geocoding_results", _json(), nullable=False),
        sa.Column("row_errors", _json(), nullable=False),
        sa.Column("results", _json(), nullable=True),
        sa.Column("schema_version_id", sa.Uuid(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", _timestamp(), nullable=False),
        sa.Column("updated_at", _timestamp(), nullable=True),
        sa.ForeignKeyConstraint(
            ["dataset_id"],
            ["dataset.id"],
            name="fk_import_job_dataset_id_dataset",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["schema_version_id"],
            ["schema_version.id"],
            name="fk_import_job_schema_version_id_schema_version",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_import_job"),
    )
    op.create_index(
        "ix_import_job_stage_next_retry_at", "import_job", ["stage", "next_retry_at"]
    )
    op.create_table(
        "event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("dataset_id", sa.Uuid(), nullable=False),
        sa.Column("import_job_id", sa.Uuid(), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("unique_id", sa.String(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("data", _json(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("coordinate_source", sa.String(length=32), nullable=False),
        sa.Column("geocoding_confidence", sa.Float(), nullable=True),
        sa.Column("normalized_address", sa.String(), nullable=True),
        sa.Column("event_timestamp", _timestamp(), nullable=True),
        sa.Column("schema_version_number", sa.Integer(), nullable=True),
        sa.Column("superseded", sa.Boolean(), nullable=False),
        sa.Column("created_at", _timestamp(), nullable=False),
        sa.Column("updated_at", _timestamp(), nullable=True),
        sa.ForeignKeyConstraint(
            ["dataset_id"],
            ["dataset.id"],
            name="fk_event_dataset_id_dataset",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["import_job_id"],
            ["import_job.id"],
            name="fk_event_import_job_id_import_job",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_event"),
    )
    op.create_index("ix_event_dataset_unique_id", "event", ["dataset_id", "unique_id"])
    op.create_index("ix_event_import_job_id", "event", ["import_job_id"])


def downgrade() -> None:
    op.drop_index("ix_event_import_job_id", table_name="event")
    op.drop_index("ix_event_dataset_unique_id", table_name="event")
    op.drop_table("event")
    op.drop_index("ix_import_job_stage_next_retry_at", table_name="import_job")
    op.drop_table("import_job")
    op.drop_table("schema_version")
    op.drop_table("dataset")
