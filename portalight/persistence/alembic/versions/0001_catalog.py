"""create catalog tables

Revision ID: 0001_catalog
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_catalog"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("name", name="uq_teams_name"),
    )
    op.create_index("ix_teams_name", "teams", ["name"], unique=False)
    # Owner lookups compare lower(name).
    op.create_index("ix_teams_name_lower", "teams", [sa.text("lower(name)")], unique=False)

    op.create_table(
        "projects",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("links", postgresql.JSONB(), nullable=True),
        sa.Column("confluence_url", sa.String(), nullable=True),
        sa.Column("owner_team_id", sa.String(), sa.ForeignKey("teams.id"), nullable=True),
        sa.Column("catalog_file_path", sa.String(), nullable=True),
        sa.Column("catalog_metadata", postgresql.JSONB(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_status", sa.String(), nullable=False, server_default="never_synced"),
        sa.Column("sync_error", sa.Text(), nullable=True),
        sa.Column("auto_synced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("name", name="uq_projects_name"),
        sa.UniqueConstraint("catalog_file_path", name="uq_projects_catalog_file_path"),
    )
    op.create_index("ix_projects_name", "projects", ["name"], unique=False)
    op.create_index("ix_projects_owner_team_id", "projects", ["owner_team_id"], unique=False)
    op.create_index("ix_projects_sync_status", "projects", ["sync_status"], unique=False)

    op.create_table(
        "services",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("project_id", sa.String(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("language", sa.String(), nullable=True),
        sa.Column("environment", sa.String(), nullable=True),
        sa.Column("repository", sa.String(), nullable=True),
        sa.Column("owner", sa.String(), nullable=True),
        sa.Column("owner_team_id", sa.String(), sa.ForeignKey("teams.id"), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("links", postgresql.JSONB(), nullable=True),
        sa.Column("dependencies", postgresql.JSONB(), nullable=True),
        sa.Column("grafana_url", sa.String(), nullable=True),
        sa.Column("confluence_url", sa.String(), nullable=True),
        sa.Column("catalog_source", sa.String(), nullable=True),
        sa.Column("auto_synced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("orphaned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("orphaned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("catalog_metadata", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        # Service names are scoped to their project.
        sa.UniqueConstraint("project_id", "name", name="uq_services_project_name"),
    )
    op.create_index("ix_services_project_id", "services", ["project_id"], unique=False)
    op.create_index("ix_services_name", "services", ["name"], unique=False)
    op.create_index("ix_services_owner_team_id", "services", ["owner_team_id"], unique=False)
    op.create_index("ix_services_catalog_source", "services", ["catalog_source"], unique=False)
    op.create_index(
        "ix_services_project_orphaned", "services", ["project_id", "orphaned"], unique=False
    )

    op.create_table(
        "catalog_sync_runs",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("sync_type", sa.String(), nullable=False),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("project_name", sa.String(), nullable=True),
        sa.Column("catalog_file_path", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("projects_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("projects_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("services_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("services_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("services_orphaned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_kind", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("validation_errors", postgresql.JSONB(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("synced_by", sa.String(), nullable=True),
        sa.Column("synced_by_name", sa.String(), nullable=True),
    )
    op.create_index("ix_catalog_sync_runs_project_id", "catalog_sync_runs", ["project_id"], unique=False)
    op.create_index("ix_catalog_sync_runs_status", "catalog_sync_runs", ["status"], unique=False)
    op.create_index("ix_catalog_sync_runs_started_at", "catalog_sync_runs", ["started_at"], unique=False)
    op.create_index(
        "ix_catalog_sync_runs_path_started",
        "catalog_sync_runs",
        ["catalog_file_path", "started_at"],
        unique=False,
    )

    op.create_table(
        "catalog_source_state",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("last_scan_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_scan_status", sa.String(), nullable=True),
        sa.Column("last_scan_error", sa.Text(), nullable=True),
        sa.Column("last_scan_file_count", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("catalog_source_state")
    op.drop_index("ix_catalog_sync_runs_path_started", table_name="catalog_sync_runs")
    op.drop_index("ix_catalog_sync_runs_started_at", table_name="catalog_sync_runs")
    op.drop_index("ix_catalog_sync_runs_status", table_name="catalog_sync_runs")
    op.drop_index("ix_catalog_sync_runs_project_id", table_name="catalog_sync_runs")
    op.drop_table("catalog_sync_runs")
    op.drop_index("ix_services_project_orphaned", table_name="services")
    op.drop_index("ix_services_catalog_source", table_name="services")
    op.drop_index("ix_services_owner_team_id", table_name="services")
    op.drop_index("ix_services_name", table_name="services")
    op.drop_index("ix_services_project_id", table_name="services")
    op.drop_table("services")
    op.drop_index("ix_projects_sync_status", table_name="projects")
    op.drop_index("ix_projects_owner_team_id", table_name="projects")
    op.drop_index("ix_projects_name", table_name="projects")
    op.drop_table("projects")
    op.drop_index("ix_teams_name_lower", table_name="teams")
    op.drop_index("ix_teams_name", table_name="teams")
    op.drop_table("teams")
