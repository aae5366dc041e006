from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Use JSONB on Postgres and plain JSON elsewhere so sqlite-backed tests share the schema.
JSONType = JSON().with_variant(JSONB(), "postgresql")

SYNC_STATUS_NEVER_SYNCED = "never_synced"
SYNC_STATUS_SYNCING = "syncing"
SYNC_STATUS_SUCCESS = "success"
SYNC_STATUS_FAILED = "failed"

RUN_STATUS_SUCCESS = "success"
RUN_STATUS_PARTIAL = "partial"
RUN_STATUS_FAILED = "failed"

SYNC_TYPE_MANUAL = "manual"
SYNC_TYPE_SCHEDULED = "scheduled"
SYNC_TYPE_WEBHOOK = "webhook"
SYNC_TYPES = (SYNC_TYPE_MANUAL, SYNC_TYPE_SCHEDULED, SYNC_TYPE_WEBHOOK)


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    # Lookups lower() both sides; uniqueness is enforced by team administration.
    name: Mapped[str] = mapped_column(String, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    # Stable kebab-case identifier from metadata.name.
    name: Mapped[str] = mapped_column(String, unique=True, index=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    links: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    confluence_url: Mapped[str | None] = mapped_column(String, nullable=True)
    owner_team_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("teams.id"), nullable=True, index=True
    )
    # Natural key for sync: one project per manifest path; null for manually created projects.
    catalog_file_path: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    # Verbatim document snapshot for audit and debugging.
    catalog_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_status: Mapped[str] = mapped_column(
        String, default=SYNC_STATUS_NEVER_SYNCED, index=True
    )
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_services_project_name"),
        Index("ix_services_project_orphaned", "project_id", "orphaned"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String, ForeignKey("projects.id"), index=True)
    name: Mapped[str] = mapped_column(String, index=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    language: Mapped[str | None] = mapped_column(String, nullable=True)
    environment: Mapped[str | None] = mapped_column(String, nullable=True)
    repository: Mapped[str | None] = mapped_column(String, nullable=True)
    # Keep the raw owner reference next to the resolved id for operator display.
    owner: Mapped[str | None] = mapped_column(String, nullable=True)
    owner_team_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("teams.id"), nullable=True, index=True
    )
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    links: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    dependencies: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    grafana_url: Mapped[str | None] = mapped_column(String, nullable=True)
    confluence_url: Mapped[str | None] = mapped_column(String, nullable=True)
    catalog_source: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    auto_synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Flag instead of delete; removal is a separate operator action.
    orphaned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    orphaned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    catalog_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class CatalogSyncRun(Base):
    __tablename__ = "catalog_sync_runs"
    __table_args__ = (
        Index("ix_catalog_sync_runs_path_started", "catalog_file_path", "started_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    sync_type: Mapped[str] = mapped_column(String)
    # No FK so history survives administrative project deletion.
    project_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    project_name: Mapped[str | None] = mapped_column(String, nullable=True)
    catalog_file_path: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, index=True)
    projects_created: Mapped[int] = mapped_column(Integer, default=0)
    projects_updated: Mapped[int] = mapped_column(Integer, default=0)
    services_created: Mapped[int] = mapped_column(Integer, default=0)
    services_updated: Mapped[int] = mapped_column(Integer, default=0)
    services_orphaned: Mapped[int] = mapped_column(Integer, default=0)
    error_kind: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    validation_errors: Mapped[list[dict[str, str]]] = mapped_column(JSONType, default=list)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    synced_by: Mapped[str | None] = mapped_column(String, nullable=True)
    synced_by_name: Mapped[str | None] = mapped_column(String, nullable=True)


class CatalogSourceState(Base):
    __tablename__ = "catalog_source_state"

    # One row per configured repository/branch/path triple.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    last_scan_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_scan_status: Mapped[str | None] = mapped_column(String, nullable=True)
    last_scan_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_scan_file_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
