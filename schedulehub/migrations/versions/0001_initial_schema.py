"""Create the scheduling tables."""

from __future__ import annotations

import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _define_tables(metadata: sa.MetaData) -> None:
    sa.Table(
        "scheduling_requests",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("application_id", sa.String(64), nullable=True),
        sa.Column("candidate_name", sa.String(200), nullable=False),
        sa.Column("candidate_email", sa.String(320), nullable=False),
        sa.Column("requisition_id", sa.String(64), nullable=True),
        sa.Column("requisition_title", sa.String(255), nullable=True),
        sa.Column("interview_type", sa.String(50), nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("interviewer_emails", sa.JSON, nullable=False),
        sa.Column("organizer_email", sa.String(320), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("candidate_timezone", sa.String(64), nullable=False),
        sa.Column("public_token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("needs_attention", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("needs_attention_reason", sa.Text, nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("public_token_hash", name="uq_scheduling_requests_public_token_hash"),
        sa.Index("ix_scheduling_requests_status_expires", "status", "expires_at"),
        sa.Index("ix_scheduling_requests_application_id", "application_id"),
    )

    sa.Table(
        "bookings",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("request_id", sa.String(36), nullable=False),
        sa.Column("scheduled_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("calendar_event_id", sa.String(255), nullable=True),
        sa.Column("calendar_ical_uid", sa.String(255), nullable=True),
        sa.Column("conference_join_url", sa.String(1024), nullable=True),
        sa.Column("ats_activity_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("booked_by", sa.String(20), nullable=False, server_default=sa.text("'candidate'")),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["request_id"], ["scheduling_requests.id"], name="fk_bookings_request_id", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("request_id", name="uq_bookings_request_id"),
        sa.Index("ix_bookings_status_start", "status", "scheduled_start"),
    )

    sa.Table(
        "sync_jobs",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default=sa.text("5")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("run_after", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.Index("ix_sync_jobs_status_run_after", "status", "run_after"),
    )

    sa.Table(
        "notification_jobs",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        sa.Column("to_email", sa.String(320), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default=sa.text("5")),
        sa.Column("run_after", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("idempotency_key", name="uq_notification_jobs_idempotency_key"),
        sa.Index("ix_notification_jobs_status_run_after", "status", "run_after"),
        sa.Index("ix_notification_jobs_entity", "entity_type", "entity_id"),
    )

    sa.Table(
        "notification_attempts",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("notification_job_id", sa.String(36), nullable=False),
        sa.Column("attempt_number", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["notification_job_id"],
            ["notification_jobs.id"],
            name="fk_notification_attempts_job_id",
            ondelete="CASCADE",
        ),
        sa.Index("ix_notification_attempts_notification_job_id", "notification_job_id"),
    )

    sa.Table(
        "reconciliation_jobs",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("detection_reason", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default=sa.text("3")),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("run_after", sa.DateTime(timezone=True), nullable=False),
        sa.Column("repair_action", sa.Text, nullable=True),
        sa.Column("repaired_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Index("ix_reconciliation_jobs_status_run_after", "status", "run_after"),
        sa.Index("ix_reconciliation_jobs_type_entity", "job_type", "entity_id"),
    )

    sa.Table(
        "audit_logs",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("actor_type", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(100), nullable=True),
        sa.Column("scheduling_request_id", sa.String(36), nullable=True),
        sa.Column("booking_id", sa.String(36), nullable=True),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Index("ix_audit_logs_action", "action"),
        sa.Index("ix_audit_logs_scheduling_request_id", "scheduling_request_id"),
        sa.Index("ix_audit_logs_booking_id", "booking_id"),
    )

    sa.Table(
        "job_locks",
        metadata,
        sa.Column("job_name", sa.String(100), primary_key=True),
        sa.Column("locked_by", sa.String(100), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )

    sa.Table(
        "job_runs",
        metadata,
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_name", sa.String(100), nullable=False),
        sa.Column("instance_id", sa.String(100), nullable=False),
        sa.Column("trigger", sa.String(20), nullable=False, server_default=sa.text("'scheduled'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'running'")),
        sa.Column("processed", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("failed", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("skipped", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("queue_depth_before", sa.Integer, nullable=True),
        sa.Column("queue_depth_after", sa.Integer, nullable=True),
        sa.Column("error_summary", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        sa.Index("ix_job_runs_name_started", "job_name", "started_at"),
    )


def upgrade(conn) -> None:
    metadata = sa.MetaData()
    _define_tables(metadata)
    metadata.create_all(conn, checkfirst=True)


def downgrade(conn) -> None:  # pragma: no cover - rollback helper
    metadata = sa.MetaData()
    _define_tables(metadata)
    metadata.drop_all(conn, checkfirst=True)
