from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UTCDateTime, new_uuid, utcnow


class RequestStatus:
    PENDING = "pending"
    BOOKED = "booked"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    ALL = (PENDING, BOOKED, RESCHEDULED, CANCELLED, EXPIRED)
    TERMINAL = (CANCELLED, EXPIRED)


class BookingStatus:
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"

    LIVE = (CONFIRMED, RESCHEDULED)


class ActorType:
    CANDIDATE = "candidate"
    COORDINATOR = "coordinator"
    SYSTEM = "system"


class SyncJobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class NotificationStatus:
    PENDING = "PENDING"
    SENDING = "SENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class NotificationType:
    SELF_SCHEDULE_LINK = "candidate_self_schedule_link"
    BOOKING_CONFIRMATION = "booking_confirmation"
    RESCHEDULE_CONFIRMATION = "reschedule_confirmation"
    CANCEL_NOTICE = "cancel_notice"
    REMINDER_24H = "reminder_24h"
    REMINDER_2H = "reminder_2h"
    NUDGE_REMINDER = "nudge_reminder"
    NUDGE_REMINDER_URGENT = "nudge_reminder_urgent"
    ESCALATION_NO_RESPONSE = "escalation_no_response"
    ESCALATION_EXPIRED = "escalation_expired"

    REMINDERS = (REMINDER_24H, REMINDER_2H)


class ReconciliationJobType:
    STATE_MISMATCH = "state_mismatch"
    ICIMS_NOTE_MISSING = "icims_note_missing"
    CALENDAR_EVENT_MISSING = "calendar_event_missing"


class ReconciliationJobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    REPAIRED = "repaired"
    FAILED = "failed"

    OPEN = (PENDING, PROCESSING)


class JobRunStatus:
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    LOCKED = "locked"


class SchedulingRequest(Base):
    __tablename__ = "scheduling_requests"
    __table_args__ = (
        Index("ix_scheduling_requests_status_expires", "status", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    application_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    candidate_name: Mapped[str] = mapped_column(String(200), nullable=False)
    candidate_email: Mapped[str] = mapped_column(String(320), nullable=False)
    requisition_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requisition_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    interview_type: Mapped[str] = mapped_column(String(50), nullable=False, default="video")
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    interviewer_emails: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    organizer_email: Mapped[str] = mapped_column(String(320), nullable=False)
    window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    window_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    candidate_timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    public_token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RequestStatus.PENDING)
    needs_attention: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_attention_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    booking: Mapped[Optional["Booking"]] = relationship(
        back_populates="request", uselist=False, lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<SchedulingRequest {self.id} status={self.status}>"


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("request_id", name="uq_bookings_request_id"),
        Index("ix_bookings_status_start", "status", "scheduled_start"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    request_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("scheduling_requests.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    calendar_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    calendar_ical_uid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    conference_join_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    ats_activity_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BookingStatus.CONFIRMED)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    booked_by: Mapped[str] = mapped_column(String(20), nullable=False, default=ActorType.CANDIDATE)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    request: Mapped["SchedulingRequest"] = relationship(back_populates="booking", lazy="raise")

    @property
    def is_live(self) -> bool:
        return self.status in BookingStatus.LIVE

    def __repr__(self) -> str:
        return f"<Booking {self.id} request={self.request_id} status={self.status}>"


class SyncJob(Base):
    __tablename__ = "sync_jobs"
    __table_args__ = (Index("ix_sync_jobs_status_run_after", "status", "run_after"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SyncJobStatus.PENDING)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    run_after: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class NotificationJob(Base):
    __tablename__ = "notification_jobs"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_notification_jobs_idempotency_key"),
        Index("ix_notification_jobs_status_run_after", "status", "run_after"),
        Index("ix_notification_jobs_entity", "entity_type", "entity_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    to_email: Mapped[str] = mapped_column(String(320), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=NotificationStatus.PENDING)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    run_after: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class NotificationAttempt(Base):
    __tablename__ = "notification_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    notification_job_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notification_jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class ReconciliationJob(Base):
    __tablename__ = "reconciliation_jobs"
    __table_args__ = (
        Index("ix_reconciliation_jobs_status_run_after", "status", "run_after"),
        Index("ix_reconciliation_jobs_type_entity", "job_type", "entity_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    detection_reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReconciliationJobStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    run_after: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    repair_action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    repaired_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    scheduling_request_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    booking_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class JobLock(Base):
    __tablename__ = "job_locks"

    job_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    locked_by: Mapped[str] = mapped_column(String(100), nullable=False)
    locked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class JobRun(Base):
    __tablename__ = "job_runs"
    __table_args__ = (Index("ix_job_runs_name_started", "job_name", "started_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    instance_id: Mapped[str] = mapped_column(String(100), nullable=False)
    trigger: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=JobRunStatus.RUNNING)
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    queue_depth_before: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    queue_depth_after: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


__all__ = [
    "ActorType",
    "AuditLog",
    "Booking",
    "BookingStatus",
    "JobLock",
    "JobRun",
    "JobRunStatus",
    "NotificationAttempt",
    "NotificationJob",
    "NotificationStatus",
    "NotificationType",
    "ReconciliationJob",
    "ReconciliationJobStatus",
    "ReconciliationJobType",
    "RequestStatus",
    "SchedulingRequest",
    "SyncJob",
    "SyncJobStatus",
]
