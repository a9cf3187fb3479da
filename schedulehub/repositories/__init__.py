"""Entity repositories grouped by the Unit of Work."""

from schedulehub.repositories.audit import AuditLogRepository
from schedulehub.repositories.bookings import BookedInterval, BookingRepository
from schedulehub.repositories.jobs import (
    JobLockRepository,
    JobRunRepository,
    ReconciliationJobRepository,
    SyncJobRepository,
)
from schedulehub.repositories.notifications import (
    NotificationAttemptRepository,
    NotificationJobRepository,
)
from schedulehub.repositories.requests import SchedulingRequestRepository

__all__ = [
    "AuditLogRepository",
    "BookedInterval",
    "BookingRepository",
    "JobLockRepository",
    "JobRunRepository",
    "NotificationAttemptRepository",
    "NotificationJobRepository",
    "ReconciliationJobRepository",
    "SchedulingRequestRepository",
    "SyncJobRepository",
]
