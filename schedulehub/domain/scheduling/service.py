"""
Scheduling orchestrator.

Drives the request lifecycle::

    pending -> booked | cancelled | expired
    booked -> rescheduled | cancelled
    rescheduled -> rescheduled | cancelled

Every transition commits together with its audit entry. Calendar calls are
part of the transition: when they fail the caller sees a collaborator error and
nothing local changes. ATS notes and notifications run after the commit and
never fail the transition; the ATS side turns its own failures into sync jobs.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from schedulehub.core.audit import AuditActor, log_audit_action
from schedulehub.core.metrics import BOOKINGS_TOTAL
from schedulehub.core.settings import Settings
from schedulehub.core.timezone_utils import (
    is_slot_aligned,
    is_valid_timezone,
    normalize_to_utc,
    to_iso_utc,
    utc_now,
)
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.ats.note_formatter import BookedNote, CancelledNote, LinkCreatedNote, RescheduledNote
from schedulehub.domain.ats.writeback import AtsWritebackService
from schedulehub.domain.errors import (
    CollaboratorError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from schedulehub.domain.models import Booking, BookingStatus, RequestStatus, SchedulingRequest
from schedulehub.domain.notifications.queue import NotificationQueue
from schedulehub.domain.tokens import (
    build_public_link,
    generate_public_token,
    hash_token,
    is_token_expired,
    token_expiry,
)
from schedulehub.integrations.calendar.base import Attendee, CalendarClient, EventPayload, EventUpdate
from schedulehub.integrations.timeouts import call_with_timeout

from .slots import find_slot, find_slot_starting_at, generate_available_slots
from .types import (
    AvailableSlot,
    BookingSummary,
    BookResult,
    CancelResult,
    CreateRequestInput,
    CreateRequestResult,
    RequestDetails,
    RequestSummary,
    RescheduleResult,
    ResendLinkResult,
    SlotConstraints,
    SlotsResult,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

RESCHEDULABLE = (RequestStatus.BOOKED, RequestStatus.RESCHEDULED)
CANCELLABLE = (RequestStatus.PENDING, RequestStatus.BOOKED, RequestStatus.RESCHEDULED)


@dataclass(frozen=True)
class SchedulingConfig:
    public_base_url: str
    token_hash_pepper: str
    public_link_ttl_days: int = 14
    organizer_email: str = "scheduling@example.com"
    slot_max_results: Optional[int] = 30
    calendar_timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulingConfig":
        return cls(
            public_base_url=settings.public_base_url,
            token_hash_pepper=settings.token_hash_pepper,
            public_link_ttl_days=settings.public_link_ttl_days,
            organizer_email=settings.organizer_email,
            slot_max_results=settings.slot_max_results,
            calendar_timeout_seconds=settings.calendar_timeout_seconds,
        )


def _summary(request: SchedulingRequest) -> RequestSummary:
    return RequestSummary(
        request_id=request.id,
        candidate_name=request.candidate_name,
        requisition_title=request.requisition_title,
        interview_type=request.interview_type,
        duration_minutes=request.duration_minutes,
        status=request.status,
    )


def booking_summary(booking: Booking) -> BookingSummary:
    return BookingSummary(
        booking_id=booking.id,
        request_id=booking.request_id,
        status=booking.status,
        start=booking.scheduled_start,
        end=booking.scheduled_end,
        calendar_event_id=booking.calendar_event_id,
        join_url=booking.conference_join_url,
    )


def build_event_payload(
    request: SchedulingRequest,
    start: datetime,
    end: datetime,
    interviewers: Sequence[str],
) -> EventPayload:
    """Calendar invite for the candidate plus the interviewers free for the slot."""
    subject = f"{request.interview_type.title()} Interview: {request.candidate_name}"
    if request.requisition_title:
        subject = f"{subject} ({request.requisition_title})"
    body = (
        f"<p>Interview with {html.escape(request.candidate_name)}</p>"
        f"<p>Duration: {request.duration_minutes} minutes</p>"
        f"<p>Scheduling request: {html.escape(request.id)}</p>"
    )
    attendees = tuple(Attendee(email=email) for email in interviewers) + (
        Attendee(email=request.candidate_email, name=request.candidate_name),
    )
    return EventPayload(
        subject=subject,
        body_html=body,
        start=start,
        end=end,
        attendees=attendees,
        timezone=request.candidate_timezone,
        is_online_meeting=request.interview_type != "onsite",
        transaction_id=f"{request.id}-{int(start.timestamp())}",
    )


def _clean_emails(emails: Sequence[str]) -> List[str]:
    seen: set[str] = set()
    cleaned: List[str] = []
    for raw in emails:
        email = (raw or "").strip()
        if not email or email.lower() in seen:
            continue
        seen.add(email.lower())
        cleaned.append(email)
    return cleaned


class SchedulingService:
    def __init__(
        self,
        session_factory: SessionFactory,
        calendar: CalendarClient,
        notifications: NotificationQueue,
        writeback: AtsWritebackService,
        config: SchedulingConfig,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._session_factory = session_factory
        self._calendar = calendar
        self._notifications = notifications
        self._writeback = writeback
        self._config = config
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return normalize_to_utc(self._clock())

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(self._session_factory)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _calendar_call(self, awaitable: Awaitable[Any]) -> Any:
        return await call_with_timeout("calendar", awaitable, self._config.calendar_timeout_seconds)

    async def _best_effort(self, action: str, awaitable: Awaitable[Any], **context: Any) -> Any:
        """Side effects after a committed transition: failures are logged, never raised."""
        try:
            return await awaitable
        except Exception:
            logger.exception("scheduling.side_effect_failed", extra={"action": action, **context})
            return None

    async def _resolve_token(self, uow: UnitOfWork, token: str) -> SchedulingRequest:
        if not token:
            raise NotFoundError("SchedulingRequest", message="Scheduling link not found")
        request = await uow.requests.get_by_token_hash(hash_token(token, self._config.token_hash_pepper))
        if request is None:
            raise NotFoundError("SchedulingRequest", message="Scheduling link not found")
        return request

    async def _load_request(self, uow: UnitOfWork, request_id: str) -> SchedulingRequest:
        request = (await uow.requests.get(request_id)).unwrap_or(None)
        if request is None:
            raise NotFoundError("SchedulingRequest", request_id)
        return request

    def _ensure_pending(self, request: SchedulingRequest, now: datetime) -> None:
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError(
                f"Scheduling request is {request.status}", current_status=request.status
            )
        if is_token_expired(request.expires_at, now):
            raise ExpiredError("This scheduling link has expired")

    async def _compute_slots(
        self,
        uow: UnitOfWork,
        request: SchedulingRequest,
        now: datetime,
        *,
        exclude_booking_id: Optional[str] = None,
        max_slots: Optional[int] = None,
    ) -> List[AvailableSlot]:
        """Fresh free/busy plus live bookings, fed through the slot generator."""
        emails = list(request.interviewer_emails)
        query_start = max(request.window_start, now)
        if query_start >= request.window_end:
            return []
        availability = await self._calendar_call(
            self._calendar.get_free_busy(emails, query_start, request.window_end)
        )
        booked = await uow.bookings.list_live_in_range(
            query_start, request.window_end, emails, exclude_booking_id=exclude_booking_id
        )
        constraints = SlotConstraints(
            duration_minutes=request.duration_minutes,
            window_start=request.window_start,
            window_end=request.window_end,
            interviewer_emails=tuple(emails),
            candidate_timezone=request.candidate_timezone,
        )
        return generate_available_slots(constraints, availability, booked, now=now, max_slots=max_slots)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _validate_create(self, data: CreateRequestInput) -> List[str]:
        if not (data.candidate_name or "").strip():
            raise ValidationError("Candidate name is required", field="candidate_name")
        if "@" not in (data.candidate_email or ""):
            raise ValidationError("Candidate email is invalid", field="candidate_email")
        interviewers = _clean_emails(data.interviewer_emails)
        if not interviewers:
            raise ValidationError("At least one interviewer is required", field="interviewer_emails")
        if data.duration_minutes <= 0:
            raise ValidationError("Duration must be positive", field="duration_minutes")
        if normalize_to_utc(data.window_end) <= normalize_to_utc(data.window_start):
            raise ValidationError("Window end must be after window start", field="window_end")
        if not is_valid_timezone(data.candidate_timezone):
            raise ValidationError(
                f"Invalid timezone: {data.candidate_timezone}", field="candidate_timezone"
            )
        return interviewers

    async def create_request(
        self, data: CreateRequestInput, *, created_by: Optional[str] = None
    ) -> CreateRequestResult:
        interviewers = self._validate_create(data)
        now = self._now()
        token = generate_public_token()
        expires_at = token_expiry(now, self._config.public_link_ttl_days)

        async with self._uow() as uow:
            request = SchedulingRequest(
                application_id=data.application_id,
                candidate_name=data.candidate_name.strip(),
                candidate_email=data.candidate_email.strip(),
                requisition_id=data.requisition_id,
                requisition_title=data.requisition_title,
                interview_type=data.interview_type,
                duration_minutes=data.duration_minutes,
                interviewer_emails=interviewers,
                organizer_email=data.organizer_email or self._config.organizer_email,
                window_start=normalize_to_utc(data.window_start),
                window_end=normalize_to_utc(data.window_end),
                candidate_timezone=data.candidate_timezone,
                public_token_hash=hash_token(token, self._config.token_hash_pepper),
                expires_at=expires_at,
                status=RequestStatus.PENDING,
                created_by=created_by,
            )
            (await uow.requests.add(request)).unwrap()
            await log_audit_action(
                uow,
                "link_created",
                actor=AuditActor.coordinator(created_by),
                request_id=request.id,
                payload={
                    "candidate_email": request.candidate_email,
                    "interviewer_emails": interviewers,
                    "window_start": to_iso_utc(request.window_start),
                    "window_end": to_iso_utc(request.window_end),
                    "expires_at": to_iso_utc(expires_at),
                },
            )
            await uow.commit()

        public_link = build_public_link(self._config.public_base_url, token)
        logger.info("scheduling.request.created", extra={"request_id": request.id})

        await self._best_effort(
            "ats_link_created",
            self._writeback.write_link_created_note(
                LinkCreatedNote(
                    scheduling_request_id=request.id,
                    application_id=request.application_id,
                    public_link=public_link,
                    interviewer_emails=tuple(interviewers),
                    organizer_email=request.organizer_email,
                    interview_type=request.interview_type,
                    duration_minutes=request.duration_minutes,
                    window_start=request.window_start,
                    window_end=request.window_end,
                    candidate_timezone=request.candidate_timezone,
                )
            ),
            request_id=request.id,
        )
        await self._best_effort(
            "notify_link",
            self._notifications.enqueue_self_schedule_link_notification(request, public_link),
            request_id=request.id,
        )
        return CreateRequestResult(request_id=request.id, public_link=public_link, expires_at=expires_at)

    # ------------------------------------------------------------------
    # Public (token) operations
    # ------------------------------------------------------------------

    async def get_available_slots(self, token: str) -> SlotsResult:
        now = self._now()
        async with self._uow() as uow:
            request = await self._resolve_token(uow, token)
            self._ensure_pending(request, now)
            slots = await self._compute_slots(uow, request, now, max_slots=self._config.slot_max_results)
            await log_audit_action(
                uow,
                "slots_viewed",
                actor=AuditActor.candidate(),
                request_id=request.id,
                payload={"slot_count": len(slots)},
            )
            await uow.commit()
            return SlotsResult(request=_summary(request), slots=slots, timezone=request.candidate_timezone)

    async def book_slot(self, token: str, slot_id: str) -> BookResult:
        now = self._now()
        async with self._uow() as uow:
            request = await self._resolve_token(uow, token)
            existing = await uow.bookings.get_by_request_id(request.id)
            if existing is not None and existing.is_live:
                raise ConflictError("An interview is already booked for this request")
            self._ensure_pending(request, now)

            slots = await self._compute_slots(uow, request, now)
            slot = find_slot(slots, slot_id)
            if slot is None:
                raise ValidationError("Selected slot is no longer available", field="slot_id")

            created = await self._calendar_call(
                self._calendar.create_event(
                    request.organizer_email,
                    build_event_payload(request, slot.start, slot.end, slot.available_interviewers),
                )
            )

            # Re-validate now that time has passed during the calendar call.
            request_ref, organizer = request.id, request.organizer_email
            await uow.refresh(request)
            conflict = request.status != RequestStatus.PENDING or (
                await uow.bookings.get_by_request_id(request.id)
            ) is not None
            if not conflict:
                clashing = await uow.bookings.list_live_in_range(
                    slot.start, slot.end, slot.available_interviewers
                )
                busy = {email for interval in clashing for email in interval.interviewer_emails}
                conflict = all(email.lower() in busy for email in slot.available_interviewers)

            booking: Optional[Booking] = None
            if not conflict:
                booking = Booking(
                    request_id=request.id,
                    scheduled_start=slot.start,
                    scheduled_end=slot.end,
                    calendar_event_id=created.event_id,
                    calendar_ical_uid=created.ical_uid,
                    conference_join_url=created.join_url,
                    status=BookingStatus.CONFIRMED,
                    confirmed_at=now,
                    booked_by=AuditActor.candidate().type,
                )
                result = await uow.bookings.add(booking)
                if result.is_failure():
                    await uow.rollback()
                    await self._release_event(request_ref, organizer, created.event_id)
                    if not result.error.constraint_violation:
                        result.unwrap()
                    booking = None
            else:
                await uow.rollback()
                await self._release_event(request_ref, organizer, created.event_id)

            if booking is None:
                logger.info("scheduling.book.conflict", extra={"request_id": request_ref})
                BOOKINGS_TOTAL.labels(outcome="conflict").inc()
                raise ConflictError("This request was booked by a concurrent submission")

            request.status = RequestStatus.BOOKED
            await log_audit_action(
                uow,
                "booked",
                actor=AuditActor.candidate(),
                request_id=request.id,
                booking_id=booking.id,
                payload={
                    "slot_id": slot.slot_id,
                    "start": to_iso_utc(slot.start),
                    "end": to_iso_utc(slot.end),
                    "interviewers": list(slot.available_interviewers),
                    "calendar_event_id": created.event_id,
                },
            )
            await uow.commit()

        logger.info("scheduling.book.confirmed", extra={"request_id": request.id, "booking_id": booking.id})
        BOOKINGS_TOTAL.labels(outcome="confirmed").inc()
        await self._after_booked(request, booking, now)
        return BookResult(
            success=True,
            booking=booking_summary(booking),
            message="Your interview has been scheduled",
        )

    async def _release_event(self, request_id: str, organizer_email: str, event_id: str) -> None:
        await self._best_effort(
            "calendar_release",
            self._calendar_call(self._calendar.cancel_event(organizer_email, event_id, "Booking superseded")),
            request_id=request_id,
        )

    async def _after_booked(self, request: SchedulingRequest, booking: Booking, now: datetime) -> None:
        await self._best_effort(
            "notify_confirmation",
            self._notifications.enqueue_booking_confirmation_notification(request, booking),
            booking_id=booking.id,
        )
        await self._best_effort(
            "notify_reminders",
            self._notifications.enqueue_reminder_notifications(request, booking, now=now),
            booking_id=booking.id,
        )
        await self._best_effort(
            "ats_booked",
            self._writeback.write_booked_note(
                BookedNote(
                    scheduling_request_id=request.id,
                    booking_id=booking.id,
                    application_id=request.application_id,
                    interviewer_emails=tuple(request.interviewer_emails),
                    organizer_email=request.organizer_email,
                    scheduled_start=booking.scheduled_start,
                    scheduled_end=booking.scheduled_end,
                    candidate_timezone=request.candidate_timezone,
                    calendar_event_id=booking.calendar_event_id,
                    join_url=booking.conference_join_url,
                )
            ),
            booking_id=booking.id,
        )

    # ------------------------------------------------------------------
    # Coordinator operations
    # ------------------------------------------------------------------

    async def _load_live_booking(self, uow: UnitOfWork, request: SchedulingRequest) -> Booking:
        booking = await uow.bookings.get_by_request_id(request.id)
        if booking is None or not booking.is_live:
            raise InvalidStateError("Request has no active booking", current_status=request.status)
        return booking

    async def get_reschedule_slots(self, request_id: str) -> SlotsResult:
        now = self._now()
        async with self._uow() as uow:
            request = await self._load_request(uow, request_id)
            if request.status not in RESCHEDULABLE:
                raise InvalidStateError(
                    f"Cannot reschedule a {request.status} request", current_status=request.status
                )
            booking = await self._load_live_booking(uow, request)
            slots = await self._compute_slots(
                uow,
                request,
                now,
                exclude_booking_id=booking.id,
                max_slots=self._config.slot_max_results,
            )
            return SlotsResult(request=_summary(request), slots=slots, timezone=request.candidate_timezone)

    async def reschedule(
        self,
        request_id: str,
        new_start: datetime,
        *,
        reason: Optional[str] = None,
        candidate_timezone: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> RescheduleResult:
        now = self._now()
        actor = AuditActor.coordinator(actor_id)
        if candidate_timezone is not None and not is_valid_timezone(candidate_timezone):
            raise ValidationError(f"Invalid timezone: {candidate_timezone}", field="candidate_timezone")

        async with self._uow() as uow:
            request = await self._load_request(uow, request_id)
            if request.status not in RESCHEDULABLE:
                raise InvalidStateError(
                    f"Cannot reschedule a {request.status} request", current_status=request.status
                )
            booking = await self._load_live_booking(uow, request)

            start = normalize_to_utc(new_start)
            if not is_slot_aligned(start):
                raise ValidationError(
                    "New start time must be aligned to a 15-minute boundary", field="new_start"
                )
            end = start + timedelta(minutes=request.duration_minutes)
            if start < request.window_start or end > request.window_end:
                raise ValidationError(
                    "New time must fall within the scheduling window", field="new_start"
                )

            slots = await self._compute_slots(uow, request, now, exclude_booking_id=booking.id)
            slot = find_slot_starting_at(slots, start)
            if slot is None:
                raise ValidationError("Requested time is not available", field="new_start")

            old_start, old_end = booking.scheduled_start, booking.scheduled_end
            tz_name = candidate_timezone or request.candidate_timezone
            try:
                if booking.calendar_event_id:
                    await self._calendar_call(
                        self._calendar.update_event(
                            request.organizer_email,
                            booking.calendar_event_id,
                            EventUpdate(start=slot.start, end=slot.end, timezone=tz_name),
                        )
                    )
                else:
                    created = await self._calendar_call(
                        self._calendar.create_event(
                            request.organizer_email,
                            build_event_payload(request, slot.start, slot.end, slot.available_interviewers),
                        )
                    )
                    booking.calendar_event_id = created.event_id
                    booking.calendar_ical_uid = created.ical_uid
                    booking.conference_join_url = created.join_url
            except CollaboratorError as exc:
                await log_audit_action(
                    uow,
                    "rescheduled",
                    actor=actor,
                    request_id=request.id,
                    booking_id=booking.id,
                    payload={"error": True, "message": str(exc), "new_start": to_iso_utc(start)},
                )
                await uow.commit()
                logger.warning("scheduling.reschedule.calendar_failed", extra={"request_id": request.id})
                raise

            booking.scheduled_start = slot.start
            booking.scheduled_end = slot.end
            booking.status = BookingStatus.RESCHEDULED
            request.status = RequestStatus.RESCHEDULED
            request.candidate_timezone = tz_name
            await log_audit_action(
                uow,
                "rescheduled",
                actor=actor,
                request_id=request.id,
                booking_id=booking.id,
                payload={
                    "old_start": to_iso_utc(old_start),
                    "old_end": to_iso_utc(old_end),
                    "new_start": to_iso_utc(slot.start),
                    "new_end": to_iso_utc(slot.end),
                    "reason": reason,
                },
            )
            await uow.commit()

        logger.info("scheduling.reschedule.done", extra={"request_id": request.id, "booking_id": booking.id})
        await self._best_effort(
            "cancel_reminders", self._notifications.cancel_pending_reminders(booking.id), booking_id=booking.id
        )
        await self._best_effort(
            "notify_reminders",
            self._notifications.enqueue_reminder_notifications(request, booking, now=now),
            booking_id=booking.id,
        )
        await self._best_effort(
            "notify_reschedule",
            self._notifications.enqueue_reschedule_confirmation_notification(
                request, booking, old_start=old_start, old_end=old_end, reason=reason, now=now
            ),
            booking_id=booking.id,
        )
        await self._best_effort(
            "ats_rescheduled",
            self._writeback.write_rescheduled_note(
                RescheduledNote(
                    scheduling_request_id=request.id,
                    booking_id=booking.id,
                    application_id=request.application_id,
                    interviewer_emails=tuple(request.interviewer_emails),
                    organizer_email=request.organizer_email,
                    old_start=old_start,
                    old_end=old_end,
                    new_start=booking.scheduled_start,
                    new_end=booking.scheduled_end,
                    candidate_timezone=request.candidate_timezone,
                    calendar_event_id=booking.calendar_event_id,
                    reason=reason,
                )
            ),
            booking_id=booking.id,
        )
        return RescheduleResult(
            status=request.status,
            booking_id=booking.id,
            start=booking.scheduled_start,
            end=booking.scheduled_end,
            calendar_event_id=booking.calendar_event_id,
            join_url=booking.conference_join_url,
        )

    async def cancel(
        self,
        request_id: str,
        reason: str,
        *,
        notify_participants: bool = True,
        actor_id: Optional[str] = None,
    ) -> CancelResult:
        now = self._now()
        actor = AuditActor.coordinator(actor_id)
        async with self._uow() as uow:
            request = await self._load_request(uow, request_id)
            if request.status not in CANCELLABLE:
                raise InvalidStateError(
                    f"Cannot cancel a {request.status} request", current_status=request.status
                )
            booking = await uow.bookings.get_by_request_id(request.id)
            live = booking if booking is not None and booking.is_live else None

            if live is not None and live.calendar_event_id:
                try:
                    await self._calendar_call(
                        self._calendar.cancel_event(request.organizer_email, live.calendar_event_id, reason)
                    )
                except CollaboratorError as exc:
                    await log_audit_action(
                        uow,
                        "cancelled",
                        actor=actor,
                        request_id=request.id,
                        booking_id=live.id,
                        payload={"error": True, "message": str(exc), "reason": reason},
                    )
                    await uow.commit()
                    logger.warning("scheduling.cancel.calendar_failed", extra={"request_id": request.id})
                    raise

            if live is not None:
                live.status = BookingStatus.CANCELLED
                live.cancelled_at = now
                live.cancellation_reason = reason
            request.status = RequestStatus.CANCELLED
            await log_audit_action(
                uow,
                "cancelled",
                actor=actor,
                request_id=request.id,
                booking_id=live.id if live else None,
                payload={"reason": reason, "notify_participants": notify_participants},
            )
            await uow.commit()

        logger.info("scheduling.cancel.done", extra={"request_id": request.id})
        cancelled_by = actor_id or actor.type
        if live is not None:
            await self._best_effort(
                "cancel_reminders", self._notifications.cancel_pending_reminders(live.id), booking_id=live.id
            )
        await self._best_effort(
            "ats_cancelled",
            self._writeback.write_cancelled_note(
                CancelledNote(
                    scheduling_request_id=request.id,
                    booking_id=live.id if live else None,
                    application_id=request.application_id,
                    interviewer_emails=tuple(request.interviewer_emails),
                    organizer_email=request.organizer_email,
                    reason=reason,
                    cancelled_by=cancelled_by,
                )
            ),
            request_id=request.id,
        )
        if notify_participants:
            await self._best_effort(
                "notify_cancel",
                self._notifications.enqueue_cancel_notice_notification(
                    request, reason=reason, cancelled_by=cancelled_by
                ),
                request_id=request.id,
            )
        return CancelResult(
            status=request.status,
            cancelled_at=now,
            calendar_event_id=live.calendar_event_id if live else None,
        )

    async def resend_link(self, request_id: str, *, actor_id: Optional[str] = None) -> ResendLinkResult:
        """Rotate the public token; the previous link stops resolving."""
        now = self._now()
        token = generate_public_token()
        async with self._uow() as uow:
            request = await self._load_request(uow, request_id)
            if request.status != RequestStatus.PENDING:
                raise InvalidStateError(
                    f"Cannot resend a link for a {request.status} request", current_status=request.status
                )
            request.public_token_hash = hash_token(token, self._config.token_hash_pepper)
            request.expires_at = token_expiry(now, self._config.public_link_ttl_days)
            await log_audit_action(
                uow,
                "link_resent",
                actor=AuditActor.coordinator(actor_id),
                request_id=request.id,
                payload={"expires_at": to_iso_utc(request.expires_at)},
            )
            await uow.commit()

        public_link = build_public_link(self._config.public_base_url, token)
        job = await self._best_effort(
            "notify_link_resend",
            self._notifications.enqueue_resend_self_schedule_link(request, public_link, now=now),
            request_id=request.id,
        )
        return ResendLinkResult(
            request_id=request.id,
            public_link=public_link,
            expires_at=request.expires_at,
            notification_id=job.id if job is not None else None,
        )

    async def resend_confirmation(self, request_id: str, *, actor_id: Optional[str] = None) -> str:
        """Queue another confirmation email; returns the notification job id."""
        now = self._now()
        async with self._uow() as uow:
            request = await self._load_request(uow, request_id)
            booking = await self._load_live_booking(uow, request)
            await log_audit_action(
                uow,
                "confirmation_resent",
                actor=AuditActor.coordinator(actor_id),
                request_id=request.id,
                booking_id=booking.id,
            )
            await uow.commit()
        job = await self._notifications.enqueue_resend_booking_confirmation(request, booking, now=now)
        return job.id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_request(self, request_id: str) -> RequestDetails:
        async with self._uow() as uow:
            request = await self._load_request(uow, request_id)
            booking = await uow.bookings.get_by_request_id(request.id)
        return RequestDetails(
            request_id=request.id,
            status=request.status,
            candidate_name=request.candidate_name,
            candidate_email=request.candidate_email,
            application_id=request.application_id,
            requisition_title=request.requisition_title,
            interview_type=request.interview_type,
            duration_minutes=request.duration_minutes,
            interviewer_emails=tuple(request.interviewer_emails),
            organizer_email=request.organizer_email,
            window_start=request.window_start,
            window_end=request.window_end,
            candidate_timezone=request.candidate_timezone,
            expires_at=request.expires_at,
            needs_attention=request.needs_attention,
            needs_attention_reason=request.needs_attention_reason,
            created_at=request.created_at,
            booking=booking_summary(booking) if booking is not None else None,
        )

    async def get_booking(self, booking_id: str) -> BookingSummary:
        async with self._uow() as uow:
            booking = (await uow.bookings.get(booking_id)).unwrap_or(None)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking_summary(booking)


__all__ = [
    "SchedulingConfig",
    "SchedulingService",
    "booking_summary",
    "build_event_payload",
]
