from datetime import datetime, timedelta, timezone

from schedulehub.domain.scheduling.slots import (
    find_slot,
    find_slot_starting_at,
    generate_available_slots,
    generate_slot_id,
    is_within_working_hours,
    score_slot,
)
from schedulehub.domain.scheduling.types import SlotConstraints
from schedulehub.integrations.calendar.base import BusyInterval, InterviewerAvailability, WorkingHours
from schedulehub.repositories.bookings import BookedInterval

# Monday
WINDOW_START = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
ALL_DAY = WorkingHours(start="00:00", end="23:59", days_of_week=(1, 2, 3, 4, 5, 6, 7))


def _constraints(hours=3, duration=60, emails=("alice@example.com",)):
    return SlotConstraints(
        duration_minutes=duration,
        window_start=WINDOW_START,
        window_end=WINDOW_START + timedelta(hours=hours),
        interviewer_emails=tuple(emails),
        candidate_timezone="America/New_York",
    )


def _free(email="alice@example.com", busy=(), working_hours=ALL_DAY):
    return InterviewerAvailability(email=email, busy_intervals=tuple(busy), working_hours=working_hours)


def test_slots_are_aligned_and_end_inside_window():
    slots = generate_available_slots(_constraints(), [_free()], now=NOW)

    assert slots
    assert slots[0].start == WINDOW_START
    assert all(slot.start.minute % 15 == 0 for slot in slots)
    assert all(slot.end <= WINDOW_START + timedelta(hours=3) for slot in slots)
    # 09:00 .. 11:00 inclusive in 15 minute steps
    assert len(slots) == 9
    assert [s.start for s in slots] == sorted(s.start for s in slots)


def test_generation_starts_from_next_boundary_after_now():
    now = WINDOW_START + timedelta(minutes=7)
    slots = generate_available_slots(_constraints(), [_free()], now=now)

    assert slots[0].start == WINDOW_START + timedelta(minutes=15)


def test_busy_interval_excludes_overlapping_slots():
    busy = BusyInterval(start=WINDOW_START + timedelta(hours=1), end=WINDOW_START + timedelta(hours=2))
    slots = generate_available_slots(_constraints(), [_free(busy=[busy])], now=NOW)

    starts = {slot.start for slot in slots}
    assert WINDOW_START in starts
    assert WINDOW_START + timedelta(minutes=15) not in starts
    assert WINDOW_START + timedelta(hours=1, minutes=30) not in starts
    assert WINDOW_START + timedelta(hours=2) in starts


def test_slot_kept_when_any_interviewer_is_free():
    emails = ("alice@example.com", "bob@example.com")
    busy = BusyInterval(start=WINDOW_START, end=WINDOW_START + timedelta(hours=3))
    slots = generate_available_slots(
        _constraints(emails=emails),
        [_free("alice@example.com", busy=[busy]), _free("bob@example.com")],
        now=NOW,
    )

    assert slots
    assert all(slot.available_interviewers == ("bob@example.com",) for slot in slots)
    assert "1/2 interviewers available" in slots[0].rationale


def test_interviewer_missing_from_availability_is_never_free():
    emails = ("alice@example.com", "ghost@example.com")
    slots = generate_available_slots(_constraints(emails=emails), [_free("alice@example.com")], now=NOW)

    assert all("ghost@example.com" not in slot.available_interviewers for slot in slots)
    assert generate_available_slots(_constraints(emails=("ghost@example.com",)), [], now=NOW) == []


def test_live_bookings_block_their_interviewers():
    booked = [
        BookedInterval(
            booking_id="b-1",
            start=WINDOW_START,
            end=WINDOW_START + timedelta(hours=1),
            interviewer_emails=("alice@example.com",),
        )
    ]
    slots = generate_available_slots(_constraints(), [_free()], booked, now=NOW)

    assert slots[0].start == WINDOW_START + timedelta(hours=1)


def test_working_hours_are_checked_in_interviewer_timezone():
    hours = WorkingHours(start="09:00", end="17:00", timezone="America/New_York", days_of_week=(1, 2, 3, 4, 5))
    # 09:00 UTC is 04:00 in New York
    assert not is_within_working_hours(WINDOW_START, WINDOW_START + timedelta(hours=1), hours)
    later = WINDOW_START + timedelta(hours=5)
    assert is_within_working_hours(later, later + timedelta(hours=1), hours)
    saturday = WINDOW_START + timedelta(days=5, hours=5)
    assert not is_within_working_hours(saturday, saturday + timedelta(hours=1), hours)


def test_max_slots_caps_the_result():
    slots = generate_available_slots(_constraints(hours=8), [_free()], now=NOW, max_slots=3)
    assert len(slots) == 3

    unlimited = generate_available_slots(_constraints(hours=8), [_free()], now=NOW, max_slots=None)
    assert len(unlimited) == 29


def test_slot_id_is_stable_and_order_insensitive():
    end = WINDOW_START + timedelta(hours=1)
    first = generate_slot_id(WINDOW_START, end, ["Bob@example.com", "alice@example.com"])
    second = generate_slot_id(WINDOW_START, end, ["alice@example.com", "bob@example.com"])

    assert first == second
    assert len(first) == 16
    assert first != generate_slot_id(WINDOW_START, end + timedelta(minutes=15), ["alice@example.com"])


def test_find_helpers():
    slots = generate_available_slots(_constraints(), [_free()], now=NOW)

    assert find_slot(slots, slots[2].slot_id) is slots[2]
    assert find_slot(slots, "missing") is None
    assert find_slot_starting_at(slots, WINDOW_START + timedelta(minutes=30)) is slots[2]
    assert find_slot_starting_at(slots, WINDOW_START + timedelta(minutes=5)) is None


def test_display_times_use_candidate_timezone():
    slots = generate_available_slots(_constraints(), [_free()], now=NOW)

    assert slots[0].display_start == "Mon, Jan 7 at 4:00 AM EST"


def test_time_of_day_bonus_uses_candidate_timezone():
    # 14:00 UTC is 09:00 in New York in January; 09:00 UTC is 04:00 there.
    morning_in_new_york = WINDOW_START + timedelta(hours=5)
    _, local_rationale = score_slot(morning_in_new_york, 1, 1, now=NOW, tz_name="America/New_York")
    _, early_rationale = score_slot(WINDOW_START, 1, 1, now=NOW, tz_name="America/New_York")
    _, utc_rationale = score_slot(WINDOW_START, 1, 1, now=NOW)

    assert "Optimal time of day" in local_rationale
    assert "Optimal time of day" not in early_rationale
    assert "Optimal time of day" in utc_rationale

    slots = generate_available_slots(_constraints(hours=6), [_free()], now=NOW)
    by_start = {slot.start: slot for slot in slots}
    assert by_start[morning_in_new_york].score - by_start[WINDOW_START + timedelta(hours=4)].score > 5
