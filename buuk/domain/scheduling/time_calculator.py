"""Time parsing and slot arithmetic for the availability engine.

Everything here is pure: callers load rows and pass plain values in. Times are
business-local and expressed as minutes from midnight of the requested day.
"""

from datetime import date, datetime, time
from typing import Iterable, Optional

# Candidate start times are generated on a fixed 30-minute grid
SLOT_INTERVAL_MINUTES = 30

# Busy time assumed for a booking whose duration cannot be resolved
DEFAULT_BOOKING_DURATION_MINUTES = 60


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_hhmm(value: str) -> time:
    """Parse 'HH:MM' (or 'HH:MM:SS') into a time; raises ValueError on bad input"""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time format: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)


def parse_date(value: str) -> date:
    """Parse an ISO 'YYYY-MM-DD' date; raises ValueError on bad input"""
    return datetime.strptime(value, "%Y-%m-%d").date()


def day_of_week_index(day: date) -> int:
    """Weekday in the stored working-hours convention (0=Sunday ... 6=Saturday)"""
    return (day.weekday() + 1) % 7


def datetime_to_day_minutes(value: datetime, day: date) -> int:
    """Minutes of `value` relative to midnight of `day` (negative before, >1440 after)"""
    midnight = datetime.combine(day, time.min)
    return int((value - midnight).total_seconds() // 60)


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open interval overlap: touching endpoints do not conflict"""
    return a_start < b_end and a_end > b_start


def generate_candidate_slots(
    work_start: time, work_end: time, interval: int = SLOT_INTERVAL_MINUTES
) -> list[int]:
    """Grid start times in [work_start, work_end)"""
    start = time_to_minutes(work_start)
    end = time_to_minutes(work_end)
    return list(range(start, end, interval))


def booking_busy_interval(
    start_time: time,
    duration_minutes: Optional[int],
    buffer_before: int = 0,
    buffer_after: int = 0,
) -> tuple[int, int]:
    """
    Busy interval of an existing booking.

    The booking occupies [start, start + duration + buffer_before + buffer_after);
    an unknown duration counts as DEFAULT_BOOKING_DURATION_MINUTES.
    """
    duration = duration_minutes or DEFAULT_BOOKING_DURATION_MINUTES
    start = time_to_minutes(start_time)
    return start, start + duration + buffer_before + buffer_after


def filter_available_slots(
    day: date,
    work_start: time,
    work_end: time,
    total_duration: int,
    time_blocks: Iterable[tuple[datetime, datetime]] = (),
    busy_intervals: Iterable[tuple[int, int]] = (),
    interval: int = SLOT_INTERVAL_MINUTES,
) -> list[str]:
    """
    Return the bookable 'HH:MM' start times for one specialist on one day.

    A candidate [slot, slot + total_duration) is dropped when it overlaps any time
    block or any busy interval. Results are in chronological order.
    """
    blocks = [
        (datetime_to_day_minutes(start, day), datetime_to_day_minutes(end, day))
        for start, end in time_blocks
    ]
    busy = list(busy_intervals)

    available = []
    for slot_start in generate_candidate_slots(work_start, work_end, interval):
        slot_end = slot_start + total_duration
        if any(intervals_overlap(slot_start, slot_end, b_start, b_end) for b_start, b_end in blocks):
            continue
        if any(intervals_overlap(slot_start, slot_end, b_start, b_end) for b_start, b_end in busy):
            continue
        available.append(minutes_to_hhmm(slot_start))
    return available
