"""
Availability search for task scheduling.

Finds free gaps between a day's concrete events (recurring series already
expanded) and offers one slot of the requested duration per gap, snapped to
a 15-minute grid. The current time is always passed in so results are
deterministic.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional

from django.utils import timezone

from .exceptions import SlotValidationError
from .models import Calendar
from .recurrence import instances_in_range
from .store import EventStore, default_store
from .types import (
    SEARCH_HORIZON_DAYS,
    SLOT_GRANULARITY_MINUTES,
    TimeSlot,
    end_of_day,
    start_of_day,
)

logger = logging.getLogger(__name__)


def snap_to_grid(value: datetime, minutes: int = SLOT_GRANULARITY_MINUTES) -> datetime:
    """Round ``value`` up to the next ``minutes`` boundary (unchanged if already on one)."""
    value = timezone.localtime(value)
    floored = value.replace(
        minute=value.minute - value.minute % minutes,
        second=0,
        microsecond=0
    )
    if floored == value:
        return value
    return floored + timedelta(minutes=minutes)


def _validate_duration(duration_minutes) -> None:
    if duration_minutes is None or duration_minutes <= 0:
        raise SlotValidationError("Duration must be positive")


def find_available_slots(
    day: date,
    duration_minutes: int,
    events: Iterable,
    now: Optional[datetime] = None
) -> List[TimeSlot]:
    """
    Find free slots of ``duration_minutes`` on ``day``.

    Args:
        day: the calendar day to search
        duration_minutes: requested slot length
        events: the day's concrete events (anything with start_time,
                end_time and all_day); all-day events are ignored
        now: current time, defaults to ``timezone.now()``

    Returns:
        At most one TimeSlot per gap: before the first event, between
        consecutive events, and after the last event until end of day.
        An empty list when nothing fits.

    Raises:
        SlotValidationError: If duration_minutes is not positive
    """
    _validate_duration(duration_minutes)
    if now is None:
        now = timezone.now()

    duration = timedelta(minutes=duration_minutes)
    day_start = start_of_day(day)
    day_end = end_of_day(day_start)

    is_today = timezone.localdate(now) == day
    earliest = snap_to_grid(now if is_today and now > day_start else day_start)

    timed_events = sorted(
        (event for event in events if not event.all_day),
        key=lambda event: event.start_time
    )

    if not timed_events:
        return [TimeSlot(start=earliest, end=earliest + duration)]

    slots = []

    first_start = timed_events[0].start_time
    if first_start > earliest and first_start - earliest >= duration:
        slots.append(TimeSlot(start=earliest, end=earliest + duration))

    # Running maximum, so nested or overlapping events never leave a false gap.
    busy_until = timed_events[0].end_time
    for following in timed_events[1:]:
        if busy_until < following.start_time:
            gap_start = snap_to_grid(max(busy_until, earliest))
            if following.start_time - gap_start >= duration:
                slots.append(TimeSlot(start=gap_start, end=gap_start + duration))
        busy_until = max(busy_until, following.end_time)

    if busy_until < day_end:
        gap_start = snap_to_grid(max(busy_until, earliest))
        if day_end - gap_start >= duration:
            slots.append(TimeSlot(start=gap_start, end=gap_start + duration))

    return slots


def _visible_calendar_ids() -> List[int]:
    return list(Calendar.objects.visible().values_list('id', flat=True))


def _day_bounds(day: date):
    return start_of_day(day), start_of_day(day + timedelta(days=1))


def _instances_for_day(events: Iterable, day: date) -> List:
    day_start, day_end = _day_bounds(day)

    instances = []
    for event in events:
        instances.extend(instances_in_range(event, day_start, day_end))
    return instances


def collect_day_events(
    day: date,
    calendar_ids: Optional[Iterable[int]] = None,
    store: EventStore = default_store
) -> List:
    """
    Concrete events of ``day``: single events, series masters and projected
    occurrences whose interval intersects the day.

    Args:
        day: the calendar day
        calendar_ids: calendars to include, defaults to all visible calendars
        store: event store to read from
    """
    if calendar_ids is None:
        calendar_ids = _visible_calendar_ids()
    day_start, day_end = _day_bounds(day)
    return _instances_for_day(store.list(calendar_ids, day_start, day_end), day)


def find_next_free_slot(
    duration_minutes: int,
    calendar_ids: Optional[Iterable[int]] = None,
    clock: Callable[[], datetime] = timezone.now,
    store: EventStore = default_store,
    horizon_days: int = SEARCH_HORIZON_DAYS
) -> Optional[TimeSlot]:
    """
    Find the first free slot from now on, searching ``horizon_days`` days.

    Args:
        duration_minutes: requested slot length
        calendar_ids: calendars whose events block time, defaults to all
                      visible calendars
        clock: callable returning the current aware datetime
        store: event store to read from
        horizon_days: number of days to search, today included

    Returns:
        TimeSlot, or None if every day of the horizon is booked

    Raises:
        SlotValidationError: If duration_minutes is not positive
    """
    _validate_duration(duration_minutes)

    now = clock()
    today = timezone.localdate(now)
    if calendar_ids is None:
        calendar_ids = _visible_calendar_ids()
    events = store.list(
        calendar_ids,
        start_of_day(today),
        start_of_day(today + timedelta(days=horizon_days))
    )

    for offset in range(horizon_days):
        day = today + timedelta(days=offset)
        day_events = _instances_for_day(events, day)
        slots = [
            slot for slot in find_available_slots(day, duration_minutes, day_events, now=now)
            if slot.start > now
        ]
        if slots:
            logger.debug("Next free %d-minute slot: %s", duration_minutes, slots[0].start)
            return slots[0]

    logger.debug("No free %d-minute slot in the next %d days", duration_minutes, horizon_days)
    return None
