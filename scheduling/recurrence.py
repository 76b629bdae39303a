"""
Recurrence expansion for series master events.

A recurring series is stored once, as a master CalendarEvent with a
RecurrencePattern. This module projects the master into concrete
occurrences on demand and provides the stepping functions that the
series mutations use to find neighbouring occurrences.

All date arithmetic happens on wall-clock time in the current Django time
zone, so a 10:00 weekly meeting stays at 10:00 across DST changes.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from django.utils import timezone
from django.utils.dateparse import parse_date

from .exceptions import DegeneratePatternError, EventNotFoundError, PatternValidationError
from .types import (
    MAX_EXPANSION_ITERATIONS,
    OCCURRENCE_ID_MARKER,
    EventReference,
    ExpansionResult,
    Occurrence,
    PersistedEvent,
    ProjectedOccurrence,
    RecurrenceFrequency,
    RecurrencePattern,
)

logger = logging.getLogger(__name__)


_FIXED_STEP_DAYS = {
    RecurrenceFrequency.DAILY: 1,
    RecurrenceFrequency.WEEKLY: 7,
    RecurrenceFrequency.BIWEEKLY: 14,
}


def _step(pattern: RecurrencePattern) -> relativedelta:
    """Distance between two consecutive occurrences of ``pattern``."""
    interval = pattern.interval
    if pattern.frequency == RecurrenceFrequency.DAILY:
        return relativedelta(days=interval)
    if pattern.frequency == RecurrenceFrequency.WEEKLY:
        return relativedelta(weeks=interval)
    if pattern.frequency == RecurrenceFrequency.BIWEEKLY:
        return relativedelta(weeks=2 * interval)
    if pattern.frequency == RecurrenceFrequency.MONTHLY:
        return relativedelta(months=interval)
    if pattern.frequency == RecurrenceFrequency.YEARLY:
        return relativedelta(years=interval)
    raise PatternValidationError(f"Unknown recurrence frequency: {pattern.frequency}")


def next_occurrence(occurrence_start: datetime, pattern: RecurrencePattern) -> datetime:
    """Start of the occurrence following ``occurrence_start``."""
    return timezone.localtime(occurrence_start) + _step(pattern)


def previous_occurrence(occurrence_start: datetime, pattern: RecurrencePattern) -> datetime:
    """Start of the occurrence preceding ``occurrence_start``."""
    return timezone.localtime(occurrence_start) - _step(pattern)


def js_weekday(value: datetime) -> int:
    """Weekday index with 0 = Sunday, as used by ``days_of_week``."""
    return value.isoweekday() % 7


def _matches_days_of_week(cursor: datetime, pattern: RecurrencePattern) -> bool:
    # Only weekly patterns filter by weekday. The cursor moves in whole
    # interval-week blocks, so the filter never looks at other days of a block.
    if pattern.frequency != RecurrenceFrequency.WEEKLY or not pattern.days_of_week:
        return True
    return js_weekday(cursor) in pattern.days_of_week


def _fast_forward(first: datetime, pattern: RecurrencePattern, range_start: datetime) -> datetime:
    """
    Move the cursor to just before ``range_start`` for fixed-length steps.

    Monthly and yearly steps clamp to month ends cumulatively, so they are
    always walked from the first occurrence.
    """
    step_days = _FIXED_STEP_DAYS.get(pattern.frequency)
    if step_days is None or pattern.interval < 1 or range_start <= first:
        return first

    step_days *= pattern.interval
    skipped_steps = (range_start - first).days // step_days - 1
    if skipped_steps <= 0:
        return first
    return first + timedelta(days=skipped_steps * step_days)


def format_occurrence_id(master_id, occurrence_start: datetime) -> str:
    """Synthetic id ``{masterId}-recurrence-{YYYY-MM-DD}`` of a projected occurrence."""
    local_date = timezone.localtime(occurrence_start).date()
    return f"{master_id}{OCCURRENCE_ID_MARKER}{local_date.isoformat()}"


def parse_event_reference(raw) -> EventReference:
    """
    Decode an event id coming from a client.

    Args:
        raw: a stored event id, or a synthetic occurrence id

    Returns:
        PersistedEvent or ProjectedOccurrence

    Raises:
        EventNotFoundError: If the id cannot refer to any event
    """
    text = str(raw).strip()

    if OCCURRENCE_ID_MARKER in text:
        master_part, _, date_part = text.partition(OCCURRENCE_ID_MARKER)
        try:
            occurrence_date = parse_date(date_part) if date_part else None
        except ValueError:
            occurrence_date = None
        if not master_part.isdigit() or occurrence_date is None:
            raise EventNotFoundError(f"Invalid occurrence id: {text!r}")
        return ProjectedOccurrence(master_id=int(master_part), occurrence_date=occurrence_date)

    if not text.isdigit():
        raise EventNotFoundError(f"Invalid event id: {text!r}")
    return PersistedEvent(event_id=int(text))


def _project(event, start: datetime, duration: timedelta) -> Occurrence:
    return Occurrence(
        id=format_occurrence_id(event.pk, start),
        master_id=event.pk,
        title=event.title,
        description=event.description,
        location=event.location,
        calendar_id=event.calendar_id,
        start_time=start,
        end_time=start + duration,
        all_day=event.all_day,
    )


def expand_occurrences(
    event,
    range_start: datetime,
    range_end: datetime,
    pattern: Optional[RecurrencePattern] = None
) -> ExpansionResult:
    """
    Project a master event into the occurrences starting inside a window.

    The master's own first occurrence is not included; callers already hold
    the master itself.

    Args:
        event: master CalendarEvent
        range_start: window start (inclusive)
        range_end: window end (inclusive)
        pattern: pattern to use instead of the one stored on ``event``

    Returns:
        ExpansionResult. ``error`` holds a DegeneratePatternError when the
        stepping stopped advancing; ``occurrences`` then holds what was
        produced before that point.

    Raises:
        PatternValidationError: If the stored recurrence rule is invalid
    """
    if pattern is None:
        pattern = event.recurrence_pattern

    result = ExpansionResult()
    if pattern is None:
        return result

    duration = event.end_time - event.start_time
    if duration <= timedelta(0):
        logger.warning("Skipping expansion of event %s: non-positive duration", event.pk)
        return result

    first = timezone.localtime(event.start_time)
    if first > range_end:
        return result

    limit = range_end
    if pattern.end_date is not None and pattern.end_date < limit:
        limit = pattern.end_date

    step = _step(pattern)
    cursor = _fast_forward(first, pattern, range_start)
    iterations = 0

    while cursor <= limit:
        iterations += 1
        if iterations > MAX_EXPANSION_ITERATIONS:
            logger.warning(
                "Expansion of event %s stopped after %d iterations",
                event.pk, MAX_EXPANSION_ITERATIONS
            )
            result.truncated = True
            break

        if cursor != first and cursor >= range_start and _matches_days_of_week(cursor, pattern):
            result.occurrences.append(_project(event, cursor, duration))

        following = cursor + step
        if following <= cursor:
            result.error = DegeneratePatternError(
                f"Recurrence of event {event.pk} does not advance "
                f"({pattern.frequency.value}, interval {pattern.interval})"
            )
            logger.warning("%s", result.error)
            break
        cursor = following

    return result


def instances_in_range(event, range_start: datetime, range_end: datetime) -> List:
    """
    Everything of ``event`` that intersects ``[range_start, range_end)``.

    Returns the event itself when its own interval intersects the window,
    followed by projected occurrences whose interval intersects it. The
    expansion window is widened by the series duration so an occurrence that
    starts before the window but runs into it is included.
    """
    instances = []
    if event.start_time < range_end and event.end_time > range_start:
        instances.append(event)

    pattern = event.recurrence_pattern
    if pattern is None:
        return instances

    duration = event.end_time - event.start_time
    expansion = expand_occurrences(event, range_start - duration, range_end, pattern)
    instances.extend(
        occurrence for occurrence in expansion.occurrences
        if occurrence.start_time < range_end and occurrence.end_time > range_start
    )
    return instances


def expand_series(event, range_start: datetime, range_end: datetime) -> ExpansionResult:
    """
    Every occurrence of a series starting inside a window, the master's own
    first occurrence included.
    """
    result = expand_occurrences(event, range_start, range_end)

    first = timezone.localtime(event.start_time)
    if event.is_recurring and range_start <= first <= range_end:
        result.occurrences.insert(0, _project(event, first, event.end_time - event.start_time))
    return result


def find_occurrence(event, occurrence_start: datetime) -> Optional[Occurrence]:
    """The occurrence of ``event`` starting exactly at ``occurrence_start``, or None."""
    for occurrence in expand_series(event, occurrence_start, occurrence_start).occurrences:
        if occurrence.start_time == occurrence_start:
            return occurrence
    return None
