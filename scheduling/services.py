"""
Service layer for scheduling business logic.

Series mutations split, truncate and recompose master events through the
event store; every mutation runs inside one unit of work.
"""

import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Callable, Iterable, List, Optional, Tuple

from django.utils import timezone

from .availability import find_next_free_slot
from .exceptions import (
    CalendarNotFoundError,
    EventNotFoundError,
    InvalidOccurrenceError,
    PatternValidationError,
    ReadOnlyCalendarError,
    SchedulingValidationError,
)
from .models import Calendar, CalendarEvent, Task
from .recurrence import (
    find_occurrence,
    instances_in_range,
    next_occurrence,
    previous_occurrence,
)
from .store import EventStore, default_store
from .types import (
    EventChanges,
    EventCreateData,
    EventReference,
    PersistedEvent,
    ProjectedOccurrence,
    RecurrencePattern,
    SeriesMutationResult,
    end_of_day,
)

logger = logging.getLogger(__name__)


SCOPE_THIS = 'this'
SCOPE_FUTURE = 'future'
SCOPE_ALL = 'all'
SCOPES = (SCOPE_THIS, SCOPE_FUTURE, SCOPE_ALL)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_calendar(calendar_id: int) -> Calendar:
    try:
        return Calendar.objects.get(pk=calendar_id)
    except Calendar.DoesNotExist:
        raise CalendarNotFoundError(f"Calendar {calendar_id} does not exist")


def _ensure_writable(calendar: Calendar) -> None:
    if calendar.is_read_only:
        raise ReadOnlyCalendarError(f'Calendar "{calendar.name}" is read-only')


def _require_pattern(event: CalendarEvent) -> RecurrencePattern:
    pattern = event.recurrence_pattern
    if pattern is None:
        raise PatternValidationError(f"Event {event.pk} is not a recurring series")
    return pattern


def _validate_occurrence(event: CalendarEvent, occurrence_start: datetime) -> None:
    if timezone.localdate(occurrence_start) < timezone.localdate(event.start_time):
        raise InvalidOccurrenceError("Occurrence precedes the start of the series")
    if find_occurrence(event, occurrence_start) is None:
        raise InvalidOccurrenceError(
            f"Event {event.pk} has no occurrence at {occurrence_start.isoformat()}"
        )


def _validate_interval(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise SchedulingValidationError("End time must be after start time")


def _copy_event(
    event: CalendarEvent,
    start_time: datetime,
    end_time: datetime,
    pattern: Optional[RecurrencePattern]
) -> CalendarEvent:
    """Unsaved copy of ``event`` at a new position."""
    copy = CalendarEvent(
        title=event.title,
        description=event.description,
        location=event.location,
        calendar_id=event.calendar_id,
        start_time=start_time,
        end_time=end_time,
        all_day=event.all_day,
    )
    copy.recurrence_pattern = pattern
    return copy


def _apply_details(event: CalendarEvent, changes: EventChanges) -> None:
    """Copy the non-temporal fields of ``changes`` onto ``event``."""
    if changes.calendar_id is not None and changes.calendar_id != event.calendar_id:
        calendar = _get_calendar(changes.calendar_id)
        _ensure_writable(calendar)
        event.calendar = calendar

    fields = {
        'title': changes.title,
        'description': changes.description,
        'location': changes.location,
        'all_day': changes.all_day,
    }
    for field_name, value in fields.items():
        if value is not None:
            setattr(event, field_name, value)


def _changed_interval(
    changes: EventChanges,
    default_start: datetime,
    duration: timedelta
) -> Tuple[datetime, datetime]:
    start_time = changes.start_time or default_start
    end_time = changes.end_time or start_time + duration
    _validate_interval(start_time, end_time)
    return start_time, end_time


def _truncate_before_occurrence(
    store: EventStore,
    event: CalendarEvent,
    pattern: RecurrencePattern,
    occurrence_start: datetime
) -> bool:
    """
    End the series right before ``occurrence_start``.

    Returns:
        True if the master was deleted because the occurrence was its first
    """
    previous = previous_occurrence(occurrence_start, pattern)
    if previous < event.start_time:
        store.delete(event.pk)
        return True

    event.recurrence_pattern = pattern.with_end_date(end_of_day(previous))
    store.update(event)
    return False


def _truncate_from_day(
    store: EventStore,
    event: CalendarEvent,
    pattern: RecurrencePattern,
    occurrence_start: datetime
) -> bool:
    """
    End the series on the day before ``occurrence_start``.

    Returns:
        True if the master was deleted because the whole series was affected
    """
    if timezone.localdate(occurrence_start) == timezone.localdate(event.start_time):
        store.delete(event.pk)
        return True

    day_before = timezone.localtime(occurrence_start) - timedelta(days=1)
    event.recurrence_pattern = pattern.with_end_date(end_of_day(day_before))
    store.update(event)
    return False


def _continue_after_occurrence(
    store: EventStore,
    event: CalendarEvent,
    pattern: RecurrencePattern,
    occurrence_start: datetime
) -> Optional[CalendarEvent]:
    """Start a new master at the occurrence after ``occurrence_start``, if any remains."""
    following = next_occurrence(occurrence_start, pattern)
    if pattern.end_date is not None and following > pattern.end_date:
        return None

    continuation = _copy_event(event, following, following + event.duration, pattern)
    return store.create(continuation)


# ---------------------------------------------------------------------------
# Event references
# ---------------------------------------------------------------------------

def resolve_event_reference(
    reference: EventReference,
    store: EventStore = default_store
) -> Tuple[CalendarEvent, datetime]:
    """
    Load the stored event behind a reference.

    Args:
        reference: PersistedEvent or ProjectedOccurrence

    Returns:
        Tuple of (stored event, start of the referenced occurrence). For a
        persisted event the occurrence is the event itself.

    Raises:
        EventNotFoundError: If the event or series master does not exist, or
            the series has no occurrence on the referenced date
    """
    if isinstance(reference, PersistedEvent):
        event = store.get(reference.event_id)
        return event, event.start_time

    if isinstance(reference, ProjectedOccurrence):
        master = store.get(reference.master_id)
        if not master.is_recurring:
            raise EventNotFoundError(f"Event {master.pk} is not a recurring series")

        local_start = timezone.localtime(master.start_time)
        occurrence_start = timezone.make_aware(
            datetime.combine(reference.occurrence_date, local_start.time())
        )
        if find_occurrence(master, occurrence_start) is None:
            raise EventNotFoundError(
                f"Event {master.pk} has no occurrence on {reference.occurrence_date}"
            )
        return master, occurrence_start

    raise EventNotFoundError(f"Unsupported event reference: {reference!r}")


# ---------------------------------------------------------------------------
# Series mutations
# ---------------------------------------------------------------------------

def delete_occurrence(
    event: CalendarEvent,
    occurrence_start: datetime,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Delete a single occurrence of a series.

    The master is truncated to end on the previous occurrence (or deleted if
    the occurrence is the first one) and a continuation master is created
    from the next occurrence, unless the original end date is already past.

    Args:
        event: series master
        occurrence_start: start of the occurrence to remove

    Returns:
        SeriesMutationResult

    Raises:
        PatternValidationError: If the event is not a valid recurring series
        InvalidOccurrenceError: If occurrence_start is not an occurrence of the series
        ReadOnlyCalendarError: If the event belongs to an ICS calendar
        EventStoreError: If a write fails (all writes are rolled back)
    """
    _ensure_writable(event.calendar)
    pattern = _require_pattern(event)
    _validate_occurrence(event, occurrence_start)

    with store.atomic():
        deleted = _truncate_before_occurrence(store, event, pattern, occurrence_start)
        continuation = _continue_after_occurrence(store, event, pattern, occurrence_start)

    logger.info(
        "Deleted occurrence %s of event %s (master deleted: %s, continuation: %s)",
        occurrence_start.isoformat(), event.pk, deleted,
        continuation.pk if continuation else None
    )
    return SeriesMutationResult(
        master=None if deleted else event,
        master_deleted=deleted,
        continuation=continuation,
    )


def delete_this_and_future(
    event: CalendarEvent,
    occurrence_start: datetime,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Delete an occurrence and everything after it.

    Deleting from the first day of the series removes the whole series;
    otherwise the master keeps its id and ends the day before.

    Raises:
        PatternValidationError: If the event is not a valid recurring series
        InvalidOccurrenceError: If occurrence_start is not an occurrence of the series
        ReadOnlyCalendarError: If the event belongs to an ICS calendar
        EventStoreError: If the write fails
    """
    _ensure_writable(event.calendar)
    pattern = _require_pattern(event)
    _validate_occurrence(event, occurrence_start)

    with store.atomic():
        deleted = _truncate_from_day(store, event, pattern, occurrence_start)

    logger.info(
        "Deleted event %s from %s on (master deleted: %s)",
        event.pk, occurrence_start.isoformat(), deleted
    )
    return SeriesMutationResult(master=None if deleted else event, master_deleted=deleted)


def modify_occurrence(
    event: CalendarEvent,
    occurrence_start: datetime,
    changes: EventChanges,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Detach one occurrence from its series and apply ``changes`` to it.

    Splits the series like delete_occurrence, then stores the modified
    occurrence as a standalone single event.

    Args:
        event: series master
        occurrence_start: start of the occurrence being edited
        changes: new values; unset fields keep the master's values and the
                 occurrence keeps its own start and the series duration

    Returns:
        SeriesMutationResult with ``standalone`` set

    Raises:
        PatternValidationError: If the event is not a valid recurring series
        InvalidOccurrenceError: If occurrence_start is not an occurrence of the series
        SchedulingValidationError: If the changed end is not after the start
        ReadOnlyCalendarError: If either calendar is read-only
        CalendarNotFoundError: If changes.calendar_id does not exist
        EventStoreError: If a write fails (all writes are rolled back)
    """
    _ensure_writable(event.calendar)
    pattern = _require_pattern(event)
    _validate_occurrence(event, occurrence_start)
    start_time, end_time = _changed_interval(changes, occurrence_start, event.duration)

    standalone = _copy_event(event, start_time, end_time, None)
    _apply_details(standalone, changes)

    with store.atomic():
        deleted = _truncate_before_occurrence(store, event, pattern, occurrence_start)
        continuation = _continue_after_occurrence(store, event, pattern, occurrence_start)
        standalone = store.create(standalone)

    logger.info(
        "Detached occurrence %s of event %s as event %s",
        occurrence_start.isoformat(), event.pk, standalone.pk
    )
    return SeriesMutationResult(
        master=None if deleted else event,
        master_deleted=deleted,
        continuation=continuation,
        standalone=standalone,
    )


def modify_this_and_future(
    event: CalendarEvent,
    occurrence_start: datetime,
    changes: EventChanges,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Apply ``changes`` to an occurrence and every later one.

    The master ends the day before the occurrence (or is deleted when the
    occurrence is on its first day) and a new master carrying the changes
    continues the series with the original frequency, interval, weekdays
    and end date.

    Raises:
        PatternValidationError: If the event is not a valid recurring series
        InvalidOccurrenceError: If occurrence_start is not an occurrence of the series
        SchedulingValidationError: If the changed end is not after the start
        ReadOnlyCalendarError: If either calendar is read-only
        CalendarNotFoundError: If changes.calendar_id does not exist
        EventStoreError: If a write fails (all writes are rolled back)
    """
    _ensure_writable(event.calendar)
    pattern = _require_pattern(event)
    _validate_occurrence(event, occurrence_start)
    start_time, end_time = _changed_interval(changes, occurrence_start, event.duration)

    continuation = _copy_event(event, start_time, end_time, pattern)
    _apply_details(continuation, changes)

    with store.atomic():
        deleted = _truncate_from_day(store, event, pattern, occurrence_start)
        continuation = store.create(continuation)

    logger.info(
        "Split event %s at %s into new series %s",
        event.pk, occurrence_start.isoformat(), continuation.pk
    )
    return SeriesMutationResult(
        master=None if deleted else event,
        master_deleted=deleted,
        continuation=continuation,
    )


def modify_all_in_series(
    event: CalendarEvent,
    changes: EventChanges,
    occurrence_start: Optional[datetime] = None,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Apply ``changes`` to every occurrence by updating the master in place.

    A new start time is read relative to the edited occurrence (the master
    itself when ``occurrence_start`` is None): the master moves by the same
    offset, so all occurrences share the new time of day. When that moves
    the master to another day, the series end date moves by the same number
    of days.

    Raises:
        PatternValidationError: If the stored recurrence rule is invalid
        InvalidOccurrenceError: If occurrence_start is not an occurrence of the series
        SchedulingValidationError: If the changed end is not after the start
        ReadOnlyCalendarError: If either calendar is read-only
        CalendarNotFoundError: If changes.calendar_id does not exist
        EventStoreError: If the write fails
    """
    _ensure_writable(event.calendar)
    pattern = event.recurrence_pattern
    if pattern is not None and occurrence_start is not None:
        _validate_occurrence(event, occurrence_start)
    anchor = occurrence_start or event.start_time
    anchor_start, anchor_end = _changed_interval(changes, anchor, event.duration)

    new_start = timezone.localtime(event.start_time + (anchor_start - anchor))
    new_end = new_start + (anchor_end - anchor_start)

    old_day = event.start_time.astimezone(dt_timezone.utc).date()
    new_day = new_start.astimezone(dt_timezone.utc).date()
    day_offset = (new_day - old_day).days
    if pattern is not None and pattern.end_date is not None and day_offset:
        pattern = pattern.with_end_date(pattern.end_date + timedelta(days=day_offset))

    _apply_details(event, changes)
    event.start_time = new_start
    event.end_time = new_end
    event.recurrence_pattern = pattern

    with store.atomic():
        store.update(event)

    logger.info("Updated every occurrence of event %s (day offset %d)", event.pk, day_offset)
    return SeriesMutationResult(master=event)


# ---------------------------------------------------------------------------
# Event CRUD and scope dispatch
# ---------------------------------------------------------------------------

def create_event(
    data: EventCreateData,
    store: EventStore = default_store
) -> CalendarEvent:
    """
    Create a single event or a series master.

    Raises:
        CalendarNotFoundError: If the calendar does not exist
        ReadOnlyCalendarError: If the calendar is an ICS subscription
        SchedulingValidationError: If end_time is not after start_time
    """
    calendar = _get_calendar(data.calendar_id)
    _ensure_writable(calendar)
    _validate_interval(data.start_time, data.end_time)

    event = CalendarEvent(
        title=data.title,
        description=data.description,
        location=data.location,
        calendar=calendar,
        start_time=data.start_time,
        end_time=data.end_time,
        all_day=data.all_day,
    )
    event.recurrence_pattern = data.recurrence_pattern
    return store.create(event)


def update_event(
    event: CalendarEvent,
    changes: EventChanges,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Update a single, non-recurring event in place.

    Raises:
        SchedulingValidationError: If the changed end is not after the start
        ReadOnlyCalendarError: If either calendar is read-only
        CalendarNotFoundError: If changes.calendar_id does not exist
        EventStoreError: If the write fails
    """
    _ensure_writable(event.calendar)
    event.start_time, event.end_time = _changed_interval(changes, event.start_time, event.duration)
    _apply_details(event, changes)

    with store.atomic():
        store.update(event)

    logger.info("Updated event %s", event.pk)
    return SeriesMutationResult(master=event)


def delete_event(event: CalendarEvent, store: EventStore = default_store) -> None:
    """Delete a single event, or a whole series through its master."""
    _ensure_writable(event.calendar)
    with store.atomic():
        store.delete(event.pk)
    logger.info("Deleted event %s", event.pk)


def _default_scope(reference: EventReference) -> str:
    return SCOPE_THIS if isinstance(reference, ProjectedOccurrence) else SCOPE_ALL


def delete_by_reference(
    reference: EventReference,
    scope: Optional[str] = None,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Delete what ``reference`` points at, within ``scope``.

    Args:
        reference: PersistedEvent or ProjectedOccurrence
        scope: 'this', 'future' or 'all'; defaults to 'this' for projected
               occurrences and 'all' for stored events
    """
    event, occurrence_start = resolve_event_reference(reference, store)
    scope = scope or _default_scope(reference)

    if scope not in SCOPES:
        raise SchedulingValidationError(f"Unknown scope: {scope!r}")

    if scope == SCOPE_ALL or not event.is_recurring:
        delete_event(event, store)
        return SeriesMutationResult(master_deleted=True)
    if scope == SCOPE_THIS:
        return delete_occurrence(event, occurrence_start, store)
    return delete_this_and_future(event, occurrence_start, store)


def modify_by_reference(
    reference: EventReference,
    changes: EventChanges,
    scope: Optional[str] = None,
    store: EventStore = default_store
) -> SeriesMutationResult:
    """
    Modify what ``reference`` points at, within ``scope``.

    Single events are always updated in place.
    """
    event, occurrence_start = resolve_event_reference(reference, store)
    scope = scope or _default_scope(reference)

    if scope not in SCOPES:
        raise SchedulingValidationError(f"Unknown scope: {scope!r}")

    if not event.is_recurring:
        return update_event(event, changes, store)
    if scope == SCOPE_ALL:
        return modify_all_in_series(event, changes, occurrence_start, store)
    if scope == SCOPE_THIS:
        return modify_occurrence(event, occurrence_start, changes, store)
    return modify_this_and_future(event, occurrence_start, changes, store)


def get_events_in_range(
    start_datetime: datetime,
    end_datetime: datetime,
    calendar_ids: Optional[Iterable[int]] = None,
    store: EventStore = default_store
) -> List:
    """
    Get stored events and projected occurrences intersecting a range.

    Args:
        start_datetime: Range start
        end_datetime: Range end
        calendar_ids: Optional calendar filter

    Returns:
        List of CalendarEvent and Occurrence instances ordered by start

    Raises:
        SchedulingValidationError: If start_datetime >= end_datetime
    """
    if start_datetime >= end_datetime:
        raise SchedulingValidationError("Start datetime must be before end datetime")

    instances = []
    for event in store.list(calendar_ids, start_datetime, end_datetime):
        instances.extend(instances_in_range(event, start_datetime, end_datetime))

    return sorted(instances, key=lambda instance: instance.start_time)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def _default_calendar() -> Calendar:
    writable = Calendar.objects.writable()
    calendar = writable.default().first() or writable.first()
    if calendar is None:
        raise CalendarNotFoundError("No writable calendar to schedule into")
    return calendar


def schedule_task(
    task: Task,
    calendar_id: Optional[int] = None,
    start_time: Optional[datetime] = None,
    clock: Callable[[], datetime] = timezone.now,
    store: EventStore = default_store
) -> Optional[CalendarEvent]:
    """
    Place a task on the calendar.

    Args:
        task: Task to schedule
        calendar_id: target calendar, defaults to the default writable calendar
        start_time: explicit start; when omitted the next free slot across the
                    visible calendars is used
        clock: callable returning the current time

    Returns:
        The created CalendarEvent, or None if no free slot was found

    Raises:
        SchedulingValidationError: If the task is completed or already scheduled
        CalendarNotFoundError: If no usable calendar exists
        ReadOnlyCalendarError: If the target calendar is an ICS subscription
    """
    if task.completed:
        raise SchedulingValidationError("Cannot schedule a completed task")
    if task.is_scheduled:
        raise SchedulingValidationError("Task is already scheduled")

    calendar = _get_calendar(calendar_id) if calendar_id is not None else _default_calendar()
    _ensure_writable(calendar)

    if start_time is None:
        slot = find_next_free_slot(task.duration_minutes, clock=clock, store=store)
        if slot is None:
            logger.info("No free slot for task %s", task.pk)
            return None
        start_time = slot.start

    event = CalendarEvent(
        title=task.content,
        description=f"Created from task: {task.content}",
        calendar=calendar,
        start_time=start_time,
        end_time=start_time + timedelta(minutes=task.duration_minutes),
    )

    with store.atomic():
        event = store.create(event)
        task.calendar_event = event
        task.save()

    logger.info("Scheduled task %s as event %s at %s", task.pk, event.pk, start_time.isoformat())
    return event
