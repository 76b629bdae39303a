"""
Event store backed by the Django ORM.

The series mutations talk to storage only through ``create``, ``update``,
``delete`` and ``list`` plus an ``atomic`` unit of work, so a mutation that
needs several writes either applies all of them or none.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from django.db import DatabaseError, transaction

from .exceptions import EventNotFoundError, EventStoreError
from .models import CalendarEvent

logger = logging.getLogger(__name__)


class EventStore:
    """CRUD access to CalendarEvent rows."""

    def atomic(self):
        """Unit of work wrapping every write of one mutation."""
        return transaction.atomic()

    def get(self, event_id: int) -> CalendarEvent:
        """
        Fetch one event.

        Raises:
            EventNotFoundError: If no event has this id
        """
        try:
            return CalendarEvent.objects.select_related('calendar').get(pk=event_id)
        except CalendarEvent.DoesNotExist:
            raise EventNotFoundError(f"Event {event_id} does not exist")
        except DatabaseError as exc:
            logger.exception("Failed to load event %s", event_id)
            raise EventStoreError(f"Failed to load event {event_id}") from exc

    def create(self, event: CalendarEvent) -> CalendarEvent:
        try:
            event.pk = None
            event.save()
        except DatabaseError as exc:
            logger.exception("Failed to create event %r", event.title)
            raise EventStoreError("Failed to create event") from exc
        return event

    def update(self, event: CalendarEvent) -> CalendarEvent:
        try:
            event.save()
        except DatabaseError as exc:
            logger.exception("Failed to update event %s", event.pk)
            raise EventStoreError(f"Failed to update event {event.pk}") from exc
        return event

    def delete(self, event_id: int) -> None:
        try:
            deleted, _ = CalendarEvent.objects.filter(pk=event_id).delete()
        except DatabaseError as exc:
            logger.exception("Failed to delete event %s", event_id)
            raise EventStoreError(f"Failed to delete event {event_id}") from exc

        if not deleted:
            raise EventNotFoundError(f"Event {event_id} does not exist")

    def list(
        self,
        calendar_ids: Optional[Iterable[int]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[CalendarEvent]:
        """
        Fetch events, optionally only those that can touch ``[start, end)``.

        With a window, single events must overlap it and series masters must
        start before its end; masters are kept whole since their occurrences
        are only known after expansion.
        """
        events = CalendarEvent.objects.for_calendars(calendar_ids).select_related('calendar')
        try:
            if start is None or end is None:
                return list(events)
            return (
                list(events.recurring().started_before(end))
                + list(events.single().overlapping(start, end))
            )
        except DatabaseError as exc:
            logger.exception("Failed to list events")
            raise EventStoreError("Failed to list events") from exc


default_store = EventStore()
