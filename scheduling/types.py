"""
Data types and constants for the scheduling system.

This module contains:
- The recurrence pattern value object and its compact JSON codec
- DTOs (Data Transfer Objects) for service layer operations
- The event reference union (persisted event vs. projected occurrence)
- Constants used across the application
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from enum import Enum
from typing import Any, List, Optional, Union

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import PatternValidationError


MAX_EXPANSION_ITERATIONS = 1000
SLOT_GRANULARITY_MINUTES = 15
SEARCH_HORIZON_DAYS = 7
DEFAULT_TASK_DURATION = 60
MAX_PROJECT_DEPTH = 10

OCCURRENCE_ID_MARKER = '-recurrence-'


class RecurrenceFrequency(str, Enum):
    NONE = 'none'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    BIWEEKLY = 'biweekly'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'


def end_of_day(value: datetime) -> datetime:
    """Last representable millisecond of the local day containing ``value``."""
    local = timezone.localtime(value)
    return local.replace(hour=23, minute=59, second=59, microsecond=999000)


def start_of_day(day: date) -> datetime:
    """Aware local midnight of ``day``."""
    return timezone.make_aware(datetime.combine(day, time.min))


def format_iso_utc(value: datetime) -> str:
    """Serialize as ``YYYY-MM-DDTHH:MM:SS.mmmZ``, the format stored by clients."""
    utc_value = value.astimezone(dt_timezone.utc)
    return utc_value.strftime('%Y-%m-%dT%H:%M:%S.') + f'{utc_value.microsecond // 1000:03d}Z'


def _parse_end_date(raw) -> Optional[datetime]:
    if raw in (None, ''):
        return None
    if not isinstance(raw, str):
        raise PatternValidationError(f"Invalid end_date: {raw!r}")

    try:
        # Bare dates cover the whole day. parse_datetime would read them as midnight.
        day = parse_date(raw)
        if day is not None:
            return end_of_day(start_of_day(day))

        parsed = parse_datetime(raw)
    except ValueError as exc:
        raise PatternValidationError(f"Invalid end_date: {raw!r}") from exc

    if parsed is None:
        raise PatternValidationError(f"Invalid end_date: {raw!r}")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


@dataclass
class RecurrencePattern:
    """
    Recurrence rule of a master event.

    ``days_of_week`` uses 0 = Sunday ... 6 = Saturday, the convention of the
    rows already stored by clients.
    """
    frequency: RecurrenceFrequency
    interval: int = 1
    end_date: Optional[datetime] = None
    days_of_week: Optional[List[int]] = None

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional['RecurrencePattern']:
        """
        Parse the compact JSON stored in ``CalendarEvent.recurrence_rule``.

        Returns:
            RecurrencePattern, or None for an empty column / ``frequency: none``

        Raises:
            PatternValidationError: If the JSON or any field is invalid
        """
        if not raw:
            return None

        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise PatternValidationError(f"Recurrence rule is not valid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise PatternValidationError("Recurrence rule must be a JSON object")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> Optional['RecurrencePattern']:
        try:
            frequency = RecurrenceFrequency(data.get('frequency') or RecurrenceFrequency.NONE)
        except ValueError as exc:
            raise PatternValidationError(f"Unknown frequency: {data.get('frequency')!r}") from exc

        if frequency == RecurrenceFrequency.NONE:
            return None

        interval = data.get('interval')
        if interval is None:
            interval = 1
        if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
            raise PatternValidationError("Interval must be a positive integer")

        days_of_week = data.get('days_of_week')
        if days_of_week is not None:
            if not isinstance(days_of_week, list) or not all(
                isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6 for d in days_of_week
            ):
                raise PatternValidationError("days_of_week must be a list of integers between 0 and 6")

        return cls(
            frequency=frequency,
            interval=interval,
            end_date=_parse_end_date(data.get('end_date')),
            days_of_week=days_of_week,
        )

    def to_dict(self) -> dict:
        data = {
            'frequency': self.frequency.value,
            'interval': self.interval,
        }
        if self.end_date is not None:
            data['end_date'] = format_iso_utc(self.end_date)
        if self.days_of_week is not None:
            data['days_of_week'] = list(self.days_of_week)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def with_end_date(self, end_date: Optional[datetime]) -> 'RecurrencePattern':
        """Copy of this pattern with a different end date."""
        return RecurrencePattern(
            frequency=self.frequency,
            interval=self.interval,
            end_date=end_date,
            days_of_week=list(self.days_of_week) if self.days_of_week is not None else None,
        )


@dataclass
class Occurrence:
    """A projected, never persisted, instance of a recurring master event."""
    id: str
    master_id: int
    title: str
    description: str
    location: str
    calendar_id: int
    start_time: datetime
    end_time: datetime
    all_day: bool = False
    is_recurrence_instance: bool = True


@dataclass
class TimeSlot:
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass
class ExpansionResult:
    """Occurrences produced by an expansion plus what stopped it early, if anything."""
    occurrences: List[Occurrence] = field(default_factory=list)
    error: Optional[Exception] = None
    truncated: bool = False


@dataclass(frozen=True)
class PersistedEvent:
    """Reference to a stored event row (single event or master)."""
    event_id: int


@dataclass(frozen=True)
class ProjectedOccurrence:
    """Reference to one occurrence of a master, decoded from a synthetic id."""
    master_id: int
    occurrence_date: date


EventReference = Union[PersistedEvent, ProjectedOccurrence]


@dataclass
class EventChanges:
    """DTO for event and series modifications. ``None`` keeps the current value."""
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    calendar_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: Optional[bool] = None


@dataclass
class SeriesMutationResult:
    """Outcome of a series mutation: which rows were changed, removed or created."""
    master: Optional[Any] = None
    master_deleted: bool = False
    continuation: Optional[Any] = None
    standalone: Optional[Any] = None

    @property
    def created(self) -> List[Any]:
        return [event for event in (self.continuation, self.standalone) if event is not None]


@dataclass
class EventCreateData:
    """DTO for creating a single or master event."""
    title: str
    calendar_id: int
    start_time: datetime
    end_time: datetime
    description: str = ''
    location: str = ''
    all_day: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
