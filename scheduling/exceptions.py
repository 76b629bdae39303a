"""
Domain errors raised by the scheduling services.

Views translate these into HTTP responses; nothing in the service layer
swallows them.
"""


class SchedulingError(Exception):
    """Base class for scheduling errors."""


class EventNotFoundError(SchedulingError, LookupError):
    """The referenced event or series master does not exist."""


class CalendarNotFoundError(SchedulingError, LookupError):
    """The referenced calendar does not exist."""


class SchedulingValidationError(SchedulingError, ValueError):
    """Input to a scheduling operation is invalid."""


class PatternValidationError(SchedulingValidationError):
    """A recurrence rule could not be parsed or is invalid."""


class InvalidOccurrenceError(SchedulingValidationError):
    """The targeted occurrence does not belong to the series."""


class SlotValidationError(SchedulingValidationError):
    """An availability request is invalid."""


class DegeneratePatternError(SchedulingError):
    """Occurrence stepping failed to advance; expansion was aborted."""


class ReadOnlyCalendarError(SchedulingError):
    """Events of subscribed (ICS) calendars cannot be modified."""


class EventStoreError(SchedulingError):
    """The event store failed while persisting a change."""
