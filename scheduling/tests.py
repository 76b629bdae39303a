"""
Tests for the scheduling system.

Tests cover:
- Recurrence pattern codec and occurrence id codec
- Recurrence expansion (stepping, clamping, weekday filter, degenerate rules)
- Series mutations (this / this and future / all) and their rollback
- Availability and next free slot search
- Task scheduling and projects
- API endpoints
- Management commands
"""

from datetime import date, datetime, timedelta
from io import StringIO

from django.core.exceptions import ValidationError
from django.core.management import CommandError, call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from .availability import (
    collect_day_events,
    find_available_slots,
    find_next_free_slot,
    snap_to_grid,
)
from .exceptions import (
    DegeneratePatternError,
    EventNotFoundError,
    EventStoreError,
    InvalidOccurrenceError,
    PatternValidationError,
    ReadOnlyCalendarError,
    SchedulingValidationError,
    SlotValidationError,
)
from .models import Calendar, CalendarEvent, Project, Task
from .recurrence import (
    expand_occurrences,
    expand_series,
    format_occurrence_id,
    instances_in_range,
    next_occurrence,
    parse_event_reference,
    previous_occurrence,
)
from .services import (
    delete_by_reference,
    delete_occurrence,
    delete_this_and_future,
    create_event,
    get_events_in_range,
    modify_all_in_series,
    modify_by_reference,
    modify_occurrence,
    modify_this_and_future,
    schedule_task,
    update_event,
)
from .store import EventStore
from .types import (
    EventChanges,
    EventCreateData,
    MAX_PROJECT_DEPTH,
    PersistedEvent,
    ProjectedOccurrence,
    RecurrenceFrequency,
    RecurrencePattern,
    TimeSlot,
)


def aware(*args):
    return timezone.make_aware(datetime(*args))


WEEKLY = '{"frequency": "weekly", "interval": 1}'
BOUNDED_WEEKLY = '{"frequency": "weekly", "interval": 1, "end_date": "2024-12-02T23:59:59.999Z"}'

# 2024-11-04 is a Monday
MONDAY = aware(2024, 11, 4, 10, 0)


def starts(instances):
    return [instance.start_time for instance in instances]


class SchedulingTestCase(TestCase):
    """Shared fixtures: one writable calendar and a helper to add events."""

    def setUp(self):
        self.calendar = Calendar.objects.create(name="Work", is_default=True)

    def make_event(self, start=MONDAY, minutes=60, rule='', calendar=None, **kwargs):
        return CalendarEvent.objects.create(
            title=kwargs.pop('title', "Standup"),
            calendar=calendar or self.calendar,
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            recurrence_rule=rule,
            **kwargs
        )


@override_settings(TIME_ZONE='UTC')
class RecurrencePatternTests(TestCase):
    """Test the recurrence pattern JSON codec."""

    def test_parse_full_pattern(self):
        """Test parsing every field of a stored rule."""
        pattern = RecurrencePattern.from_json(
            '{"frequency": "weekly", "interval": 2, '
            '"end_date": "2024-12-31T23:59:59.999Z", "days_of_week": [1, 3]}'
        )

        self.assertEqual(pattern.frequency, RecurrenceFrequency.WEEKLY)
        self.assertEqual(pattern.interval, 2)
        self.assertEqual(pattern.end_date, aware(2024, 12, 31, 23, 59, 59, 999000))
        self.assertEqual(pattern.days_of_week, [1, 3])

    def test_to_dict_uses_utc_millisecond_format(self):
        """Test that end dates are written back in the stored format."""
        pattern = RecurrencePattern(
            frequency=RecurrenceFrequency.DAILY,
            end_date=aware(2024, 12, 31, 23, 59, 59, 999000)
        )

        self.assertEqual(pattern.to_dict(), {
            'frequency': 'daily',
            'interval': 1,
            'end_date': '2024-12-31T23:59:59.999Z',
        })

    def test_date_only_end_date_means_end_of_day(self):
        pattern = RecurrencePattern.from_json('{"frequency": "daily", "end_date": "2024-11-30"}')
        self.assertEqual(pattern.end_date, aware(2024, 11, 30, 23, 59, 59, 999000))

    def test_empty_and_none_rules(self):
        """Test that empty rules and frequency none mean a single event."""
        self.assertIsNone(RecurrencePattern.from_json(''))
        self.assertIsNone(RecurrencePattern.from_json(None))
        self.assertIsNone(RecurrencePattern.from_json('{"frequency": "none"}'))

    def test_invalid_rules(self):
        """Test that malformed rules are rejected."""
        invalid = [
            'not json',
            '[1, 2]',
            '{"frequency": "hourly"}',
            '{"frequency": "daily", "interval": 0}',
            '{"frequency": "daily", "interval": "2"}',
            '{"frequency": "weekly", "days_of_week": [7]}',
            '{"frequency": "daily", "end_date": "someday"}',
        ]
        for raw in invalid:
            with self.subTest(raw=raw):
                with self.assertRaises(PatternValidationError):
                    RecurrencePattern.from_json(raw)


@override_settings(TIME_ZONE='UTC')
class EventReferenceTests(TestCase):
    """Test synthetic occurrence ids."""

    def test_format_occurrence_id(self):
        self.assertEqual(
            format_occurrence_id(5, aware(2024, 11, 11, 10, 0)),
            '5-recurrence-2024-11-11'
        )

    def test_parse_occurrence_id(self):
        self.assertEqual(
            parse_event_reference('5-recurrence-2024-11-11'),
            ProjectedOccurrence(master_id=5, occurrence_date=date(2024, 11, 11))
        )

    def test_parse_persisted_id(self):
        self.assertEqual(parse_event_reference('12'), PersistedEvent(event_id=12))
        self.assertEqual(parse_event_reference(12), PersistedEvent(event_id=12))

    def test_malformed_ids(self):
        """Test that ids which cannot name an event are not found."""
        for raw in ['abc', '5-recurrence-', 'x-recurrence-2024-11-11', '5-recurrence-2024-13-01']:
            with self.subTest(raw=raw):
                with self.assertRaises(EventNotFoundError):
                    parse_event_reference(raw)


class ModelTests(SchedulingTestCase):
    """Test model validation and managers."""

    def test_ics_calendar_needs_url(self):
        with self.assertRaises(ValidationError):
            Calendar.objects.create(name="Holidays", calendar_type=Calendar.TYPE_ICS)

    def test_ics_calendar_is_read_only(self):
        calendar = Calendar.objects.create(
            name="Holidays",
            calendar_type=Calendar.TYPE_ICS,
            ics_url="https://example.com/holidays.ics"
        )
        self.assertTrue(calendar.is_read_only)
        self.assertFalse(self.calendar.is_read_only)
        self.assertEqual(list(Calendar.objects.writable()), [self.calendar])

    def test_event_end_must_follow_start(self):
        with self.assertRaises(ValidationError):
            self.make_event(minutes=0)

    def test_event_rejects_invalid_rule(self):
        with self.assertRaises(ValidationError):
            self.make_event(rule='{"frequency": "weekly", "interval": -1}')

    def test_recurring_and_single_filters(self):
        series = self.make_event(rule=WEEKLY)
        single = self.make_event(start=MONDAY + timedelta(hours=3))

        self.assertTrue(series.is_recurring)
        self.assertFalse(single.is_recurring)
        self.assertEqual(list(CalendarEvent.objects.recurring()), [series])
        self.assertEqual(list(CalendarEvent.objects.single()), [single])

    def test_window_prefilter(self):
        """Test that a windowed listing keeps overlapping singles and earlier masters."""
        series = self.make_event(start=aware(2024, 10, 7, 10, 0), rule=WEEKLY)
        inside = self.make_event(start=aware(2024, 11, 12, 8, 0), title="Dentist")
        self.make_event(start=aware(2024, 12, 20, 8, 0), title="Party")
        self.make_event(start=aware(2025, 1, 6, 10, 0), rule=WEEKLY, title="Next year")
        window = (aware(2024, 11, 11), aware(2024, 11, 18))

        self.assertEqual(list(CalendarEvent.objects.overlapping(*window)), [inside])
        self.assertEqual(list(CalendarEvent.objects.started_before(window[1])), [series, inside])
        self.assertCountEqual(EventStore().list(None, *window), [series, inside])
        self.assertEqual(len(EventStore().list()), 4)

    def test_project_hierarchy(self):
        root = Project.objects.create(name="Work")
        child = Project.objects.create(name="Reports", parent=root, display_order=1)
        sibling = Project.objects.create(name="Admin", parent=root, display_order=0)

        self.assertEqual(list(Project.objects.roots()), [root])
        self.assertEqual(list(Project.objects.children_of(root.pk)), [sibling, child])

        root.parent = child
        with self.assertRaises(ValidationError):
            root.save()

        root.parent = root
        with self.assertRaises(ValidationError):
            root.save()

    def test_project_depth_limit(self):
        parent = None
        for level in range(MAX_PROJECT_DEPTH):
            parent = Project.objects.create(name=f"Level {level}", parent=parent)

        with self.assertRaises(ValidationError):
            Project.objects.create(name="Too deep", parent=parent)

    def test_deleting_project_keeps_tasks(self):
        project = Project.objects.create(name="Home")
        task = Task.objects.create(content="Paint fence", project=project)

        self.assertEqual(list(Task.objects.in_project(project.pk)), [task])
        project.delete()

        task.refresh_from_db()
        self.assertIsNone(task.project)

    def test_task_duration_must_be_positive(self):
        with self.assertRaises(ValidationError):
            Task.objects.create(content="Nothing", duration_minutes=0)

    def test_unscheduled_tasks(self):
        event = self.make_event()
        Task.objects.create(content="Scheduled", calendar_event=event)
        Task.objects.create(content="Done", completed=True)
        open_task = Task.objects.create(content="Open")

        self.assertEqual(list(Task.objects.unscheduled()), [open_task])


@override_settings(TIME_ZONE='UTC')
class RecurrenceExpansionTests(SchedulingTestCase):
    """Test projecting masters into occurrences."""

    def test_weekly_series(self):
        """Test a weekly Monday series over three weeks."""
        event = self.make_event(rule=WEEKLY)

        result = expand_occurrences(event, aware(2024, 11, 4), aware(2024, 11, 25, 23, 59))

        self.assertIsNone(result.error)
        self.assertEqual(
            [occurrence.id for occurrence in result.occurrences],
            [
                f'{event.pk}-recurrence-2024-11-11',
                f'{event.pk}-recurrence-2024-11-18',
                f'{event.pk}-recurrence-2024-11-25',
            ]
        )
        occurrence = result.occurrences[0]
        self.assertEqual(occurrence.master_id, event.pk)
        self.assertEqual(occurrence.end_time - occurrence.start_time, timedelta(hours=1))
        self.assertTrue(occurrence.is_recurrence_instance)

    def test_expand_series_includes_master(self):
        event = self.make_event(rule=WEEKLY)

        result = expand_series(event, aware(2024, 11, 4), aware(2024, 11, 11, 23, 59))

        self.assertEqual([occurrence.id for occurrence in result.occurrences], [
            f'{event.pk}-recurrence-2024-11-04',
            f'{event.pk}-recurrence-2024-11-11',
        ])

    def test_end_date_stops_expansion(self):
        event = self.make_event(
            rule='{"frequency": "daily", "interval": 1, "end_date": "2024-11-06T23:59:59.999Z"}'
        )

        result = expand_occurrences(event, aware(2024, 11, 1), aware(2024, 11, 30))

        self.assertEqual(starts(result.occurrences), [
            aware(2024, 11, 5, 10, 0),
            aware(2024, 11, 6, 10, 0),
        ])

    def test_old_series_reaches_window(self):
        """Test that a long-running daily series still expands in a late window."""
        event = self.make_event(start=aware(2020, 1, 1, 10, 0), rule='{"frequency": "daily"}')

        result = expand_occurrences(event, aware(2024, 11, 1), aware(2024, 11, 7, 23, 59))

        self.assertFalse(result.truncated)
        self.assertEqual(len(result.occurrences), 7)
        self.assertEqual(result.occurrences[0].start_time, aware(2024, 11, 1, 10, 0))

    def test_iteration_cap(self):
        """Test that a monthly series needing too many steps is cut off."""
        event = self.make_event(start=aware(1900, 1, 1, 10, 0), rule='{"frequency": "monthly"}')

        result = expand_occurrences(event, aware(2024, 1, 1), aware(2024, 12, 31))

        self.assertTrue(result.truncated)
        self.assertEqual(result.occurrences, [])

    def test_monthly_clamps_to_month_end(self):
        event = self.make_event(start=aware(2024, 1, 31, 10, 0), rule='{"frequency": "monthly"}')

        result = expand_occurrences(event, aware(2024, 1, 1), aware(2024, 4, 30, 23, 59))

        self.assertEqual(starts(result.occurrences), [
            aware(2024, 2, 29, 10, 0),
            aware(2024, 3, 29, 10, 0),
            aware(2024, 4, 29, 10, 0),
        ])

    def test_biweekly_interval(self):
        event = self.make_event(rule='{"frequency": "biweekly", "interval": 1}')

        result = expand_occurrences(event, aware(2024, 11, 4), aware(2024, 12, 2, 23, 59))

        self.assertEqual(starts(result.occurrences), [
            aware(2024, 11, 18, 10, 0),
            aware(2024, 12, 2, 10, 0),
        ])

    def test_days_of_week_filters_weekly_cursor(self):
        """Test that the weekday filter only sees the master's weekday."""
        event = self.make_event(rule='{"frequency": "weekly", "days_of_week": [1, 3]}')

        result = expand_occurrences(event, aware(2024, 11, 4), aware(2024, 11, 30))

        # Mondays only; Wednesday is never reached by whole-week steps
        self.assertEqual(starts(result.occurrences), [
            aware(2024, 11, 11, 10, 0),
            aware(2024, 11, 18, 10, 0),
            aware(2024, 11, 25, 10, 0),
        ])

        event.recurrence_rule = '{"frequency": "weekly", "days_of_week": [3]}'
        result = expand_occurrences(event, aware(2024, 11, 4), aware(2024, 11, 30))
        self.assertEqual(result.occurrences, [])

    def test_degenerate_pattern_reports_error(self):
        """Test that a rule that never advances stops with an error."""
        event = self.make_event()
        pattern = RecurrencePattern(frequency=RecurrenceFrequency.WEEKLY, interval=0)

        result = expand_occurrences(event, aware(2024, 11, 1), aware(2024, 12, 1), pattern=pattern)

        self.assertIsInstance(result.error, DegeneratePatternError)
        self.assertEqual(result.occurrences, [])

    def test_stepping_strictly_increases(self):
        for frequency in [f for f in RecurrenceFrequency if f != RecurrenceFrequency.NONE]:
            for interval in (1, 2, 3):
                pattern = RecurrencePattern(frequency=frequency, interval=interval)
                cursor = aware(2024, 1, 31, 10, 0)
                for _ in range(24):
                    following = next_occurrence(cursor, pattern)
                    self.assertGreater(following, cursor, (frequency, interval))
                    self.assertLess(previous_occurrence(following, pattern), following)
                    cursor = following

    def test_occurrence_running_into_window(self):
        """Test that an occurrence starting before the window but ending inside it is included."""
        event = self.make_event(start=aware(2024, 11, 4, 23, 0), minutes=120, rule='{"frequency": "daily"}')

        instances = instances_in_range(event, aware(2024, 11, 6), aware(2024, 11, 6, 12, 0))

        self.assertEqual([instance.id for instance in instances], [f'{event.pk}-recurrence-2024-11-05'])

    def test_events_in_range(self):
        """Test stored events and occurrences ordered by start."""
        series = self.make_event(rule=WEEKLY)
        single = self.make_event(start=aware(2024, 11, 12, 8, 0), title="Dentist")

        instances = get_events_in_range(aware(2024, 11, 4), aware(2024, 11, 19))

        self.assertEqual(starts(instances), [
            MONDAY,
            aware(2024, 11, 11, 10, 0),
            aware(2024, 11, 12, 8, 0),
            aware(2024, 11, 18, 10, 0),
        ])
        self.assertIs(instances[0].__class__, CalendarEvent)
        self.assertEqual(instances[0].pk, series.pk)
        self.assertEqual(instances[2].pk, single.pk)

    def test_events_in_range_validates_window(self):
        with self.assertRaises(SchedulingValidationError):
            get_events_in_range(aware(2024, 11, 5), aware(2024, 11, 4))


class FailingCreateStore(EventStore):
    """Store whose inserts always fail."""

    def create(self, event):
        raise EventStoreError("insert failed")


@override_settings(TIME_ZONE='UTC')
class SeriesMutationTests(SchedulingTestCase):
    """Test splitting, truncating and moving series."""

    def setUp(self):
        super().setUp()
        self.series = self.make_event(rule=WEEKLY)
        self.window = (aware(2024, 11, 4), aware(2024, 12, 10))

    def test_delete_occurrence(self):
        """Test that deleting one occurrence removes exactly that date."""
        before = starts(get_events_in_range(*self.window))

        result = delete_occurrence(self.series, aware(2024, 11, 18, 10, 0))

        after = starts(get_events_in_range(*self.window))
        self.assertEqual(after, [start for start in before if start != aware(2024, 11, 18, 10, 0)])
        self.assertFalse(result.master_deleted)
        self.assertEqual(
            result.master.recurrence_pattern.end_date,
            aware(2024, 11, 11, 23, 59, 59, 999000)
        )
        self.assertEqual(result.continuation.start_time, aware(2024, 11, 25, 10, 0))
        self.assertIsNone(result.continuation.recurrence_pattern.end_date)

    def test_delete_first_occurrence(self):
        """Test that deleting the first occurrence replaces the master."""
        result = delete_occurrence(self.series, MONDAY)

        self.assertTrue(result.master_deleted)
        self.assertFalse(CalendarEvent.objects.filter(pk=self.series.pk).exists())
        remaining = CalendarEvent.objects.get()
        self.assertEqual(remaining.start_time, aware(2024, 11, 11, 10, 0))
        self.assertTrue(remaining.is_recurring)

    def test_delete_only_occurrence(self):
        """Test that deleting the only occurrence leaves nothing behind."""
        event = self.make_event(
            start=aware(2024, 12, 2, 10, 0),
            rule='{"frequency": "weekly", "end_date": "2024-12-02T23:59:59.999Z"}'
        )

        result = delete_occurrence(event, event.start_time)

        self.assertTrue(result.master_deleted)
        self.assertEqual(result.created, [])
        self.assertFalse(CalendarEvent.objects.filter(pk=event.pk).exists())

    def test_occurrence_before_series_rejected(self):
        with self.assertRaises(InvalidOccurrenceError):
            delete_occurrence(self.series, aware(2024, 10, 28, 10, 0))

    def test_single_event_is_not_a_series(self):
        single = self.make_event(start=aware(2024, 11, 5, 10, 0))
        with self.assertRaises(PatternValidationError):
            delete_occurrence(single, single.start_time)

    def test_delete_this_and_future(self):
        result = delete_this_and_future(self.series, aware(2024, 11, 18, 10, 0))

        self.assertFalse(result.master_deleted)
        self.series.refresh_from_db()
        self.assertEqual(
            self.series.recurrence_pattern.end_date,
            aware(2024, 11, 17, 23, 59, 59, 999000)
        )
        self.assertEqual(starts(get_events_in_range(*self.window)), [
            MONDAY,
            aware(2024, 11, 11, 10, 0),
        ])

    def test_delete_this_and_future_from_first_day(self):
        result = delete_this_and_future(self.series, MONDAY)

        self.assertTrue(result.master_deleted)
        self.assertEqual(CalendarEvent.objects.count(), 0)

    def test_modify_occurrence(self):
        """Test that an edited occurrence becomes a standalone event."""
        changes = EventChanges(title="Moved standup", start_time=aware(2024, 11, 18, 14, 0))

        result = modify_occurrence(self.series, aware(2024, 11, 18, 10, 0), changes)

        standalone = result.standalone
        self.assertEqual(standalone.title, "Moved standup")
        self.assertEqual(standalone.start_time, aware(2024, 11, 18, 14, 0))
        self.assertEqual(standalone.end_time, aware(2024, 11, 18, 15, 0))
        self.assertFalse(standalone.is_recurring)
        self.assertEqual(CalendarEvent.objects.count(), 3)
        self.assertEqual(starts(get_events_in_range(aware(2024, 11, 18), aware(2024, 11, 19))), [
            aware(2024, 11, 18, 14, 0),
        ])

    def test_modify_occurrence_rejects_inverted_times(self):
        changes = EventChanges(
            start_time=aware(2024, 11, 18, 14, 0),
            end_time=aware(2024, 11, 18, 13, 0)
        )
        with self.assertRaises(SchedulingValidationError):
            modify_occurrence(self.series, aware(2024, 11, 18, 10, 0), changes)
        self.assertEqual(CalendarEvent.objects.count(), 1)

    def test_modify_this_and_future(self):
        result = modify_this_and_future(
            self.series,
            aware(2024, 11, 18, 10, 0),
            EventChanges(title="Planning")
        )

        self.series.refresh_from_db()
        self.assertEqual(
            self.series.recurrence_pattern.end_date,
            aware(2024, 11, 17, 23, 59, 59, 999000)
        )
        new_series = result.continuation
        self.assertEqual(new_series.title, "Planning")
        self.assertEqual(new_series.start_time, aware(2024, 11, 18, 10, 0))
        self.assertEqual(new_series.recurrence_pattern.frequency, RecurrenceFrequency.WEEKLY)

        titles = [instance.title for instance in get_events_in_range(*self.window)]
        self.assertEqual(titles, ["Standup", "Standup", "Planning", "Planning", "Planning", "Planning"])

    def test_modify_this_and_future_from_first_day(self):
        result = modify_this_and_future(self.series, MONDAY, EventChanges(title="Planning"))

        self.assertTrue(result.master_deleted)
        self.assertEqual(CalendarEvent.objects.get().title, "Planning")

    def test_modify_all_moves_series_and_end_date(self):
        """Test that moving one occurrence a day later shifts the whole series."""
        self.series.recurrence_rule = (
            '{"frequency": "weekly", "interval": 1, "end_date": "2024-12-31T23:59:59.999Z"}'
        )
        self.series.save()

        window = (aware(2024, 11, 4), aware(2024, 12, 10, 23, 59))
        before = starts(expand_occurrences(self.series, *window).occurrences)

        modify_all_in_series(
            self.series,
            EventChanges(start_time=aware(2024, 11, 19, 9, 0)),
            occurrence_start=aware(2024, 11, 18, 10, 0)
        )

        self.series.refresh_from_db()
        self.assertEqual(self.series.start_time, aware(2024, 11, 5, 9, 0))
        self.assertEqual(self.series.end_time, aware(2024, 11, 5, 10, 0))
        self.assertEqual(
            self.series.recurrence_pattern.end_date,
            aware(2025, 1, 1, 23, 59, 59, 999000)
        )

        after = expand_occurrences(self.series, *window).occurrences
        self.assertEqual(before, [
            aware(2024, 11, 11, 10, 0),
            aware(2024, 11, 18, 10, 0),
            aware(2024, 11, 25, 10, 0),
            aware(2024, 12, 2, 10, 0),
            aware(2024, 12, 9, 10, 0),
        ])
        # Every occurrence moves to the next day at 09:00
        self.assertEqual(starts(after), [start + timedelta(days=1, hours=-1) for start in before])
        for occurrence in after:
            self.assertEqual(occurrence.end_time - occurrence.start_time, timedelta(hours=1))

    def test_delete_occurrence_in_bounded_series(self):
        """Test that the continuation of a bounded series keeps its end date."""
        self.series.recurrence_rule = BOUNDED_WEEKLY
        self.series.save()
        before = starts(get_events_in_range(*self.window))

        result = delete_occurrence(self.series, aware(2024, 11, 18, 10, 0))

        self.assertEqual(
            result.master.recurrence_pattern.end_date,
            aware(2024, 11, 11, 23, 59, 59, 999000)
        )
        self.assertEqual(result.continuation.start_time, aware(2024, 11, 25, 10, 0))
        self.assertEqual(
            result.continuation.recurrence_pattern.end_date,
            aware(2024, 12, 2, 23, 59, 59, 999000)
        )
        self.assertEqual(before, [
            MONDAY,
            aware(2024, 11, 11, 10, 0),
            aware(2024, 11, 18, 10, 0),
            aware(2024, 11, 25, 10, 0),
            aware(2024, 12, 2, 10, 0),
        ])
        self.assertEqual(
            starts(get_events_in_range(*self.window)),
            [start for start in before if start != aware(2024, 11, 18, 10, 0)]
        )

    def test_delete_last_occurrence_of_bounded_series(self):
        self.series.recurrence_rule = BOUNDED_WEEKLY
        self.series.save()

        result = delete_occurrence(self.series, aware(2024, 12, 2, 10, 0))

        self.assertIsNone(result.continuation)
        self.assertEqual(CalendarEvent.objects.count(), 1)
        self.assertEqual(starts(get_events_in_range(*self.window))[-1], aware(2024, 11, 25, 10, 0))

    def test_modify_occurrence_in_bounded_series(self):
        self.series.recurrence_rule = BOUNDED_WEEKLY
        self.series.save()
        before = starts(get_events_in_range(*self.window))

        result = modify_occurrence(self.series, aware(2024, 11, 25, 10, 0), EventChanges(title="Retro"))

        self.assertEqual(result.continuation.start_time, aware(2024, 12, 2, 10, 0))
        self.assertEqual(
            result.continuation.recurrence_pattern.end_date,
            aware(2024, 12, 2, 23, 59, 59, 999000)
        )
        instances = get_events_in_range(*self.window)
        self.assertEqual(starts(instances), before)
        self.assertEqual(
            [instance.title for instance in instances],
            ["Standup", "Standup", "Standup", "Retro", "Standup"]
        )

    def test_date_after_end_date_is_not_an_occurrence(self):
        """Test that a date past the end of a series cannot be mutated."""
        self.series.recurrence_rule = (
            '{"frequency": "weekly", "interval": 1, "end_date": "2024-11-11T23:59:59.999Z"}'
        )
        self.series.save()
        reference = ProjectedOccurrence(master_id=self.series.pk, occurrence_date=date(2024, 12, 9))

        with self.assertRaises(EventNotFoundError):
            delete_by_reference(reference, scope='this')
        with self.assertRaises(InvalidOccurrenceError):
            delete_occurrence(self.series, aware(2024, 12, 9, 10, 0))
        with self.assertRaises(InvalidOccurrenceError):
            modify_occurrence(self.series, aware(2024, 12, 9, 10, 0), EventChanges(title="Late"))

        self.assertEqual(CalendarEvent.objects.count(), 1)
        self.assertEqual(starts(get_events_in_range(*self.window)), [
            MONDAY,
            aware(2024, 11, 11, 10, 0),
        ])

    def test_wrong_weekday_is_not_an_occurrence(self):
        """Test that a Tuesday cannot be mutated in a Monday series."""
        tuesday = aware(2024, 11, 19, 10, 0)
        mutations = {
            'delete_occurrence': lambda: delete_occurrence(self.series, tuesday),
            'delete_this_and_future': lambda: delete_this_and_future(self.series, tuesday),
            'modify_occurrence': lambda: modify_occurrence(self.series, tuesday, EventChanges(title="X")),
            'modify_this_and_future': lambda: modify_this_and_future(
                self.series, tuesday, EventChanges(title="X")
            ),
            'modify_all_in_series': lambda: modify_all_in_series(
                self.series, EventChanges(title="X"), occurrence_start=tuesday
            ),
        }
        for name, mutation in mutations.items():
            with self.subTest(mutation=name):
                with self.assertRaises(InvalidOccurrenceError):
                    mutation()

        reference = ProjectedOccurrence(master_id=self.series.pk, occurrence_date=date(2024, 11, 19))
        for scope in ('this', 'future', 'all'):
            with self.subTest(scope=scope):
                with self.assertRaises(EventNotFoundError):
                    modify_by_reference(reference, EventChanges(title="X"), scope=scope)
                with self.assertRaises(EventNotFoundError):
                    delete_by_reference(reference, scope=scope)

        stored = CalendarEvent.objects.get()
        self.assertEqual(stored.recurrence_rule, WEEKLY)
        self.assertEqual(stored.title, "Standup")
        self.assertEqual(stored.start_time, MONDAY)

    def test_update_single_event(self):
        single = self.make_event(start=aware(2024, 11, 5, 10, 0), title="Dentist")

        update_event(single, EventChanges(start_time=aware(2024, 11, 5, 15, 0), location="Main St"))

        single.refresh_from_db()
        self.assertEqual(single.start_time, aware(2024, 11, 5, 15, 0))
        self.assertEqual(single.end_time, aware(2024, 11, 5, 16, 0))
        self.assertEqual(single.location, "Main St")

    def test_failed_write_rolls_back(self):
        """Test that a failing insert leaves the master untouched."""
        with self.assertRaises(EventStoreError):
            delete_occurrence(self.series, aware(2024, 11, 18, 10, 0), store=FailingCreateStore())

        stored = CalendarEvent.objects.get(pk=self.series.pk)
        self.assertEqual(stored.recurrence_rule, WEEKLY)
        self.assertEqual(CalendarEvent.objects.count(), 1)

    def test_read_only_calendar(self):
        ics = Calendar.objects.create(
            name="Holidays",
            calendar_type=Calendar.TYPE_ICS,
            ics_url="https://example.com/holidays.ics"
        )
        event = self.make_event(rule=WEEKLY, calendar=ics)

        with self.assertRaises(ReadOnlyCalendarError):
            delete_occurrence(event, aware(2024, 11, 11, 10, 0))
        with self.assertRaises(ReadOnlyCalendarError):
            create_event(EventCreateData(
                title="Imported",
                calendar_id=ics.pk,
                start_time=MONDAY,
                end_time=MONDAY + timedelta(hours=1),
            ))

    def test_reference_dispatch(self):
        """Test that references pick the matching mutation."""
        reference = ProjectedOccurrence(master_id=self.series.pk, occurrence_date=date(2024, 11, 11))

        result = delete_by_reference(reference)
        self.assertEqual(result.continuation.start_time, aware(2024, 11, 18, 10, 0))

        result = modify_by_reference(PersistedEvent(result.continuation.pk), EventChanges(title="Renamed"))
        self.assertEqual(result.master.title, "Renamed")

        delete_by_reference(PersistedEvent(self.series.pk), scope='all')
        self.assertEqual(CalendarEvent.objects.count(), 1)

    def test_unknown_master(self):
        with self.assertRaises(EventNotFoundError):
            delete_by_reference(ProjectedOccurrence(master_id=999, occurrence_date=date(2024, 11, 11)))


@override_settings(TIME_ZONE='UTC')
class AvailabilityTests(SchedulingTestCase):
    """Test free slot search on one day."""

    day = date(2024, 11, 4)
    yesterday = aware(2024, 11, 3, 12, 0)

    def block(self, start, end, all_day=False):
        return CalendarEvent(title="Busy", start_time=start, end_time=end, all_day=all_day)

    def test_snap_to_grid(self):
        self.assertEqual(snap_to_grid(aware(2024, 11, 4, 9, 7)), aware(2024, 11, 4, 9, 15))
        self.assertEqual(snap_to_grid(aware(2024, 11, 4, 9, 15)), aware(2024, 11, 4, 9, 15))
        self.assertEqual(snap_to_grid(aware(2024, 11, 4, 9, 15, 1)), aware(2024, 11, 4, 9, 30))

    def test_empty_day_has_one_slot(self):
        slots = find_available_slots(self.day, 60, [], now=self.yesterday)
        self.assertEqual(slots, [TimeSlot(aware(2024, 11, 4, 0, 0), aware(2024, 11, 4, 1, 0))])

    def test_today_starts_at_next_grid_point(self):
        slots = find_available_slots(self.day, 60, [], now=aware(2024, 11, 4, 9, 7))
        self.assertEqual(slots, [TimeSlot(aware(2024, 11, 4, 9, 15), aware(2024, 11, 4, 10, 15))])

    def test_gaps_between_events(self):
        events = [
            self.block(aware(2024, 11, 4, 9, 0), aware(2024, 11, 4, 10, 0)),
            self.block(aware(2024, 11, 4, 11, 0), aware(2024, 11, 4, 11, 30)),
        ]

        slots = find_available_slots(self.day, 60, events, now=self.yesterday)

        self.assertEqual([slot.start for slot in slots], [
            aware(2024, 11, 4, 0, 0),
            aware(2024, 11, 4, 10, 0),
            aware(2024, 11, 4, 11, 30),
        ])

    def test_gap_too_short_after_now(self):
        events = [
            self.block(aware(2024, 11, 4, 9, 0), aware(2024, 11, 4, 10, 0)),
            self.block(aware(2024, 11, 4, 11, 0), aware(2024, 11, 4, 11, 30)),
        ]

        slots = find_available_slots(self.day, 60, events, now=aware(2024, 11, 4, 10, 20))

        self.assertEqual(slots, [TimeSlot(aware(2024, 11, 4, 11, 30), aware(2024, 11, 4, 12, 30))])

    def test_slots_never_overlap_events(self):
        events = [
            self.block(aware(2024, 11, 4, 9, 0), aware(2024, 11, 4, 12, 0)),
            self.block(aware(2024, 11, 4, 10, 0), aware(2024, 11, 4, 11, 0)),
            self.block(aware(2024, 11, 4, 13, 0), aware(2024, 11, 4, 14, 0)),
        ]

        slots = find_available_slots(self.day, 60, events, now=self.yesterday)

        self.assertIn(TimeSlot(aware(2024, 11, 4, 12, 0), aware(2024, 11, 4, 13, 0)), slots)
        for slot in slots:
            for event in events:
                self.assertFalse(slot.start < event.end_time and slot.end > event.start_time)
            self.assertEqual(slot.duration, timedelta(minutes=60))

    def test_all_day_events_ignored(self):
        events = [self.block(aware(2024, 11, 4), aware(2024, 11, 5), all_day=True)]
        slots = find_available_slots(self.day, 30, events, now=self.yesterday)
        self.assertEqual(slots, [TimeSlot(aware(2024, 11, 4, 0, 0), aware(2024, 11, 4, 0, 30))])

    def test_non_positive_duration(self):
        for duration in (0, -15):
            with self.subTest(duration=duration):
                with self.assertRaises(SlotValidationError):
                    find_available_slots(self.day, duration, [], now=self.yesterday)

    def test_recurring_occurrence_blocks_time(self):
        self.make_event(start=aware(2024, 10, 28, 9, 0), minutes=8 * 60, rule=WEEKLY)

        events = collect_day_events(self.day)
        slots = find_available_slots(self.day, 60, events, now=self.yesterday)

        self.assertEqual([slot.start for slot in slots], [
            aware(2024, 11, 4, 0, 0),
            aware(2024, 11, 4, 17, 0),
        ])


@override_settings(TIME_ZONE='UTC')
class NextFreeSlotTests(SchedulingTestCase):
    """Test the next free slot search across days."""

    def clock(self):
        return aware(2024, 11, 4, 9, 7)

    def test_next_slot_today(self):
        slot = find_next_free_slot(60, clock=self.clock)
        self.assertEqual(slot, TimeSlot(aware(2024, 11, 4, 9, 15), aware(2024, 11, 4, 10, 15)))

    def test_busy_today_moves_to_tomorrow(self):
        self.make_event(start=aware(2024, 11, 4, 9, 0), minutes=15 * 60)

        slot = find_next_free_slot(60, clock=self.clock)

        self.assertEqual(slot.start, aware(2024, 11, 5, 0, 0))

    def test_fully_booked_horizon(self):
        self.make_event(start=aware(2024, 11, 3), minutes=9 * 24 * 60)
        self.assertIsNone(find_next_free_slot(60, clock=self.clock))

    def test_hidden_calendars_ignored(self):
        hidden = Calendar.objects.create(name="Hidden", is_visible=False)
        self.make_event(start=aware(2024, 11, 3), minutes=9 * 24 * 60, calendar=hidden)

        slot = find_next_free_slot(60, clock=self.clock)

        self.assertEqual(slot.start, aware(2024, 11, 4, 9, 15))

    def test_invalid_duration(self):
        with self.assertRaises(SlotValidationError):
            find_next_free_slot(0, clock=self.clock)


@override_settings(TIME_ZONE='UTC')
class TaskSchedulingTests(SchedulingTestCase):
    """Test placing tasks onto the calendar."""

    def clock(self):
        return aware(2024, 11, 4, 9, 7)

    def test_schedule_into_next_free_slot(self):
        task = Task.objects.create(content="Write report", duration_minutes=30)

        event = schedule_task(task, clock=self.clock)

        self.assertEqual(event.start_time, aware(2024, 11, 4, 9, 15))
        self.assertEqual(event.end_time, aware(2024, 11, 4, 9, 45))
        self.assertEqual(event.description, "Created from task: Write report")
        self.assertEqual(event.calendar, self.calendar)
        task.refresh_from_db()
        self.assertEqual(task.calendar_event, event)

    def test_schedule_at_explicit_time(self):
        task = Task.objects.create(content="Call bank")
        event = schedule_task(task, start_time=aware(2024, 11, 5, 14, 0), clock=self.clock)
        self.assertEqual(event.end_time, aware(2024, 11, 5, 15, 0))

    def test_no_free_slot(self):
        self.make_event(start=aware(2024, 11, 3), minutes=9 * 24 * 60)
        task = Task.objects.create(content="Write report")

        self.assertIsNone(schedule_task(task, clock=self.clock))
        task.refresh_from_db()
        self.assertFalse(task.is_scheduled)

    def test_completed_or_scheduled_task_rejected(self):
        done = Task.objects.create(content="Done", completed=True)
        with self.assertRaises(SchedulingValidationError):
            schedule_task(done, clock=self.clock)

        task = Task.objects.create(content="Once")
        schedule_task(task, clock=self.clock)
        with self.assertRaises(SchedulingValidationError):
            schedule_task(task, clock=self.clock)


@override_settings(TIME_ZONE='UTC')
class CalendarAPITests(APITestCase):
    """Test Calendar API endpoints."""

    def setUp(self):
        """Set up test client."""
        self.client = APIClient()

    def test_create_and_list_calendars(self):
        response = self.client.post('/api/calendars/', {"name": "Personal"}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['is_read_only'])

        response = self.client.get('/api/calendars/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_ics_calendar_without_url(self):
        response = self.client.post('/api/calendars/', {
            "name": "Holidays",
            "calendar_type": "ics"
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_calendar(self):
        calendar = Calendar.objects.create(name="Old")
        response = self.client.delete(f'/api/calendars/{calendar.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Calendar.objects.exists())


@override_settings(TIME_ZONE='UTC')
class EventAPITests(APITestCase):
    """Test event and occurrence API endpoints."""

    def setUp(self):
        """Create a calendar with a weekly series."""
        self.client = APIClient()
        self.calendar = Calendar.objects.create(name="Work", is_default=True)
        self.series = CalendarEvent.objects.create(
            title="Standup",
            calendar=self.calendar,
            start_time=MONDAY,
            end_time=MONDAY + timedelta(hours=1),
            recurrence_rule=WEEKLY
        )

    def list_ids(self):
        response = self.client.get('/api/events/', {
            'start': '2024-11-04T00:00:00Z',
            'end': '2024-11-26T00:00:00Z',
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return [item['id'] for item in response.data]

    def test_create_series(self):
        response = self.client.post('/api/events/', {
            "title": "Review",
            "calendar": self.calendar.id,
            "start_time": "2024-11-05T15:00:00Z",
            "end_time": "2024-11-05T16:00:00Z",
            "recurrence": {"frequency": "weekly", "interval": 2},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_recurring'])
        self.assertEqual(response.data['recurrence'], {"frequency": "weekly", "interval": 2})

    def test_create_rejects_invalid_input(self):
        base = {
            "title": "Review",
            "calendar": self.calendar.id,
            "start_time": "2024-11-05T15:00:00Z",
            "end_time": "2024-11-05T16:00:00Z",
        }
        invalid = [
            {"end_time": "2024-11-05T14:00:00Z"},
            {"recurrence": {"frequency": "weekly", "interval": 0}},
            {"recurrence": "weekly"},
        ]
        for override in invalid:
            with self.subTest(override=override):
                response = self.client.post('/api/events/', {**base, **override}, format='json')
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_in_unknown_calendar(self):
        response = self.client.post('/api/events/', {
            "title": "Review",
            "calendar": 999,
            "start_time": "2024-11-05T15:00:00Z",
            "end_time": "2024-11-05T16:00:00Z",
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_events_in_range(self):
        self.assertEqual(self.list_ids(), [
            str(self.series.pk),
            f'{self.series.pk}-recurrence-2024-11-11',
            f'{self.series.pk}-recurrence-2024-11-18',
            f'{self.series.pk}-recurrence-2024-11-25',
        ])

    def test_list_requires_valid_range(self):
        response = self.client.get('/api/events/', {
            'start': '2024-11-26T00:00:00Z',
            'end': '2024-11-04T00:00:00Z',
        })
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_occurrence(self):
        response = self.client.get(f'/api/events/{self.series.pk}-recurrence-2024-11-11/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_recurrence_instance'])
        self.assertEqual(response.data['master_id'], self.series.pk)

    def test_get_missing_occurrence(self):
        for ref in [f'{self.series.pk}-recurrence-2024-11-12', f'{self.series.pk}-recurrence-2024-10-28', 'abc', '999']:
            with self.subTest(ref=ref):
                response = self.client.get(f'/api/events/{ref}/')
                self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_single_occurrence(self):
        response = self.client.delete(f'/api/events/{self.series.pk}-recurrence-2024-11-18/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['master_deleted'])
        self.assertEqual(len(response.data['created']), 1)
        continuation_id = response.data['created'][0]['id']
        self.assertEqual(self.list_ids(), [
            str(self.series.pk),
            f'{self.series.pk}-recurrence-2024-11-11',
            continuation_id,
        ])

    def test_delete_this_and_future(self):
        response = self.client.delete(
            f'/api/events/{self.series.pk}-recurrence-2024-11-18/?scope=future'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.list_ids(), [
            str(self.series.pk),
            f'{self.series.pk}-recurrence-2024-11-11',
        ])

    def test_delete_whole_series(self):
        response = self.client.delete(f'/api/events/{self.series.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['master_deleted'])
        self.assertFalse(CalendarEvent.objects.exists())

    def test_mutating_a_date_without_occurrence(self):
        """Test that a date the series does not hit is not found and nothing changes."""
        before = self.list_ids()
        ref = f'{self.series.pk}-recurrence-2024-11-19'

        response = self.client.delete(f'/api/events/{ref}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.patch(f'/api/events/{ref}/', {
            "title": "Moved",
            "scope": "future",
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.assertEqual(self.list_ids(), before)
        self.assertEqual(CalendarEvent.objects.count(), 1)

    def test_delete_with_unknown_scope(self):
        response = self.client.delete(f'/api/events/{self.series.pk}/?scope=some')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_modify_occurrence(self):
        response = self.client.patch(f'/api/events/{self.series.pk}-recurrence-2024-11-11/', {
            "title": "Moved standup",
            "start_time": "2024-11-11T15:00:00Z",
            "scope": "this",
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        titles = [item['title'] for item in response.data['created']]
        self.assertIn("Moved standup", titles)

    def test_modify_read_only_event(self):
        ics = Calendar.objects.create(
            name="Holidays",
            calendar_type=Calendar.TYPE_ICS,
            ics_url="https://example.com/holidays.ics"
        )
        event = CalendarEvent.objects.create(
            title="Holiday",
            calendar=ics,
            start_time=MONDAY,
            end_time=MONDAY + timedelta(hours=1)
        )

        response = self.client.patch(f'/api/events/{event.pk}/', {"title": "Mine"}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


@override_settings(TIME_ZONE='UTC')
class AvailabilityAPITests(APITestCase):
    """Test availability endpoints."""

    def setUp(self):
        self.client = APIClient()
        Calendar.objects.create(name="Work", is_default=True)

    def test_day_availability(self):
        response = self.client.get('/api/availability/', {'date': '2024-11-04', 'duration': 60})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_invalid_duration(self):
        response = self.client.get('/api/availability/', {'date': '2024-11-04', 'duration': 0})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_next_free_slot(self):
        response = self.client.get('/api/availability/next/', {'duration': 30})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data['slot'])


@override_settings(TIME_ZONE='UTC')
class TaskAPITests(APITestCase):
    """Test task endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.calendar = Calendar.objects.create(name="Work", is_default=True)

    def test_create_and_schedule_task(self):
        response = self.client.post('/api/tasks/', {
            "content": "Write report",
            "duration_minutes": 45
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        task_id = response.data['id']

        response = self.client.post(f'/api/tasks/{task_id}/schedule/', {
            "start_time": "2024-11-05T14:00:00Z"
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['event']['title'], "Write report")
        self.assertTrue(response.data['task']['is_scheduled'])

        response = self.client.post(f'/api/tasks/{task_id}/schedule/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_open_tasks(self):
        Task.objects.create(content="Open")
        Task.objects.create(content="Done", completed=True)

        response = self.client.get('/api/tasks/', {'open': 'true'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['content'] for item in response.data], ["Open"])

    def test_list_tasks_in_project(self):
        project = Project.objects.create(name="Home")
        Task.objects.create(content="Paint fence", project=project, display_order=1)
        Task.objects.create(content="Fix tap", project=project, display_order=0)
        Task.objects.create(content="Loose")

        response = self.client.get('/api/tasks/', {'project': project.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['content'] for item in response.data], ["Fix tap", "Paint fence"])

    def test_move_task_to_project(self):
        project = Project.objects.create(name="Home")
        task = Task.objects.create(content="Paint fence")

        response = self.client.patch(f'/api/tasks/{task.id}/', {
            "project": project.id,
            "display_order": 3
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['project'], project.id)
        self.assertEqual(response.data['display_order'], 3)


class ProjectAPITests(APITestCase):
    """Test project endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.root = Project.objects.create(name="Work")
        self.child = Project.objects.create(name="Reports", parent=self.root)

    def names(self, params=None):
        response = self.client.get('/api/projects/', params or {})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return [item['name'] for item in response.data]

    def test_list_projects(self):
        self.assertEqual(self.names(), ["Work"])
        self.assertEqual(self.names({'parent': self.root.id}), ["Reports"])
        self.assertEqual(sorted(self.names({'all': 'true'})), ["Reports", "Work"])

    def test_create_sub_project(self):
        response = self.client.post('/api/projects/', {
            "name": "Invoices",
            "parent": self.root.id,
            "display_order": 2,
            "is_collapsed": True
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['parent'], self.root.id)
        self.assertTrue(response.data['is_collapsed'])

    def test_reject_cycles(self):
        response = self.client.patch(f'/api/projects/{self.root.id}/', {
            "parent": self.child.id
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(f'/api/projects/{self.root.id}/', {
            "parent": self.root.id
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.root.refresh_from_db()
        self.assertIsNone(self.root.parent)

    def test_delete_project(self):
        task = Task.objects.create(content="Write report", project=self.child)

        response = self.client.delete(f'/api/projects/{self.root.id}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Project.objects.exists())
        task.refresh_from_db()
        self.assertIsNone(task.project)


class HealthAPITests(APITestCase):
    """Test the health endpoint."""

    def test_health(self):
        response = self.client.get('/api/health/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ok')


class ManagementCommandTests(TestCase):
    """Test management commands."""

    def test_next_free_slot_command(self):
        """Test the next_free_slot management command."""
        Calendar.objects.create(name="Work")

        out = StringIO()
        call_command('next_free_slot', '--duration=30', stdout=out)

        self.assertIn('Next free slot', out.getvalue())

    def test_next_free_slot_invalid_duration(self):
        with self.assertRaises(CommandError):
            call_command('next_free_slot', '--duration=0', stdout=StringIO())
