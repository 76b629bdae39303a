"""
Custom managers and querysets for scheduling models.

QuerySets define chainable query methods.
Managers use QuerySets to enable method chaining.
No business logic should be here - only query operations.
"""

from django.db import models


class CalendarQuerySet(models.QuerySet):
    """Custom queryset for Calendar model with chainable methods."""

    def visible(self):
        """Get calendars currently shown to the user."""
        return self.filter(is_visible=True)

    def writable(self):
        """Get calendars whose events may be edited (non-ICS)."""
        return self.exclude(calendar_type='ics')

    def default(self):
        """Get the default calendar(s)."""
        return self.filter(is_default=True)


class CalendarManager(models.Manager):
    """Custom manager for Calendar model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return CalendarQuerySet(self.model, using=self._db)

    def visible(self):
        return self.get_queryset().visible()

    def writable(self):
        return self.get_queryset().writable()

    def default(self):
        return self.get_queryset().default()


class CalendarEventQuerySet(models.QuerySet):
    """Custom queryset for CalendarEvent model with chainable methods."""

    def for_calendars(self, calendar_ids):
        """
        Get events belonging to the given calendars.

        Args:
            calendar_ids: iterable of calendar ids, or None for all calendars
        """
        if calendar_ids is None:
            return self.all()
        return self.filter(calendar_id__in=list(calendar_ids))

    def recurring(self):
        """Get recurring series masters."""
        return self.exclude(recurrence_rule='')

    def single(self):
        """Get non-recurring events."""
        return self.filter(recurrence_rule='')

    def overlapping(self, start_datetime, end_datetime):
        """
        Get events whose own interval intersects a datetime range.

        Args:
            start_datetime: datetime object
            end_datetime: datetime object
        """
        return self.filter(
            start_time__lt=end_datetime,
            end_time__gt=start_datetime
        )

    def started_before(self, end_datetime):
        """
        Get events starting at or before a datetime.

        Args:
            end_datetime: datetime object
        """
        return self.filter(start_time__lte=end_datetime)


class CalendarEventManager(models.Manager):
    """Custom manager for CalendarEvent model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return CalendarEventQuerySet(self.model, using=self._db)

    def for_calendars(self, calendar_ids):
        return self.get_queryset().for_calendars(calendar_ids)

    def recurring(self):
        return self.get_queryset().recurring()

    def single(self):
        return self.get_queryset().single()

    def overlapping(self, start_datetime, end_datetime):
        return self.get_queryset().overlapping(start_datetime, end_datetime)

    def started_before(self, end_datetime):
        return self.get_queryset().started_before(end_datetime)


class ProjectQuerySet(models.QuerySet):
    """Custom queryset for Project model with chainable methods."""

    def roots(self):
        """Get top-level projects."""
        return self.filter(parent__isnull=True)

    def children_of(self, parent_id):
        """Get the direct sub-projects of a project."""
        return self.filter(parent_id=parent_id)


class ProjectManager(models.Manager):
    """Custom manager for Project model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return ProjectQuerySet(self.model, using=self._db)

    def roots(self):
        return self.get_queryset().roots()

    def children_of(self, parent_id):
        return self.get_queryset().children_of(parent_id)


class TaskQuerySet(models.QuerySet):
    """Custom queryset for Task model with chainable methods."""

    def open(self):
        """Get tasks not yet completed."""
        return self.filter(completed=False)

    def in_project(self, project_id):
        """Get tasks filed under a project."""
        return self.filter(project_id=project_id)

    def unscheduled(self):
        """Get open tasks that have no calendar event yet."""
        return self.open().filter(calendar_event__isnull=True)


class TaskManager(models.Manager):
    """Custom manager for Task model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return TaskQuerySet(self.model, using=self._db)

    def open(self):
        return self.get_queryset().open()

    def unscheduled(self):
        return self.get_queryset().unscheduled()

    def in_project(self, project_id):
        return self.get_queryset().in_project(project_id)
