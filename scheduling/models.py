"""
Models for the scheduling system.

This implementation uses the Master Event Pattern where:
- CalendarEvent stores single events AND recurring series masters
- A master carries its recurrence rule as compact JSON; occurrences are
  projected on demand and never stored
- Project groups tasks into a nested, ordered tree
- Task stores to-do items that can be scheduled onto a calendar
"""

from datetime import timedelta

from django.db import models
from django.core.exceptions import ValidationError

from .exceptions import PatternValidationError
from .managers import CalendarManager, CalendarEventManager, ProjectManager, TaskManager
from .types import DEFAULT_TASK_DURATION, MAX_PROJECT_DEPTH, RecurrencePattern


class Calendar(models.Model):
    """
    A named, colored collection of events.

    ICS calendars mirror external feeds and are read-only.
    """

    TYPE_REGULAR = 'regular'
    TYPE_ICS = 'ics'
    TYPE_CHOICES = [
        (TYPE_REGULAR, 'Regular'),
        (TYPE_ICS, 'ICS subscription'),
    ]

    name = models.CharField(max_length=200)
    color = models.CharField(max_length=20, default='#3b82f6')
    calendar_type = models.CharField(
        max_length=20,
        choices=TYPE_CHOICES,
        default=TYPE_REGULAR
    )
    ics_url = models.URLField(blank=True, default='')
    is_visible = models.BooleanField(default=True)
    is_default = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CalendarManager()

    class Meta:
        ordering = ['-is_default', 'name']

    def __str__(self):
        return self.name

    @property
    def is_read_only(self):
        return self.calendar_type == self.TYPE_ICS

    def clean(self):
        super().clean()

        if self.calendar_type == self.TYPE_ICS and not self.ics_url:
            raise ValidationError({
                'ics_url': 'ICS calendars need a feed URL.'
            })

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)


class CalendarEvent(models.Model):
    """
    Stores single events and recurring series masters.

    Single events: recurrence_rule = ''
    Recurring series: recurrence_rule holds
        {"frequency", "interval", "end_date"?, "days_of_week"?}
    """

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    location = models.CharField(max_length=255, blank=True, default='')

    calendar = models.ForeignKey(
        Calendar,
        on_delete=models.CASCADE,
        related_name='events'
    )

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    all_day = models.BooleanField(default=False)

    recurrence_rule = models.TextField(
        blank=True,
        default='',
        help_text="Compact JSON recurrence pattern (empty = single event)"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CalendarEventManager()

    class Meta:
        ordering = ['start_time']
        indexes = [
            models.Index(fields=['calendar', 'start_time']),
            models.Index(fields=['start_time', 'end_time']),
        ]

    def __str__(self):
        suffix = " [recurring]" if self.is_recurring else ""
        return f"{self.title} - {self.start_time.strftime('%Y-%m-%d %H:%M')}{suffix}"

    @property
    def recurrence_pattern(self):
        """Parsed recurrence pattern, or None for a single event."""
        return RecurrencePattern.from_json(self.recurrence_rule)

    @recurrence_pattern.setter
    def recurrence_pattern(self, pattern):
        self.recurrence_rule = pattern.to_json() if pattern is not None else ''

    @property
    def is_recurring(self):
        return bool(self.recurrence_rule)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def clean(self):
        """Validate event data."""
        super().clean()

        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({
                'end_time': 'End time must be after start time.'
            })

        try:
            self.recurrence_pattern
        except PatternValidationError as exc:
            raise ValidationError({'recurrence_rule': str(exc)})

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)


class Project(models.Model):
    """
    A folder for tasks. Projects nest through ``parent``; siblings are
    ordered by ``display_order``.
    """

    name = models.CharField(max_length=200)
    color = models.CharField(max_length=20, blank=True, default='')
    is_default = models.BooleanField(default=False)

    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        related_name='children',
        null=True,
        blank=True
    )
    display_order = models.IntegerField(default=0)
    is_collapsed = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProjectManager()

    class Meta:
        ordering = ['display_order', 'created_at']
        indexes = [
            models.Index(fields=['parent', 'display_order']),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        """Keep the project tree acyclic and at most MAX_PROJECT_DEPTH levels deep."""
        super().clean()

        if self.parent_id is None:
            return
        if self.pk is not None and self.parent_id == self.pk:
            raise ValidationError({'parent': 'A project cannot be its own parent.'})

        ancestor = self.parent
        depth = 0
        while ancestor is not None:
            if self.pk is not None and ancestor.pk == self.pk:
                raise ValidationError({'parent': 'Circular reference in project hierarchy.'})
            depth += 1
            if depth >= MAX_PROJECT_DEPTH:
                raise ValidationError({
                    'parent': f'Project hierarchy too deep (max depth: {MAX_PROJECT_DEPTH}).'
                })
            ancestor = ancestor.parent

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)


class Task(models.Model):
    """A to-do item that can be placed onto the calendar."""

    content = models.CharField(max_length=500)
    duration_minutes = models.PositiveIntegerField(default=DEFAULT_TASK_DURATION)
    due_date = models.DateField(null=True, blank=True)
    completed = models.BooleanField(default=False)

    project = models.ForeignKey(
        Project,
        on_delete=models.SET_NULL,
        related_name='tasks',
        null=True,
        blank=True
    )
    display_order = models.IntegerField(default=0)

    calendar_event = models.ForeignKey(
        CalendarEvent,
        on_delete=models.SET_NULL,
        related_name='tasks',
        null=True,
        blank=True,
        help_text="Event this task was scheduled as"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TaskManager()

    class Meta:
        ordering = ['completed', 'display_order', 'created_at']

    def __str__(self):
        return self.content

    @property
    def is_scheduled(self):
        return self.calendar_event_id is not None

    def clean(self):
        super().clean()

        if self.duration_minutes == 0:
            raise ValidationError({
                'duration_minutes': 'Duration must be positive.'
            })

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)
