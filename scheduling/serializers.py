"""
Serializers for the scheduling API.
"""

from rest_framework import serializers

from .exceptions import PatternValidationError
from .models import Calendar, CalendarEvent, Project, Task
from .services import SCOPES
from .types import RecurrencePattern


class CalendarSerializer(serializers.ModelSerializer):
    """Serializer for reading and writing Calendar."""

    is_read_only = serializers.ReadOnlyField()

    class Meta:
        model = Calendar
        fields = [
            'id',
            'name',
            'color',
            'calendar_type',
            'ics_url',
            'is_visible',
            'is_default',
            'is_read_only',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']

    def validate(self, data):
        calendar_type = data.get('calendar_type', getattr(self.instance, 'calendar_type', Calendar.TYPE_REGULAR))
        ics_url = data.get('ics_url', getattr(self.instance, 'ics_url', ''))
        if calendar_type == Calendar.TYPE_ICS and not ics_url:
            raise serializers.ValidationError({
                'ics_url': 'ICS calendars need a feed URL.'
            })
        return data


class RecurrencePatternField(serializers.Field):
    """
    Recurrence pattern as a JSON object:
    {"frequency", "interval", "end_date"?, "days_of_week"?}
    """

    def to_representation(self, value):
        if not value:
            return None
        pattern = RecurrencePattern.from_json(value)
        return pattern.to_dict() if pattern is not None else None

    def to_internal_value(self, data):
        if data is None:
            return None
        if not isinstance(data, dict):
            raise serializers.ValidationError('Recurrence must be an object.')
        try:
            return RecurrencePattern.from_dict(data)
        except PatternValidationError as exc:
            raise serializers.ValidationError(str(exc))


class CalendarEventReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying a stored CalendarEvent (output)."""

    recurrence = RecurrencePatternField(source='recurrence_rule', read_only=True)
    is_recurring = serializers.BooleanField(read_only=True)
    is_recurrence_instance = serializers.SerializerMethodField()
    id = serializers.SerializerMethodField()
    master_id = serializers.SerializerMethodField()

    class Meta:
        model = CalendarEvent
        fields = [
            'id',
            'master_id',
            'title',
            'description',
            'location',
            'calendar',
            'start_time',
            'end_time',
            'all_day',
            'recurrence',
            'is_recurring',
            'is_recurrence_instance',
            'created_at',
            'updated_at',
        ]

    def get_id(self, obj):
        return str(obj.pk)

    def get_master_id(self, obj):
        return obj.pk

    def get_is_recurrence_instance(self, obj):
        return False


class OccurrenceSerializer(serializers.Serializer):
    """Serializer for a projected occurrence (output only)."""

    id = serializers.CharField()
    master_id = serializers.IntegerField()
    title = serializers.CharField()
    description = serializers.CharField()
    location = serializers.CharField()
    calendar = serializers.IntegerField(source='calendar_id')
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    all_day = serializers.BooleanField()
    is_recurrence_instance = serializers.BooleanField()


def serialize_instances(instances):
    """Serialize a mixed list of stored events and projected occurrences."""
    return [
        CalendarEventReadSerializer(instance).data
        if isinstance(instance, CalendarEvent)
        else OccurrenceSerializer(instance).data
        for instance in instances
    ]


class CalendarEventCreateSerializer(serializers.Serializer):
    """Serializer for creating a single event or a series master."""

    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    location = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    calendar = serializers.IntegerField()
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    all_day = serializers.BooleanField(default=False)
    recurrence = RecurrencePatternField(required=False, allow_null=True, default=None)

    def validate(self, data):
        """Ensure start is before end."""
        if data['end_time'] <= data['start_time']:
            raise serializers.ValidationError({
                'end_time': 'End time must be after start time.'
            })
        return data


class CalendarEventUpdateSerializer(serializers.Serializer):
    """Serializer for modifying an event, an occurrence or a series."""

    title = serializers.CharField(max_length=200, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    calendar = serializers.IntegerField(required=False)
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    all_day = serializers.BooleanField(required=False)
    scope = serializers.ChoiceField(choices=SCOPES, required=False)

    def validate(self, data):
        start_time = data.get('start_time')
        end_time = data.get('end_time')
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({
                'end_time': 'End time must be after start time.'
            })
        return data


class ScopeQuerySerializer(serializers.Serializer):
    """Serializer for the ``scope`` query parameter of deletions."""

    scope = serializers.ChoiceField(choices=SCOPES, required=False)


class EventRangeQuerySerializer(serializers.Serializer):
    """Serializer for event range query parameters."""

    start = serializers.DateTimeField(required=True)
    end = serializers.DateTimeField(required=True)
    calendars = serializers.CharField(required=False, allow_blank=True)

    def validate_calendars(self, value):
        return _parse_id_list(value)

    def validate(self, data):
        """Ensure start is before end."""
        if data['start'] >= data['end']:
            raise serializers.ValidationError(
                "Start datetime must be before end datetime."
            )
        return data


class AvailabilityQuerySerializer(serializers.Serializer):
    """Serializer for availability query parameters."""

    date = serializers.DateField(required=False)
    duration = serializers.IntegerField(min_value=1)
    calendars = serializers.CharField(required=False, allow_blank=True)

    def validate_calendars(self, value):
        return _parse_id_list(value)


def _parse_id_list(value):
    if not value:
        return None
    try:
        return [int(part) for part in value.split(',') if part.strip()]
    except ValueError:
        raise serializers.ValidationError('Expected a comma-separated list of ids.')


class TimeSlotSerializer(serializers.Serializer):
    """Serializer for an availability slot (output only)."""

    start = serializers.DateTimeField()
    end = serializers.DateTimeField()


class TaskSerializer(serializers.ModelSerializer):
    """Serializer for reading and writing Task."""

    is_scheduled = serializers.ReadOnlyField()

    class Meta:
        model = Task
        fields = [
            'id',
            'content',
            'duration_minutes',
            'due_date',
            'completed',
            'project',
            'display_order',
            'calendar_event',
            'is_scheduled',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['calendar_event', 'created_at', 'updated_at']

    def validate_duration_minutes(self, value):
        if value < 1:
            raise serializers.ValidationError('Duration must be positive.')
        return value


class TaskScheduleSerializer(serializers.Serializer):
    """Serializer for scheduling a task onto a calendar."""

    calendar = serializers.IntegerField(required=False)
    start_time = serializers.DateTimeField(required=False)


class ProjectSerializer(serializers.ModelSerializer):
    """Serializer for reading and writing Project."""

    class Meta:
        model = Project
        fields = [
            'id',
            'name',
            'color',
            'is_default',
            'parent',
            'display_order',
            'is_collapsed',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']

    def validate_parent(self, value):
        if value is not None and self.instance is not None and value.pk == self.instance.pk:
            raise serializers.ValidationError('A project cannot be its own parent.')
        return value


class ProjectQuerySerializer(serializers.Serializer):
    """Serializer for project list query parameters."""

    parent = serializers.IntegerField(required=False)
    all = serializers.BooleanField(required=False, default=False)


class TaskQuerySerializer(serializers.Serializer):
    """Serializer for task list query parameters."""

    open = serializers.BooleanField(required=False, default=False)
    project = serializers.IntegerField(required=False)
