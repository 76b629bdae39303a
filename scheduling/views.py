"""Views for the scheduling API."""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.shortcuts import get_object_or_404
from django.utils import timezone

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from .availability import collect_day_events, find_available_slots, find_next_free_slot
from .exceptions import (
    CalendarNotFoundError,
    EventNotFoundError,
    EventStoreError,
    ReadOnlyCalendarError,
    SchedulingValidationError,
)
from .models import Calendar, Project, Task
from .recurrence import find_occurrence, parse_event_reference
from .serializers import (
    AvailabilityQuerySerializer,
    CalendarEventCreateSerializer,
    CalendarEventReadSerializer,
    CalendarEventUpdateSerializer,
    CalendarSerializer,
    EventRangeQuerySerializer,
    OccurrenceSerializer,
    ProjectQuerySerializer,
    ProjectSerializer,
    ScopeQuerySerializer,
    TaskQuerySerializer,
    TaskScheduleSerializer,
    TaskSerializer,
    TimeSlotSerializer,
    serialize_instances,
)
from . import services
from .types import EventChanges, EventCreateData, PersistedEvent

logger = logging.getLogger(__name__)


_ERROR_STATUS = (
    (EventNotFoundError, status.HTTP_404_NOT_FOUND),
    (CalendarNotFoundError, status.HTTP_404_NOT_FOUND),
    (SchedulingValidationError, status.HTTP_400_BAD_REQUEST),
    (ReadOnlyCalendarError, status.HTTP_400_BAD_REQUEST),
    (EventStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def scheduling_exception_handler(exc, context):
    """Map domain errors to HTTP responses, then defer to DRF."""
    for error_class, error_status in _ERROR_STATUS:
        if isinstance(exc, error_class):
            if error_status >= 500:
                logger.error("Request to %s failed: %s", context['request'].path, exc)
            return Response({'detail': str(exc)}, status=error_status)

    if isinstance(exc, DjangoValidationError):
        return Response({'detail': exc.messages}, status=status.HTTP_400_BAD_REQUEST)

    return exception_handler(exc, context)


def _mutation_response(result):
    return {
        'master': CalendarEventReadSerializer(result.master).data if result.master else None,
        'master_deleted': result.master_deleted,
        'created': [CalendarEventReadSerializer(event).data for event in result.created],
    }


class CalendarListCreateView(APIView):
    """
    List all calendars or create a new one.

    GET /api/calendars/ - List calendars
    POST /api/calendars/ - Create a calendar
    """

    def get(self, request):
        calendars = Calendar.objects.all()
        serializer = CalendarSerializer(calendars, many=True)
        return Response(serializer.data)

    def post(self, request):
        serializer = CalendarSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        calendar = serializer.save()
        return Response(CalendarSerializer(calendar).data, status=status.HTTP_201_CREATED)


class CalendarDetailView(APIView):
    """
    Retrieve, update, or delete a calendar.

    GET /api/calendars/{id}/
    PATCH /api/calendars/{id}/
    DELETE /api/calendars/{id}/ - Deletes the calendar and its events
    """

    def get(self, request, pk):
        calendar = get_object_or_404(Calendar, pk=pk)
        return Response(CalendarSerializer(calendar).data)

    def patch(self, request, pk):
        calendar = get_object_or_404(Calendar, pk=pk)
        serializer = CalendarSerializer(calendar, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        calendar = serializer.save()
        return Response(CalendarSerializer(calendar).data)

    def delete(self, request, pk):
        calendar = get_object_or_404(Calendar, pk=pk)
        name = calendar.name
        calendar.delete()
        return Response({
            'message': f'Calendar "{name}" has been deleted.'
        }, status=status.HTTP_200_OK)


class EventListCreateView(APIView):
    """
    List events within a range or create a new event / series.

    GET /api/events/?start=X&end=Y[&calendars=1,2] - Stored events and
        projected occurrences intersecting the range
    POST /api/events/ - Create a single event or a recurring series
    """

    def get(self, request):
        query_serializer = EventRangeQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        instances = services.get_events_in_range(
            data['start'],
            data['end'],
            data.get('calendars')
        )
        return Response(serialize_instances(instances))

    def post(self, request):
        serializer = CalendarEventCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        event = services.create_event(EventCreateData(
            title=data['title'],
            description=data.get('description', ''),
            location=data.get('location', ''),
            calendar_id=data['calendar'],
            start_time=data['start_time'],
            end_time=data['end_time'],
            all_day=data.get('all_day', False),
            recurrence_pattern=data.get('recurrence'),
        ))
        return Response(CalendarEventReadSerializer(event).data, status=status.HTTP_201_CREATED)


class EventDetailView(APIView):
    """
    Retrieve, modify, or delete an event, an occurrence or a series.

    ``ref`` is a stored event id or a synthetic occurrence id
    ({masterId}-recurrence-{YYYY-MM-DD}).

    GET /api/events/{ref}/
    PATCH /api/events/{ref}/ - body may carry scope: this | future | all
    DELETE /api/events/{ref}/?scope=this|future|all
    """

    def get(self, request, ref):
        reference = parse_event_reference(ref)
        event, occurrence_start = services.resolve_event_reference(reference)

        if isinstance(reference, PersistedEvent):
            return Response(CalendarEventReadSerializer(event).data)

        occurrence = find_occurrence(event, occurrence_start)
        return Response(OccurrenceSerializer(occurrence).data)

    def patch(self, request, ref):
        reference = parse_event_reference(ref)
        serializer = CalendarEventUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        changes = EventChanges(
            title=data.get('title'),
            description=data.get('description'),
            location=data.get('location'),
            calendar_id=data.get('calendar'),
            start_time=data.get('start_time'),
            end_time=data.get('end_time'),
            all_day=data.get('all_day'),
        )
        result = services.modify_by_reference(reference, changes, scope=data.get('scope'))
        return Response(_mutation_response(result))

    def delete(self, request, ref):
        reference = parse_event_reference(ref)
        query_serializer = ScopeQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        result = services.delete_by_reference(
            reference,
            scope=query_serializer.validated_data.get('scope')
        )
        return Response(_mutation_response(result), status=status.HTTP_200_OK)


class ProjectListCreateView(APIView):
    """
    List projects or create a new one.

    GET /api/projects/ - Top-level projects
    GET /api/projects/?parent=ID - Sub-projects of a project
    GET /api/projects/?all=true - Every project
    POST /api/projects/
    """

    def get(self, request):
        query_serializer = ProjectQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        if data['all']:
            projects = Project.objects.all()
        elif 'parent' in data:
            projects = Project.objects.children_of(data['parent'])
        else:
            projects = Project.objects.roots()
        return Response(ProjectSerializer(projects, many=True).data)

    def post(self, request):
        serializer = ProjectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        project = serializer.save()
        return Response(ProjectSerializer(project).data, status=status.HTTP_201_CREATED)


class ProjectDetailView(APIView):
    """
    Retrieve, update, or delete a project.

    GET /api/projects/{id}/
    PATCH /api/projects/{id}/
    DELETE /api/projects/{id}/ - Sub-projects go with it; tasks are kept
        without a project
    """

    def get(self, request, pk):
        project = get_object_or_404(Project, pk=pk)
        return Response(ProjectSerializer(project).data)

    def patch(self, request, pk):
        project = get_object_or_404(Project, pk=pk)
        serializer = ProjectSerializer(project, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        project = serializer.save()
        return Response(ProjectSerializer(project).data)

    def delete(self, request, pk):
        project = get_object_or_404(Project, pk=pk)
        name = project.name
        project.delete()
        return Response({
            'message': f'Project "{name}" has been deleted.'
        }, status=status.HTTP_200_OK)


class TaskListCreateView(APIView):
    """
    List tasks or create a new one.

    GET /api/tasks/[?open=true][&project=ID]
    POST /api/tasks/
    """

    def get(self, request):
        query_serializer = TaskQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        tasks = Task.objects.all()
        if data['open']:
            tasks = tasks.open()
        if 'project' in data:
            tasks = tasks.in_project(data['project'])
        return Response(TaskSerializer(tasks, many=True).data)

    def post(self, request):
        serializer = TaskSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = serializer.save()
        return Response(TaskSerializer(task).data, status=status.HTTP_201_CREATED)


class TaskDetailView(APIView):
    """
    Retrieve, update, or delete a task.

    GET /api/tasks/{id}/
    PATCH /api/tasks/{id}/
    DELETE /api/tasks/{id}/
    """

    def get(self, request, pk):
        task = get_object_or_404(Task, pk=pk)
        return Response(TaskSerializer(task).data)

    def patch(self, request, pk):
        task = get_object_or_404(Task, pk=pk)
        serializer = TaskSerializer(task, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        task = serializer.save()
        return Response(TaskSerializer(task).data)

    def delete(self, request, pk):
        task = get_object_or_404(Task, pk=pk)
        content = task.content
        task.delete()
        return Response({
            'message': f'Task "{content}" has been deleted.'
        }, status=status.HTTP_200_OK)


class TaskScheduleView(APIView):
    """
    Place a task on the calendar.

    POST /api/tasks/{id}/schedule/ - optional calendar and start_time; without
        start_time the next free slot is used
    """

    def post(self, request, pk):
        task = get_object_or_404(Task, pk=pk)
        serializer = TaskScheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        event = services.schedule_task(
            task,
            calendar_id=serializer.validated_data.get('calendar'),
            start_time=serializer.validated_data.get('start_time'),
        )
        if event is None:
            return Response({
                'detail': 'No free slot found in the coming days.'
            }, status=status.HTTP_409_CONFLICT)

        return Response({
            'task': TaskSerializer(task).data,
            'event': CalendarEventReadSerializer(event).data,
        }, status=status.HTTP_201_CREATED)


class AvailabilityView(APIView):
    """
    Free slots of a given duration on one day.

    GET /api/availability/?date=YYYY-MM-DD&duration=N[&calendars=1,2]
    """

    def get(self, request):
        query_serializer = AvailabilityQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        day = data.get('date') or timezone.localdate()
        events = collect_day_events(day, data.get('calendars'))
        slots = find_available_slots(day, data['duration'], events)
        return Response(TimeSlotSerializer(slots, many=True).data)


class NextFreeSlotView(APIView):
    """
    First free slot from now on within the search horizon.

    GET /api/availability/next/?duration=N[&calendars=1,2]
    """

    def get(self, request):
        query_serializer = AvailabilityQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        data = query_serializer.validated_data
        slot = find_next_free_slot(data['duration'], data.get('calendars'))
        if slot is None:
            return Response({'slot': None})
        return Response({'slot': TimeSlotSerializer(slot).data})


class HealthView(APIView):
    """
    Liveness check.

    GET /api/health/
    """

    def get(self, request):
        return Response({'status': 'ok', 'message': 'Backend is running.'})
