"""
URL routing for the scheduling API.
"""

from django.urls import path
from .views import (
    AvailabilityView,
    CalendarDetailView,
    CalendarListCreateView,
    EventDetailView,
    EventListCreateView,
    HealthView,
    NextFreeSlotView,
    ProjectDetailView,
    ProjectListCreateView,
    TaskDetailView,
    TaskListCreateView,
    TaskScheduleView,
)

urlpatterns = [
    path('health/', HealthView.as_view(), name='health'),
    path('calendars/', CalendarListCreateView.as_view(), name='calendar-list-create'),
    path('calendars/<int:pk>/', CalendarDetailView.as_view(), name='calendar-detail'),
    path('events/', EventListCreateView.as_view(), name='event-list-create'),
    path('events/<str:ref>/', EventDetailView.as_view(), name='event-detail'),
    path('projects/', ProjectListCreateView.as_view(), name='project-list-create'),
    path('projects/<int:pk>/', ProjectDetailView.as_view(), name='project-detail'),
    path('tasks/', TaskListCreateView.as_view(), name='task-list-create'),
    path('tasks/<int:pk>/', TaskDetailView.as_view(), name='task-detail'),
    path('tasks/<int:pk>/schedule/', TaskScheduleView.as_view(), name='task-schedule'),
    path('availability/', AvailabilityView.as_view(), name='availability'),
    path('availability/next/', NextFreeSlotView.as_view(), name='availability-next'),
]
