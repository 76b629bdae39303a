"""
Admin configuration for the scheduling app.
"""

from django.contrib import admin
from .models import Calendar, CalendarEvent, Project, Task


@admin.register(Calendar)
class CalendarAdmin(admin.ModelAdmin):
    """Admin interface for Calendar model."""

    list_display = ['name', 'calendar_type', 'is_visible', 'is_default']
    list_filter = ['calendar_type', 'is_visible', 'is_default']
    search_fields = ['name']

    readonly_fields = ['created_at', 'updated_at']


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    """Admin interface for CalendarEvent model."""

    list_display = ['title', 'start_time', 'end_time', 'all_day', 'is_recurring', 'calendar']
    list_filter = ['calendar', 'all_day', 'created_at']
    search_fields = ['title', 'description', 'location']
    date_hierarchy = 'start_time'

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'description', 'location', 'calendar')
        }),
        ('Schedule', {
            'fields': ('start_time', 'end_time', 'all_day')
        }),
        ('Recurrence', {
            'fields': ('recurrence_rule',)
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    readonly_fields = ['created_at', 'updated_at']

    @admin.display(boolean=True)
    def is_recurring(self, obj):
        return obj.is_recurring


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    """Admin interface for Task model."""

    list_display = ['content', 'project', 'duration_minutes', 'due_date', 'completed', 'calendar_event']
    list_filter = ['completed', 'project', 'due_date']
    search_fields = ['content']

    readonly_fields = ['created_at', 'updated_at']


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    """Admin interface for Project model."""

    list_display = ['name', 'parent', 'display_order', 'is_default', 'is_collapsed']
    list_filter = ['is_default']
    search_fields = ['name']

    readonly_fields = ['created_at', 'updated_at']
