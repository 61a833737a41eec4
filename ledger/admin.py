from django.contrib import admin
from .models import Task


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    """Admin interface for Task."""

    list_display = ['id', 'user', 'session', 'kind', 'status', 'created_at', 'completed_at']
    list_filter = ['kind', 'status', 'created_at']
    search_fields = ['user__username', 'error_message']
    readonly_fields = [
        'session',
        'user',
        'kind',
        'status',
        'result',
        'error_message',
        'metadata',
        'created_at',
        'completed_at',
    ]

    fieldsets = (
        ('Task Info', {
            'fields': ('user', 'session', 'kind', 'status', 'completed_at')
        }),
        ('Outcome', {
            'fields': ('result', 'error_message')
        }),
        ('Metadata', {
            'fields': ('metadata', 'created_at'),
            'classes': ('collapse',),
        }),
    )
