from django.contrib import admin
from .models import Approval


@admin.register(Approval)
class ApprovalAdmin(admin.ModelAdmin):
    """Admin interface for Approval."""

    list_display = ['id', 'user', 'session', 'change_type', 'status', 'created_at', 'decided_at']
    list_filter = ['status', 'change_type', 'created_at']
    search_fields = ['user__username', 'user_feedback']
    readonly_fields = [
        'session',
        'user',
        'document',
        'task',
        'change_type',
        'original_content',
        'proposed_content',
        'status',
        'user_feedback',
        'created_at',
        'decided_at',
    ]
