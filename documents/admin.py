from django.contrib import admin
from .models import Document, WorkflowSession


@admin.register(WorkflowSession)
class WorkflowSessionAdmin(admin.ModelAdmin):
    """Admin interface for WorkflowSession."""

    list_display = ['id', 'user', 'current_stage', 'created_at', 'completed_at']
    list_filter = ['current_stage', 'created_at']
    search_fields = ['user__username']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    """Admin interface for Document."""

    list_display = ['id', 'original_filename', 'kind', 'user', 'session', 'page_count', 'created_at']
    list_filter = ['kind', 'created_at']
    search_fields = ['original_filename', 'user__username']
    readonly_fields = ['created_at', 'metadata']
