from django.contrib import admin
from .models import InterviewAnswer


@admin.register(InterviewAnswer)
class InterviewAnswerAdmin(admin.ModelAdmin):
    """Admin interface for InterviewAnswer."""

    list_display = ['id', 'user', 'task', 'question_id', 'degraded', 'answered_at']
    list_filter = ['degraded', 'answered_at']
    search_fields = ['user__username', 'question_text']
    readonly_fields = ['user', 'task', 'question_id', 'question_text', 'answer', 'evaluation', 'degraded', 'answered_at']
