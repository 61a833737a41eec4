"""
Documents app models

WorkflowSession groups the work a user does on one document; Document stores
extracted text for uploaded or generated files.
"""
from django.conf import settings
from django.db import models


class WorkflowSession(models.Model):
    """
    One user workflow (e.g. analysing a CV and applying suggestions).
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='workflow_sessions',
    )
    current_stage = models.CharField(max_length=50, blank=True)
    state = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Session {self.pk} ({self.current_stage or 'new'}) for {self.user}"

    def get_task_stats(self):
        """Returns counts of ledger tasks per status for this session."""
        tasks = self.tasks.all()
        stats = {
            'total': tasks.count(),
            'completed': tasks.filter(status='completed').count(),
            'processing': tasks.filter(status='processing').count(),
            'failed': tasks.filter(status='failed').count(),
        }
        stats['success_rate'] = (
            round(stats['completed'] / stats['total'] * 100) if stats['total'] else 0
        )
        return stats

    class Meta:
        verbose_name = 'Workflow Session'
        verbose_name_plural = 'Workflow Sessions'
        ordering = ['-created_at']


class Document(models.Model):
    """
    Extracted text of an uploaded document, or a generated artifact.
    """

    class Kind(models.TextChoices):
        CV = 'cv', 'CV'
        JOB_DESCRIPTION = 'job_description', 'Job Description'
        COVER_LETTER = 'cover_letter', 'Cover Letter'
        GENERATED = 'generated', 'Generated'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='documents',
    )
    session = models.ForeignKey(
        WorkflowSession,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='documents',
    )
    kind = models.CharField(max_length=50, choices=Kind.choices, default=Kind.CV)
    original_filename = models.CharField(max_length=255, blank=True)
    parsed_text = models.TextField(blank=True)
    page_count = models.IntegerField(default=0)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.original_filename or f"{self.get_kind_display()} #{self.pk}"

    class Meta:
        verbose_name = 'Document'
        verbose_name_plural = 'Documents'
        ordering = ['-created_at']
