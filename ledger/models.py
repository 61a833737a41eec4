"""
Ledger app models

Task model recording one pipeline execution's lifecycle and outcome.
"""
from django.conf import settings
from django.db import models
from django.db.models import Q


class Task(models.Model):
    """
    One pipeline execution.

    Created with status PROCESSING and moved exactly once to COMPLETED or
    FAILED by the execution that created it.
    """

    class Kind(models.TextChoices):
        ANALYSIS = 'analysis', 'CV Analysis'
        JOB_MATCH = 'job_match', 'Job Match'
        QUESTION_GENERATION = 'question_generation', 'Interview Questions'
        LETTER_GENERATION = 'letter_generation', 'Cover Letter'
        ARTIFACT_GENERATION = 'artifact_generation', 'Updated CV'

    class Status(models.TextChoices):
        PROCESSING = 'processing', 'Processing'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'

    TERMINAL_STATUSES = (Status.COMPLETED, Status.FAILED)

    session = models.ForeignKey(
        'documents.WorkflowSession',
        on_delete=models.CASCADE,
        related_name='tasks',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='tasks',
    )
    kind = models.CharField(max_length=50, choices=Kind.choices)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PROCESSING,
    )
    result = models.JSONField(null=True, blank=True)
    error_message = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"{self.get_kind_display()} task {self.pk} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    class Meta:
        db_table = 'task'
        verbose_name = 'Task'
        verbose_name_plural = 'Tasks'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['session', 'created_at'], name='task_session_idx'),
            models.Index(fields=['status', 'created_at'], name='task_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status='processing', completed_at__isnull=True)
                    | Q(status__in=['completed', 'failed'], completed_at__isnull=False)
                ),
                name='task_completed_at_matches_status',
            ),
        ]
