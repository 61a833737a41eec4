"""
Approvals app models
"""
from django.conf import settings
from django.db import models
from django.db.models import Q


class Approval(models.Model):
    """
    One proposed change awaiting, or having received, a user decision.

    ``decided_at`` is set iff status is not PENDING.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'

    class ChangeType(models.TextChoices):
        ADD = 'add', 'Add'
        EDIT = 'edit', 'Edit'
        REMOVE = 'remove', 'Remove'
        REORDER = 'reorder', 'Reorder'

    DECISIONS = (Status.APPROVED, Status.REJECTED)

    session = models.ForeignKey(
        'documents.WorkflowSession',
        on_delete=models.CASCADE,
        related_name='approvals',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='approvals',
    )
    document = models.ForeignKey(
        'documents.Document',
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='approvals',
    )
    task = models.ForeignKey(
        'ledger.Task',
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='approvals',
    )
    change_type = models.CharField(
        max_length=20,
        choices=ChangeType.choices,
        default=ChangeType.EDIT,
    )
    original_content = models.JSONField(default=dict, blank=True)
    proposed_content = models.JSONField(default=dict)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    user_feedback = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    decided_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        title = (self.proposed_content or {}).get('title') or self.get_change_type_display()
        return f"{title} ({self.status})"

    class Meta:
        db_table = 'approval'
        verbose_name = 'Approval'
        verbose_name_plural = 'Approvals'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['session', 'status'], name='approval_session_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status='pending', decided_at__isnull=True)
                    | Q(status__in=['approved', 'rejected'], decided_at__isnull=False)
                ),
                name='approval_decided_at_matches_status',
            ),
        ]
