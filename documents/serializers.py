"""
Documents app serializers
"""
from rest_framework import serializers

from approvals.services import ApprovalService

from .models import WorkflowSession


class WorkflowSessionSerializer(serializers.ModelSerializer):
    """
    Serializer for WorkflowSession.

    The owner is always taken from the request.
    """

    task_stats = serializers.SerializerMethodField()
    approval_summary = serializers.SerializerMethodField()
    approvals_resolved = serializers.SerializerMethodField()

    class Meta:
        model = WorkflowSession
        fields = [
            'id',
            'current_stage',
            'state',
            'task_stats',
            'approval_summary',
            'approvals_resolved',
            'created_at',
            'updated_at',
            'completed_at',
        ]
        read_only_fields = [
            'id',
            'task_stats',
            'approval_summary',
            'approvals_resolved',
            'created_at',
            'updated_at',
            'completed_at',
        ]

    def get_task_stats(self, obj: WorkflowSession) -> dict:
        return obj.get_task_stats()

    def get_approval_summary(self, obj: WorkflowSession) -> dict:
        return ApprovalService().summary(obj.pk, obj.user_id)

    def get_approvals_resolved(self, obj: WorkflowSession) -> bool:
        return ApprovalService().all_resolved(obj.pk, obj.user_id)
