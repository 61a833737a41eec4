"""
Ledger app serializers
"""
from rest_framework import serializers
from .models import Task


class TaskSerializer(serializers.ModelSerializer):
    """
    Read-only view of a task for polling clients and history pages.
    """

    degraded = serializers.SerializerMethodField()

    class Meta:
        model = Task
        fields = [
            'id',
            'session',
            'kind',
            'status',
            'result',
            'error_message',
            'degraded',
            'created_at',
            'completed_at',
        ]
        read_only_fields = fields

    def get_degraded(self, obj: Task) -> list:
        result = obj.result or {}
        if isinstance(result, dict):
            return list(result.get('degraded_stages') or [])
        return []
