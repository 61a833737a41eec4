"""
Approvals app serializers
"""
from rest_framework import serializers
from .models import Approval


class ApprovalSerializer(serializers.ModelSerializer):
    """
    Read-only view of an approval.
    """

    title = serializers.SerializerMethodField()

    class Meta:
        model = Approval
        fields = [
            'id',
            'session',
            'document',
            'task',
            'change_type',
            'title',
            'original_content',
            'proposed_content',
            'status',
            'user_feedback',
            'created_at',
            'decided_at',
        ]
        read_only_fields = fields

    def get_title(self, obj: Approval) -> str:
        content = obj.proposed_content or {}
        return content.get('title', '') if isinstance(content, dict) else ''


class ApprovalDecisionSerializer(serializers.Serializer):
    """
    Input for deciding an approval.
    """

    decision = serializers.ChoiceField(choices=[choice for choice in Approval.DECISIONS])
    feedback = serializers.CharField(required=False, allow_blank=True, max_length=2000)
