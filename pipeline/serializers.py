"""
Pipeline app serializers

Input validation for starting a pipeline and answering interview questions.
"""
from rest_framework import serializers

from .models import InterviewAnswer
from .services import PIPELINE_KINDS


class PipelineStartSerializer(serializers.Serializer):
    """
    Serializer for starting a pipeline run.

    ``source_text`` may be omitted when ``document_id`` points at an
    uploaded document; ``source_text_2`` carries the job description.
    """

    task_kind = serializers.ChoiceField(choices=[str(kind) for kind in PIPELINE_KINDS])
    session_id = serializers.IntegerField(min_value=1)
    source_text = serializers.CharField(required=False, allow_blank=True, default='', trim_whitespace=False)
    source_text_2 = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    document_id = serializers.IntegerField(required=False, allow_null=True, default=None, min_value=1)
    options = serializers.JSONField(required=False, default=dict)

    def validate_options(self, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise serializers.ValidationError("options must be an object.")
        return value

    def validate(self, attrs):
        if attrs.get('document_id') is None and not (attrs.get('source_text') or '').strip():
            raise serializers.ValidationError(
                {'source_text': 'Provide source_text or document_id.'}
            )
        return attrs


class ArtifactSerializer(serializers.Serializer):
    artifact_id = serializers.IntegerField()
    task_id = serializers.IntegerField(allow_null=True)
    content = serializers.CharField()


class AnswerSubmitSerializer(serializers.Serializer):
    answer = serializers.CharField()


class InterviewAnswerSerializer(serializers.ModelSerializer):
    """
    Stored answer with its evaluation.
    """

    class Meta:
        model = InterviewAnswer
        fields = [
            'id',
            'task',
            'question_id',
            'question_text',
            'answer',
            'evaluation',
            'degraded',
            'answered_at',
        ]
        read_only_fields = fields
