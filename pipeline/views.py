"""
Pipeline app views

Starting pipeline runs, answering generated interview questions and
generating the final document of a session. Every endpoint is rate limited
per client identifier and reports the window in ``X-RateLimit-*`` headers.
"""
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.utils import get_rate_limit_identifier
from documents.services import DocumentNotFound, SessionNotFound
from ledger.serializers import TaskSerializer
from throttling.services import RateLimitService

from .artifacts import ArtifactGenerationError, ArtifactGenerator, NoApprovedChanges
from .interview import AnswerEvaluationError, AnswerEvaluator, AnswerValidationError, QuestionNotFound
from .serializers import (
    AnswerSubmitSerializer,
    ArtifactSerializer,
    InterviewAnswerSerializer,
    PipelineStartSerializer,
)
from .services import PipelineValidationError, start_pipeline

logger = logging.getLogger(__name__)


def _rate_limited_response(result):
    response = Response(
        {
            'error': 'Too many requests. Please try again later.',
            'retry_after': result.retry_after_seconds,
        },
        status=status.HTTP_429_TOO_MANY_REQUESTS,
    )
    return _with_headers(response, result)


def _with_headers(response, result):
    for header, value in result.as_headers().items():
        response[header] = value
    return response


def _error(message, status_code, limit):
    return _with_headers(Response({'error': message}, status=status_code), limit)


class PipelineStartView(APIView):
    """
    GET /api/pipeline/   current rate limit window, nothing recorded
    POST /api/pipeline/  start a run

    Runs the pipeline for one task synchronously and returns the task in
    its terminal state. A failed run is still 201: the failure is recorded
    on the task.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        limit = RateLimitService().get_status(
            get_rate_limit_identifier(request),
            settings.PIPELINE_RATE_LIMIT,
            settings.PIPELINE_RATE_LIMIT_WINDOW,
        )
        return _with_headers(
            Response({
                'allowed': limit.allowed,
                'limit': limit.limit,
                'remaining': limit.remaining,
                'reset_at': limit.reset_at.isoformat(),
            }),
            limit,
        )

    def post(self, request):
        limit = RateLimitService().check_and_record(
            get_rate_limit_identifier(request),
            settings.PIPELINE_RATE_LIMIT,
            settings.PIPELINE_RATE_LIMIT_WINDOW,
        )
        if not limit.allowed:
            return _rate_limited_response(limit)

        serializer = PipelineStartSerializer(data=request.data)
        if not serializer.is_valid():
            return _with_headers(
                Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST), limit
            )
        data = serializer.validated_data

        try:
            task = start_pipeline(
                data['task_kind'],
                request.user,
                data['session_id'],
                data.get('source_text') or '',
                data.get('source_text_2'),
                document_id=data.get('document_id'),
                options=data.get('options') or {},
            )
        except PipelineValidationError as e:
            return _error(str(e), status.HTTP_400_BAD_REQUEST, limit)
        except (SessionNotFound, DocumentNotFound) as e:
            return _error(str(e), status.HTTP_404_NOT_FOUND, limit)

        return _with_headers(
            Response(TaskSerializer(task).data, status=status.HTTP_201_CREATED), limit
        )


class QuestionAnswerView(APIView):
    """
    POST /api/tasks/{id}/questions/{question_id}/answer/

    Body: ``{"answer": "..."}``. Evaluates the answer to one generated
    interview question and stores it; answering again replaces it.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, task_id, question_id):
        limit = RateLimitService().check_and_record(
            f"{get_rate_limit_identifier(request)}:evaluation",
            settings.PIPELINE_RATE_LIMIT,
            settings.PIPELINE_RATE_LIMIT_WINDOW,
        )
        if not limit.allowed:
            return _rate_limited_response(limit)

        serializer = AnswerSubmitSerializer(data=request.data)
        if not serializer.is_valid():
            return _with_headers(
                Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST), limit
            )

        try:
            record = AnswerEvaluator().evaluate(
                task_id, question_id, serializer.validated_data['answer'], request.user
            )
        except AnswerValidationError as e:
            return _error(str(e), status.HTTP_400_BAD_REQUEST, limit)
        except QuestionNotFound:
            return _error('Question not found.', status.HTTP_404_NOT_FOUND, limit)
        except AnswerEvaluationError as e:
            return _error(str(e), status.HTTP_502_BAD_GATEWAY, limit)

        return _with_headers(
            Response(InterviewAnswerSerializer(record).data, status=status.HTTP_201_CREATED), limit
        )


class SessionArtifactView(APIView):
    """
    POST /api/sessions/{id}/artifact/

    Generates the updated document from the session's approved changes.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, session_id):
        limit = RateLimitService().check_and_record(
            f"{get_rate_limit_identifier(request)}:artifact",
            settings.ARTIFACT_RATE_LIMIT,
            settings.PIPELINE_RATE_LIMIT_WINDOW,
        )
        if not limit.allowed:
            return _rate_limited_response(limit)

        try:
            artifact = ArtifactGenerator().generate(session_id, request.user)
        except SessionNotFound:
            return _error('Session not found.', status.HTTP_404_NOT_FOUND, limit)
        except NoApprovedChanges as e:
            return _error(str(e), status.HTTP_409_CONFLICT, limit)
        except ArtifactGenerationError as e:
            logger.warning("Artifact generation failed for session %s: %s", session_id, e)
            return _error(str(e), status.HTTP_502_BAD_GATEWAY, limit)

        return _with_headers(
            Response(ArtifactSerializer(artifact).data, status=status.HTTP_201_CREATED), limit
        )
