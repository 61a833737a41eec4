"""
Ledger app views

Read-only access to the current user's tasks.
"""
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Task
from .serializers import TaskSerializer
from .services import TaskService


class TaskViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for Task.

    - GET: List current user's tasks (``?session=<id>`` to filter)
    - GET {id}: Poll a single task
    - GET history/: Most recent tasks across all sessions (``?limit=<n>``)
    - GET latest/: Newest task of a session (``?session=<id>&kind=<kind>``)
    """

    serializer_class = TaskSerializer
    permission_classes = [IsAuthenticated]
    MAX_HISTORY = 200

    def get_queryset(self):
        queryset = Task.objects.filter(user=self.request.user)
        session_id = self.request.query_params.get('session')
        if session_id:
            queryset = queryset.filter(session_id=session_id)
        return queryset

    @action(detail=False, methods=['get'])
    def history(self, request):
        try:
            limit = int(request.query_params.get('limit', 50))
        except ValueError:
            raise ValidationError({'limit': 'Must be an integer.'})
        limit = max(1, min(self.MAX_HISTORY, limit))

        tasks = TaskService().list_for_owner(request.user, limit=limit)
        return Response(TaskSerializer(tasks, many=True).data)

    @action(detail=False, methods=['get'])
    def latest(self, request):
        session_id = request.query_params.get('session')
        if not session_id or not session_id.isdigit():
            raise ValidationError({'session': 'A numeric session id is required.'})
        kind = request.query_params.get('kind') or None
        if kind and kind not in Task.Kind.values:
            raise ValidationError({'kind': f"Unknown kind: {kind}"})

        task = TaskService().latest_for_session(int(session_id), request.user, kind=kind)
        if task is None:
            return Response({'error': 'No tasks for this session.'}, status=status.HTTP_404_NOT_FOUND)
        return Response(TaskSerializer(task).data)
