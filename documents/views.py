"""
Documents app views

ViewSet for WorkflowSession management.
"""
from rest_framework import mixins, viewsets
from rest_framework.permissions import IsAuthenticated

from .models import WorkflowSession
from .serializers import WorkflowSessionSerializer


class WorkflowSessionViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for WorkflowSession.

    - POST: Create a session for the current user
    - GET: List current user's sessions
    - GET {id}: Retrieve a session with its task stats
    """

    serializer_class = WorkflowSessionSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        """Only the current user's sessions are visible."""
        return WorkflowSession.objects.filter(user=self.request.user)

    def perform_create(self, serializer):
        """Automatically set user from request."""
        serializer.save(user=self.request.user)
