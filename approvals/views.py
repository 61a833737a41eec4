"""
Approvals app views

Listing and deciding the current user's approvals.
"""
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Approval
from .serializers import ApprovalDecisionSerializer, ApprovalSerializer
from .services import (
    ApprovalConflict,
    ApprovalNotFound,
    ApprovalService,
    ApprovalValidationError,
)


class ApprovalViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for Approval.

    - GET: List approvals (``?session=<id>&status=<pending|approved|rejected>``)
    - GET {id}: Retrieve one approval
    - POST {id}/decide/: Approve or reject a pending approval
    """

    serializer_class = ApprovalSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Approval.objects.filter(user=self.request.user)
        session_id = self.request.query_params.get('session')
        if session_id:
            queryset = queryset.filter(session_id=session_id)
        status_filter = self.request.query_params.get('status')
        if status_filter:
            if status_filter not in Approval.Status.values:
                raise ValidationError({'status': f"Unknown status: {status_filter}"})
            queryset = queryset.filter(status=status_filter)
        return queryset.order_by('created_at', 'id')

    @action(detail=True, methods=['post'])
    def decide(self, request, pk=None):
        """
        POST /api/approvals/{id}/decide/

        Body: ``{"decision": "approved" | "rejected", "feedback": "..."}``
        """
        decision_serializer = ApprovalDecisionSerializer(data=request.data)
        decision_serializer.is_valid(raise_exception=True)

        try:
            approval = ApprovalService().decide(
                pk,
                request.user,
                decision_serializer.validated_data['decision'],
                decision_serializer.validated_data.get('feedback'),
            )
        except ApprovalNotFound:
            raise NotFound('Approval not found.')
        except ApprovalValidationError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except ApprovalConflict as e:
            return Response({'error': str(e)}, status=status.HTTP_409_CONFLICT)

        return Response(ApprovalSerializer(approval).data, status=status.HTTP_200_OK)
