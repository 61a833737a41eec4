"""
URL configuration for the cvcoach project.

All endpoints live under ``/api/`` and require an authenticated user.
"""
from django.contrib import admin
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from approvals.views import ApprovalViewSet
from documents.views import WorkflowSessionViewSet
from ledger.views import TaskViewSet
from pipeline.views import PipelineStartView, QuestionAnswerView, SessionArtifactView

router = DefaultRouter()
router.register(r'sessions', WorkflowSessionViewSet, basename='session')
router.register(r'tasks', TaskViewSet, basename='task')
router.register(r'approvals', ApprovalViewSet, basename='approval')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/pipeline/', PipelineStartView.as_view(), name='pipeline-start'),
    path(
        'api/sessions/<int:session_id>/artifact/',
        SessionArtifactView.as_view(),
        name='session-artifact',
    ),
    path(
        'api/tasks/<int:task_id>/questions/<str:question_id>/answer/',
        QuestionAnswerView.as_view(),
        name='question-answer',
    ),
    path('api/', include(router.urls)),
    path('api-auth/', include('rest_framework.urls')),
]
