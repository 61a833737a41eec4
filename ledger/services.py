"""
Task ledger service

Creates tasks and applies their single terminal transition. Transitions are
conditional updates (``WHERE status = 'processing'``) so a task can never be
moved twice, even by concurrent writers.
"""
from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.utils import timezone

from .models import Task

logger = logging.getLogger(__name__)


class TaskNotFound(Exception):
    """Task is missing or belongs to another user."""


class TaskStateConflict(Exception):
    """Attempt to move a task that is already completed or failed."""


def owner_pk(owner) -> Any:
    return getattr(owner, 'pk', owner)


class TaskService:
    """
    Ledger operations for Task rows.
    """

    def create(
        self,
        kind: str,
        owner,
        session,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Task:
        """
        Record a new task in PROCESSING state.

        Returns:
            The created Task (``task.id`` is the task id).
        """
        if kind not in Task.Kind.values:
            raise ValueError(f"Unknown task kind: {kind!r}")

        task = Task.objects.create(
            session_id=owner_pk(session),
            user_id=owner_pk(owner),
            kind=kind,
            status=Task.Status.PROCESSING,
            metadata=metadata or {},
        )
        logger.info("Created %s task %s for session %s", kind, task.pk, task.session_id)
        return task

    def complete(
        self,
        task_id: int,
        result: Any,
        *,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._finish(task_id, Task.Status.COMPLETED, result=result, metadata=metadata)

    def fail(
        self,
        task_id: int,
        error_message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._finish(
            task_id,
            Task.Status.FAILED,
            error_message=error_message or "Unknown error",
            metadata=metadata,
        )

    def _finish(
        self,
        task_id: int,
        status: str,
        *,
        result: Any = None,
        error_message: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Apply the terminal transition.

        Raises:
            TaskNotFound: If the task does not exist.
            TaskStateConflict: If the task is already terminal.
        """
        fields: Dict[str, Any] = {
            'status': status,
            'completed_at': timezone.now(),
            'error_message': error_message,
        }
        if result is not None:
            fields['result'] = result
        if metadata is not None:
            fields['metadata'] = metadata

        updated = Task.objects.filter(
            id=task_id,
            status=Task.Status.PROCESSING,
        ).update(**fields)

        if updated:
            logger.info("Task %s -> %s", task_id, status)
            return

        current = Task.objects.filter(id=task_id).values_list('status', flat=True).first()
        if current is None:
            raise TaskNotFound(f"Task {task_id} not found.")
        logger.warning(
            "Refusing to move task %s to %s: already %s", task_id, status, current
        )
        raise TaskStateConflict(f"Task {task_id} is already {current}.")

    def get(self, task_id: int, owner) -> Task:
        """
        Fetch a task owned by ``owner``.

        Raises:
            TaskNotFound: If missing or owned by someone else.
        """
        try:
            return Task.objects.get(id=task_id, user_id=owner_pk(owner))
        except (Task.DoesNotExist, ValueError, TypeError) as exc:
            raise TaskNotFound(f"Task {task_id} not found.") from exc

    def poll_until_terminal(
        self,
        task_id: int,
        owner,
        max_attempts: int = 60,
        interval_ms: int = 1000,
    ) -> Task:
        """
        Re-read a task until it is terminal or ``max_attempts`` reads are used.

        Blocks the calling thread between reads. Returns the last task read,
        which may still be PROCESSING on timeout.
        """
        for attempt in range(max(1, max_attempts)):
            task = self.get(task_id, owner)
            if task.is_terminal:
                return task
            if attempt < max_attempts - 1:
                time.sleep(interval_ms / 1000)

        logger.info("Polling task %s timed out after %s attempts", task_id, max_attempts)
        return self.get(task_id, owner)

    def list_for_session(self, session_id: int, owner) -> List[Task]:
        return list(
            Task.objects.filter(session_id=session_id, user_id=owner_pk(owner)).order_by('created_at')
        )

    def list_for_owner(self, owner, limit: int = 50) -> List[Task]:
        return list(Task.objects.filter(user_id=owner_pk(owner)).order_by('-created_at', '-id')[:limit])

    def latest_for_session(self, session_id: int, owner, kind: Optional[str] = None) -> Optional[Task]:
        queryset = Task.objects.filter(session_id=session_id, user_id=owner_pk(owner))
        if kind:
            queryset = queryset.filter(kind=kind)
        return queryset.order_by('-created_at', '-id').first()

    def cleanup(self, older_than_days: int = 30) -> int:
        """
        Delete terminal tasks created more than ``older_than_days`` ago.
        """
        cutoff = timezone.now() - timedelta(days=older_than_days)
        deleted, _ = Task.objects.filter(
            status__in=Task.TERMINAL_STATUSES,
            created_at__lt=cutoff,
        ).delete()
        return deleted
