"""
Maintenance tasks for the ledger app, run by django-q2 schedules.
"""
import logging

from django.conf import settings

from .services import TaskService

logger = logging.getLogger(__name__)


def sweep_old_tasks() -> int:
    retention_days = getattr(settings, 'TASK_RETENTION_DAYS', 30)
    deleted = TaskService().cleanup(older_than_days=retention_days)
    logger.info("Task sweep finished: %s rows removed", deleted)
    return deleted
