"""
Maintenance tasks for the throttling app, run by django-q2 schedules.
"""
import logging

from django.conf import settings

from .services import RateLimitService

logger = logging.getLogger(__name__)


def sweep_stale_hits() -> int:
    retention = getattr(settings, 'RATE_LIMIT_RETENTION_SECONDS', 3600)
    deleted = RateLimitService().cleanup(older_than_seconds=retention)
    logger.info("Rate limit sweep finished: %s rows removed", deleted)
    return deleted
