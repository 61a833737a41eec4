"""
Maintenance tasks for the caching app, run by django-q2 schedules.
"""
import logging

from .services import CacheService

logger = logging.getLogger(__name__)


def sweep_expired_cache() -> int:
    """
    Reclaim space held by expired entries. Reads already ignore them.
    """
    deleted = CacheService().clear_expired()
    logger.info("Cache sweep finished: %s rows removed", deleted)
    return deleted
