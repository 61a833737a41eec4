"""
Cache service

Relational key/value cache with per-user key scoping and lazy expiry.
Store failures never propagate: a broken cache costs a model call, nothing more.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from django.db import DatabaseError
from django.utils import timezone

from .models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class _Miss:
    """Sentinel for a cache miss (``None`` is a legitimate cached value)."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


def scoped_key(key: str, owner_id: Optional[object] = None) -> str:
    """
    Namespace a logical key to its owner, or to the public scope.
    """
    if owner_id is not None and owner_id != "":
        return f"user:{owner_id}:{key}"
    return f"public:{key}"


class CacheService:
    """
    Get/set/delete cached JSON values.

    Every method takes the logical key plus an optional owner id and applies
    the same scoping, so a user can never read another user's entries.
    """

    def get(self, key: str, owner_id: Optional[object] = None) -> Any:
        """
        Return the cached value, or ``MISS`` when absent or expired.

        Expired entries are deleted on read.
        """
        full_key = scoped_key(key, owner_id)
        try:
            entry = CacheEntry.objects.filter(key=full_key).first()
        except DatabaseError:
            logger.exception("Cache read failed for %s; treating as miss", full_key)
            return MISS

        if entry is None:
            return MISS

        if entry.is_expired:
            logger.debug("Cache entry %s expired at %s", full_key, entry.expires_at)
            try:
                CacheEntry.objects.filter(key=full_key, expires_at__lt=timezone.now()).delete()
            except DatabaseError:
                logger.exception("Cache delete failed for %s", full_key)
            return MISS

        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        owner_id: Optional[object] = None,
        ttl_seconds: Optional[int] = DEFAULT_TTL_SECONDS,
    ) -> None:
        """
        Insert or replace a value. ``ttl_seconds=None`` stores it without expiry.
        """
        full_key = scoped_key(key, owner_id)
        expires_at = None
        if ttl_seconds is not None:
            expires_at = timezone.now() + timedelta(seconds=ttl_seconds)

        try:
            CacheEntry.objects.update_or_create(
                key=full_key,
                defaults={"value": value, "expires_at": expires_at},
            )
        except DatabaseError:
            logger.exception("Cache write failed for %s", full_key)

    def delete(self, key: str, owner_id: Optional[object] = None) -> None:
        full_key = scoped_key(key, owner_id)
        try:
            CacheEntry.objects.filter(key=full_key).delete()
        except DatabaseError:
            logger.exception("Cache delete failed for %s", full_key)

    def has(self, key: str, owner_id: Optional[object] = None) -> bool:
        return self.get(key, owner_id) is not MISS

    def clear_expired(self) -> int:
        """
        Remove every expired entry. Returns the number of rows deleted.
        """
        deleted, _ = CacheEntry.objects.filter(expires_at__lt=timezone.now()).delete()
        if deleted:
            logger.info("Removed %s expired cache entries", deleted)
        return deleted

    def clear_user_cache(self, owner_id: object) -> int:
        """
        Remove every entry scoped to one user.
        """
        deleted, _ = CacheEntry.objects.filter(key__startswith=f"user:{owner_id}:").delete()
        return deleted
