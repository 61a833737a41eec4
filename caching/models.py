"""
Caching app models
"""
from django.db import models
from django.utils import timezone


class CacheEntry(models.Model):
    """
    One cached JSON value.

    ``key`` is already scoped (``user:<id>:<key>`` or ``public:<key>``);
    scoping happens in CacheService, never here.
    """

    key = models.CharField(max_length=255, unique=True)
    value = models.JSONField()
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.key

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < timezone.now()

    class Meta:
        db_table = 'cache'
        verbose_name = 'Cache Entry'
        verbose_name_plural = 'Cache Entries'
        indexes = [
            models.Index(fields=['expires_at'], name='cache_expires_at_idx'),
        ]
