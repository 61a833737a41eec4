"""
Throttling app models
"""
from django.db import models
from django.utils import timezone


class RateLimitHit(models.Model):
    """
    One admitted request. Rows older than the widest window in use are
    irrelevant and removed by the maintenance sweep.
    """

    identifier = models.CharField(max_length=255)
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return f"{self.identifier} @ {self.created_at.isoformat()}"

    class Meta:
        db_table = 'rate_limit_hit'
        verbose_name = 'Rate Limit Hit'
        verbose_name_plural = 'Rate Limit Hits'
        indexes = [
            models.Index(fields=['identifier', 'created_at'], name='rate_limit_lookup_idx'),
        ]
