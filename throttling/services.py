"""
Rate limit service

Counting sliding window: a request is admitted when fewer than ``limit`` hits
for the identifier fall inside ``[now - window, now]``. The window moves with
``now``, so there is no fixed-bucket boundary burst.

Count-then-insert runs as one atomic step: a process-wide lock serialises
callers in this process, and the in-window rows are locked for the duration of
the transaction on databases that support ``SELECT ... FOR UPDATE``.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from .models import RateLimitHit

logger = logging.getLogger(__name__)

_check_lock = threading.Lock()

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime

    @property
    def retry_after_seconds(self) -> int:
        delta = (self.reset_at - timezone.now()).total_seconds()
        return max(0, int(delta + 0.999))

    def as_headers(self) -> dict:
        headers = {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': str(self.remaining),
            'X-RateLimit-Reset': str(int(self.reset_at.timestamp())),
        }
        if not self.allowed:
            headers['Retry-After'] = str(self.retry_after_seconds)
        return headers


class RateLimitService:
    """
    Check and record requests per identifier.
    """

    def check_and_record(
        self,
        identifier: str,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        now: Optional[datetime] = None,
    ) -> RateLimitResult:
        """
        Admit and record one request, or deny it without recording.

        Any store failure denies the request.
        """
        now = now or timezone.now()
        window_start = now - timedelta(seconds=window_seconds)

        try:
            with _check_lock, transaction.atomic():
                hits = list(
                    RateLimitHit.objects.select_for_update()
                    .filter(identifier=identifier, created_at__gte=window_start)
                    .order_by('created_at')
                    .values_list('created_at', flat=True)
                )
                count = len(hits)
                oldest = hits[0] if hits else now
                reset_at = oldest + timedelta(seconds=window_seconds)

                if count >= limit:
                    logger.info(
                        "Rate limit exceeded for %s (%s/%s in %ss)",
                        identifier, count, limit, window_seconds,
                    )
                    return RateLimitResult(
                        allowed=False,
                        limit=limit,
                        remaining=0,
                        reset_at=reset_at,
                    )

                RateLimitHit.objects.create(identifier=identifier, created_at=now)
        except DatabaseError:
            logger.exception("Rate limiter store unavailable; denying %s", identifier)
            return RateLimitResult(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=now + timedelta(seconds=window_seconds),
            )

        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - count - 1),
            reset_at=reset_at,
        )

    def get_status(
        self,
        identifier: str,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        *,
        now: Optional[datetime] = None,
    ) -> RateLimitResult:
        """
        Report the current window without recording a hit.
        """
        now = now or timezone.now()
        window_start = now - timedelta(seconds=window_seconds)
        hits = RateLimitHit.objects.filter(identifier=identifier, created_at__gte=window_start)
        count = hits.count()
        oldest = hits.order_by('created_at').values_list('created_at', flat=True).first() or now
        return RateLimitResult(
            allowed=count < limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=oldest + timedelta(seconds=window_seconds),
        )

    def reset(self, identifier: str) -> None:
        RateLimitHit.objects.filter(identifier=identifier).delete()

    def cleanup(self, older_than_seconds: int = 3600) -> int:
        """
        Delete hits older than ``older_than_seconds``. Not needed for
        correctness; keeps the table small.
        """
        cutoff = timezone.now() - timedelta(seconds=older_than_seconds)
        deleted, _ = RateLimitHit.objects.filter(created_at__lt=cutoff).delete()
        return deleted
