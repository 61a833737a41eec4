from datetime import timedelta
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from throttling.models import RateLimitHit
from throttling.services import RateLimitService


class RateLimitServiceTests(TestCase):
    """Sliding window admission."""

    def setUp(self) -> None:
        self.service = RateLimitService()
        self.t0 = timezone.now()

    def at(self, seconds: float):
        return self.t0 + timedelta(seconds=seconds)

    def test_limit_requests_pass_and_the_next_is_denied(self) -> None:
        results = [
            self.service.check_and_record("user:1", limit=3, window_seconds=60, now=self.at(i))
            for i in range(3)
        ]
        self.assertTrue(all(result.allowed for result in results))
        self.assertEqual([result.remaining for result in results], [2, 1, 0])

        denied = self.service.check_and_record("user:1", limit=3, window_seconds=60, now=self.at(3))
        self.assertFalse(denied.allowed)
        self.assertEqual(denied.remaining, 0)
        self.assertEqual(denied.reset_at, self.at(60))
        self.assertEqual(RateLimitHit.objects.filter(identifier="user:1").count(), 3)

    def test_requests_pass_again_once_the_window_slides(self) -> None:
        for i in range(3):
            self.service.check_and_record("user:1", limit=3, window_seconds=60, now=self.at(i))

        partial = self.service.check_and_record("user:1", limit=3, window_seconds=60, now=self.at(60.5))
        self.assertTrue(partial.allowed)
        self.assertEqual(partial.remaining, 0)

        later = self.service.check_and_record("user:1", limit=3, window_seconds=60, now=self.at(200))
        self.assertTrue(later.allowed)
        self.assertEqual(later.remaining, 2)

    def test_identifiers_are_independent(self) -> None:
        self.service.check_and_record("user:1", limit=1, window_seconds=60, now=self.at(0))
        other = self.service.check_and_record("ip:10.0.0.1", limit=1, window_seconds=60, now=self.at(0))
        self.assertTrue(other.allowed)

    def test_store_failure_denies(self) -> None:
        with mock.patch(
            "throttling.services.RateLimitHit.objects.select_for_update",
            side_effect=DatabaseError("database is locked"),
        ):
            result = self.service.check_and_record("user:1", limit=5, window_seconds=60)
        self.assertFalse(result.allowed)
        self.assertEqual(result.remaining, 0)

    def test_denied_headers_include_retry_after(self) -> None:
        self.service.check_and_record("user:1", limit=1, window_seconds=60)
        denied = self.service.check_and_record("user:1", limit=1, window_seconds=60)
        headers = denied.as_headers()
        self.assertEqual(headers["X-RateLimit-Limit"], "1")
        self.assertEqual(headers["X-RateLimit-Remaining"], "0")
        self.assertGreater(int(headers["Retry-After"]), 0)

    def test_get_status_does_not_record(self) -> None:
        self.service.check_and_record("user:1", limit=2, window_seconds=60)
        status = self.service.get_status("user:1", limit=2, window_seconds=60)
        self.assertTrue(status.allowed)
        self.assertEqual(status.remaining, 1)
        self.assertEqual(RateLimitHit.objects.count(), 1)

    def test_cleanup_and_reset(self) -> None:
        RateLimitHit.objects.create(identifier="user:1", created_at=timezone.now() - timedelta(hours=2))
        RateLimitHit.objects.create(identifier="user:1")
        self.assertEqual(self.service.cleanup(older_than_seconds=3600), 1)

        self.service.reset("user:1")
        self.assertFalse(RateLimitHit.objects.exists())
