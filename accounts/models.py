"""
Accounts app models

Custom User model carrying model-usage counters for the generation pipeline.
"""
from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    Job seeker account.

    Authentication itself is handled by Django; the pipeline only needs an
    owner identity and a place to accumulate model usage.
    """

    tokens_used = models.IntegerField(default=0)
    words_used = models.IntegerField(default=0)

    def __str__(self):
        return self.username

    def record_usage(self, *, tokens: int = 0, words: int = 0) -> None:
        """
        Persist usage information after a pipeline run.

        Args:
            tokens: Number of model tokens consumed by the run.
            words: Number of user-facing words generated.
        """
        update_fields = []
        if tokens > 0:
            self.tokens_used = models.F("tokens_used") + tokens
            update_fields.append("tokens_used")
        if words > 0:
            self.words_used = models.F("words_used") + words
            update_fields.append("words_used")
        if update_fields:
            self.save(update_fields=update_fields)
            self.refresh_from_db(fields=update_fields)

    class Meta:
        verbose_name = 'User'
        verbose_name_plural = 'Users'
