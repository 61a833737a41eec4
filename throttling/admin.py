from django.contrib import admin
from .models import RateLimitHit


@admin.register(RateLimitHit)
class RateLimitHitAdmin(admin.ModelAdmin):
    """Admin interface for RateLimitHit."""

    list_display = ['identifier', 'created_at']
    list_filter = ['created_at']
    search_fields = ['identifier']
