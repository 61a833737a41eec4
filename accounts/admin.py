from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin interface for custom User model."""

    list_display = [
        'username',
        'email',
        'tokens_used',
        'words_used',
        'is_staff',
    ]
    list_filter = ['is_staff', 'is_superuser']
    readonly_fields = ['tokens_used', 'words_used']

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Model Usage', {'fields': ('tokens_used', 'words_used')}),
    )
