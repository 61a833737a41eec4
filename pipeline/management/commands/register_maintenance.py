"""
Register the periodic maintenance sweeps with django-q2.

Usage: python manage.py register_maintenance
"""
from django.core.management.base import BaseCommand
from django_q.models import Schedule

MAINTENANCE_SCHEDULES = (
    ('cvcoach.sweep_expired_cache', 'caching.tasks.sweep_expired_cache', Schedule.HOURLY),
    ('cvcoach.sweep_stale_hits', 'throttling.tasks.sweep_stale_hits', Schedule.HOURLY),
    ('cvcoach.sweep_old_tasks', 'ledger.tasks.sweep_old_tasks', Schedule.DAILY),
)


class Command(BaseCommand):
    help = "Create or update the django-q schedules for cache, rate limit and task cleanup."

    def handle(self, *args, **options):
        for name, func, schedule_type in MAINTENANCE_SCHEDULES:
            _, created = Schedule.objects.update_or_create(
                name=name,
                defaults={
                    'func': func,
                    'schedule_type': schedule_type,
                    'repeats': -1,
                },
            )
            verb = 'Created' if created else 'Updated'
            self.stdout.write(f"{verb} schedule {name} -> {func}")
        self.stdout.write(self.style.SUCCESS("Maintenance schedules registered."))
