"""
Management command to create default alert thresholds.
"""

from django.core.management.base import BaseCommand

from riskguard.core.models import AlertThreshold


class Command(BaseCommand):
    help = 'Create alert thresholds from ALERT_DEFAULT_THRESHOLDS for metrics that have none'

    def handle(self, *args, **options):
        created = AlertThreshold.objects.seed_defaults()
        self.stdout.write(self.style.SUCCESS(f'Created {created} alert thresholds'))
