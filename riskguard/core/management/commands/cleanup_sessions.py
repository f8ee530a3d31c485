"""
Management command to invalidate expired sessions.

Runs the same cleanup as the periodic Celery task, for deployments
without a beat scheduler or for one-off maintenance.
"""

import logging

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from riskguard.core.models import UserSession
from riskguard.core.services.session_service import SessionService


logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Invalidate expired sessions'

    def add_arguments(self, parser):
        parser.add_argument(
            '--user',
            help='Only clean up sessions of the user with this id or email',
        )

        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many sessions would be invalidated without changing anything',
        )

        parser.add_argument(
            '--stats',
            action='store_true',
            help='Show session statistics after cleanup',
        )

    def handle(self, *args, **options):
        """Execute the session cleanup command."""
        user = self._get_user(options['user']) if options['user'] else None
        service = SessionService()

        if options['dry_run']:
            expired = UserSession.objects.expired(timezone.now())
            if user is not None:
                expired = expired.filter(user=user)
            self.stdout.write(
                self.style.WARNING(f'[DRY RUN] Would invalidate {expired.count()} expired sessions')
            )
        else:
            count = service.cleanup_expired_sessions(user=user)
            self.stdout.write(self.style.SUCCESS(f'Invalidated {count} expired sessions'))

        if options['stats']:
            self._show_statistics(service.get_session_statistics(user=user))

    def _get_user(self, identifier):
        User = get_user_model()
        lookup = {'email__iexact': identifier} if '@' in identifier else {'pk': identifier}
        try:
            return User.objects.get(**lookup)
        except (User.DoesNotExist, ValueError):
            raise CommandError(f'User "{identifier}" does not exist')

    def _show_statistics(self, stats):
        self.stdout.write(self.style.SUCCESS('=== Session Statistics ==='))
        self.stdout.write(f"Total sessions: {stats['total_sessions']}")
        self.stdout.write(f"Active sessions: {stats['active_sessions']}")
        self.stdout.write(f"Suspicious sessions: {stats['suspicious_sessions']}")
        self.stdout.write(f"Average risk score: {stats['avg_risk_score']}")
        self.stdout.write(f"Sessions in last 24h: {stats['sessions_last_24h']}")
        for reason, count in sorted(stats['invalidation_reasons'].items()):
            self.stdout.write(f"  invalidated ({reason}): {count}")
