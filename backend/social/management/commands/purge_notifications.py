"""
Delete read notifications older than the retention period.

Usage: python manage.py purge_notifications [--days 30]
"""
from django.core.management.base import BaseCommand

from social.conf import social_settings
from social.notifications import notifications


class Command(BaseCommand):
    help = 'Delete notifications that were read more than --days days ago'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Retention in days (default: SOCIAL["NOTIFICATION_RETENTION_DAYS"])',
        )

    def handle(self, *args, **options):
        days = options['days']
        if days is None:
            days = social_settings.NOTIFICATION_RETENTION_DAYS
        deleted = notifications.cleanup_old_notifications(days)
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} read notifications older than {days} days"))
