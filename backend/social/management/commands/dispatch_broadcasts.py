"""
Retry real-time events whose delivery failed or never ran.

Usage: python manage.py dispatch_broadcasts [--limit 500]
"""
from django.core.management.base import BaseCommand

from social.broadcasting import dispatch_pending
from social.models import BroadcastEvent


class Command(BaseCommand):
    help = 'Publish pending broadcast events from the outbox'

    def add_arguments(self, parser):
        parser.add_argument('--limit', type=int, default=None, help='Maximum events to dispatch')

    def handle(self, *args, **options):
        delivered = dispatch_pending(limit=options['limit'])
        remaining = BroadcastEvent.objects.pending().count()
        self.stdout.write(self.style.SUCCESS(f"Dispatched {delivered} events, {remaining} still pending"))
