# Expire Needs Management Command
from django.core.management.base import BaseCommand

from core.services import NeedService


class Command(BaseCommand):
    help = 'Marks active needs whose expiry time has passed as expired and notifies their owners.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the needs that would expire without changing them.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        needs = NeedService().expire_overdue_needs(dry_run=dry_run)

        for need in needs:
            prefix = '[DRY-RUN] ' if dry_run else ''
            self.stdout.write(f'  {prefix}Need {need.id} ({need.title}) expired at {need.expires_at}')

        if dry_run:
            self.stdout.write(self.style.SUCCESS(f'Dry run completed. {len(needs)} needs would expire.'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Expired {len(needs)} needs.'))
