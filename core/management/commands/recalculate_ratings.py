# Recalculate Ratings Management Command
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db.models import Avg, Count

from core.models import Review, User


class Command(BaseCommand):
    help = 'Recalculates user ratings and review counts from visible reviews.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        changed = self.recalculate_users(dry_run, batch_size)

        if dry_run:
            self.stdout.write(self.style.SUCCESS(f'Dry run completed. {changed} users would change. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Recalculation completed successfully. {changed} users updated.'))

    def recalculate_users(self, dry_run, batch_size):
        self.stdout.write('Recalculating user ratings...')

        stats_by_user = {
            row['reviewee_id']: row
            for row in Review.objects.filter(is_visible=True)
            .values('reviewee_id')
            .annotate(avg=Avg('rating'), total=Count('id'))
        }

        updates = []
        changed = 0
        count = 0

        for user in User.objects.all().iterator(chunk_size=batch_size):
            stats = stats_by_user.get(user.id)
            if stats is None or stats['avg'] is None:
                new_rating = Decimal('0.00')
                new_total = 0
            else:
                new_rating = Decimal(str(stats['avg'])).quantize(Decimal('0.01'))
                new_total = stats['total']

            if user.rating != new_rating or user.review_count != new_total:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] User {user.id}: Rating {user.rating} -> {new_rating}, '
                        f'Count {user.review_count} -> {new_total}'
                    )
                user.rating = new_rating
                user.review_count = new_total
                updates.append(user)
                changed += 1

            if len(updates) >= batch_size:
                if not dry_run:
                    User.objects.bulk_update(updates, ['rating', 'review_count'])
                updates = []

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} users...')

        if updates and not dry_run:
            User.objects.bulk_update(updates, ['rating', 'review_count'])

        self.stdout.write(f'Processed {count} users total.')
        return changed
