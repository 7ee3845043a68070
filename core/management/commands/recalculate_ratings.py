# Recalculate Ratings Management Command
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Avg, Count

from core.models import Review, User


class Command(BaseCommand):
    help = 'Recalculates tutor ratings from reviews to ensure data consistency.'

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
        if batch_size < 1:
            raise CommandError('--batch-size must be at least 1.')

        self.stdout.write('Recalculating tutor ratings...')
        tutors = User.objects.filter(role=User.ROLE_TUTOR).iterator(chunk_size=batch_size)
        updates = []
        count = 0
        corrected = 0

        for tutor in tutors:
            stats = Review.objects.filter(tutor=tutor).aggregate(avg=Avg('rating'), total=Count('id'))
            raw_avg = stats['avg']
            if raw_avg is None:
                new_avg = Decimal('0.00')
            else:
                new_avg = Decimal(str(raw_avg)).quantize(Decimal('0.01'))
            new_total = stats['total'] or 0

            if tutor.average_rating != new_avg or tutor.review_count != new_total:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] Tutor {tutor.id} ({tutor.email}): '
                        f'Rating {tutor.average_rating} -> {new_avg}, '
                        f'Count {tutor.review_count} -> {new_total}'
                    )
                tutor.average_rating = new_avg
                tutor.review_count = new_total
                updates.append(tutor)
                corrected += 1

            if len(updates) >= batch_size:
                if not dry_run:
                    User.objects.bulk_update(updates, ['average_rating', 'review_count'])
                updates = []

            count += 1

        if updates and not dry_run:
            User.objects.bulk_update(updates, ['average_rating', 'review_count'])

        self.stdout.write(f'Processed {count} tutors total, {corrected} corrected.')

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Recalculation completed successfully.'))
