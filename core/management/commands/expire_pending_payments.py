# Expire Pending Payments Management Command
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from core.lifecycle import LifecycleEngine
from core.models import Payment


class Command(BaseCommand):
    help = 'Marks pending payments older than the reconciliation window as failed.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--minutes',
            type=int,
            default=settings.PAYMENT_PENDING_TIMEOUT_MINUTES,
            help='Age in minutes after which a pending payment is expired.',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the payments that would be expired without changing them.',
        )
        parser.add_argument(
            '--no-verify',
            action='store_true',
            help='Do not ask the payment gateway before expiring a payment.',
        )

    def handle(self, *args, **options):
        minutes = options['minutes']
        if minutes < 1:
            raise CommandError('--minutes must be at least 1.')

        window = timedelta(minutes=minutes)

        if options['dry_run']:
            cutoff = timezone.now() - window
            stale = Payment.objects.filter(status=Payment.STATUS_PENDING, created_at__lt=cutoff)
            for payment in stale:
                self.stdout.write(
                    f'  [DRY-RUN] Payment {payment.id} ({payment.transaction_id}) '
                    f'for application {payment.application_id}, created {payment.created_at}'
                )
            self.stdout.write(self.style.SUCCESS(
                f'Dry run completed. {stale.count()} payment(s) would be checked.'
            ))
            return

        expired, settled = LifecycleEngine().expire_pending_payments(
            older_than=window,
            verify_with_gateway=not options['no_verify'],
        )

        for payment in settled:
            self.stdout.write(
                f'  Payment {payment.id} ({payment.transaction_id}) succeeded at the gateway; '
                f'left pending for confirmation.'
            )

        self.stdout.write(self.style.SUCCESS(
            f'Expired {len(expired)} pending payment(s). {len(settled)} awaiting confirmation.'
        ))
