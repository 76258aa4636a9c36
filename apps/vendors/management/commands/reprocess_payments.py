from django.conf import settings
from django.core.management.base import BaseCommand

from apps.vendors.exceptions import ProviderError
from apps.vendors.models import PaymentRecord, VendorRegistration, WebhookEvent
from apps.vendors.workflow.payments import complete_post_payment, process_webhook_event
from apps.vendors.workflow.payouts import refresh_payout, stale_payouts


class Command(BaseCommand):
    help = (
        'Reprocess failed webhook events, finish successful payments whose registration '
        'is not active and look up payouts still pending at Paystack'
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--max-attempts',
            type=int,
            default=getattr(settings, 'WEBHOOK_MAX_ATTEMPTS', 5),
            help='Skip webhook events that have already been tried this many times',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List what would be reprocessed without changing anything',
        )

    def handle(self, *args, **options):
        max_attempts = options['max_attempts']
        dry_run = options['dry_run']

        # Webhook events
        events = WebhookEvent.objects.filter(
            status__in=[WebhookEvent.STATUS_FAILED, WebhookEvent.STATUS_RECEIVED],
            attempts__lt=max_attempts
        ).order_by('received_at')

        for event in events:
            if dry_run:
                self.stdout.write(f'- Would reprocess {event}')
                continue

            process_webhook_event(event)
            event.refresh_from_db()

            if event.status == WebhookEvent.STATUS_FAILED:
                self.stdout.write(self.style.ERROR(f'✗ {event}: {event.last_error}'))
            else:
                self.stdout.write(self.style.SUCCESS(f'✓ {event}'))

        # Successful payments without an active registration
        payments = PaymentRecord.objects.filter(
            status=PaymentRecord.STATUS_SUCCESS
        ).exclude(
            registration__status=VendorRegistration.STATUS_ACTIVE
        ).order_by('completed_at')

        for payment in payments:
            if dry_run:
                self.stdout.write(f'- Would complete follow-ups for {payment.reference}')
                continue

            outcome = complete_post_payment(payment)

            if outcome['errors']:
                self.stdout.write(self.style.ERROR(f'✗ {payment.reference}: {outcome["errors"]}'))
            else:
                self.stdout.write(self.style.SUCCESS(f'✓ {payment.reference} completed'))

        # Payouts without a transfer result
        for payout in stale_payouts():
            if dry_run:
                self.stdout.write(f'- Would check payout {payout.reference}')
                continue

            try:
                payout = refresh_payout(payout)
            except ProviderError as e:
                self.stdout.write(self.style.ERROR(f'✗ {payout.reference}: {e.message}'))
                continue

            self.stdout.write(f'• {payout.reference}: {payout.status}')

        self.stdout.write(self.style.SUCCESS('Reprocessing finished'))
