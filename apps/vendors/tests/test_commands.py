from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from apps.vendors.models import (
    PaymentRecord,
    VendorRegistration,
    Wallet,
    WalletTransaction,
    WebhookEvent,
)
from apps.vendors.services.flutterwave import FlutterwaveAPIError, flutterwave_service
from apps.vendors.services.paystack import PaystackAPIError, paystack_service
from apps.vendors.workflow.payments import handle_webhook, initiate, reconcile
from apps.vendors.workflow.payouts import request_payout, set_payout_account
from apps.vendors.workflow.referrals import credit_wallet

from .helpers import (
    create_active_vendor,
    create_vendor,
    flutterwave_webhook_body,
    mark_verified,
    verify_result,
)


@patch.object(flutterwave_service, 'secret_hash', 'command-hash')
@patch.object(flutterwave_service, 'verify_transaction')
class ReprocessPaymentsCommandTestCase(TestCase):

    def setUp(self):
        self.user, self.registration = create_vendor()
        mark_verified(self.registration)
        self.reference = initiate(self.registration)['reference']

    def _failed_event(self, mock_verify):
        mock_verify.side_effect = FlutterwaveAPIError('Request timeout. Please try again.')
        event = handle_webhook('flutterwave', flutterwave_webhook_body(self.reference), {'verif-hash': 'command-hash'})
        mock_verify.side_effect = None
        return event

    def test_reprocesses_failed_events(self, mock_verify):
        event = self._failed_event(mock_verify)
        mock_verify.return_value = verify_result(self.reference)

        out = StringIO()
        call_command('reprocess_payments', stdout=out)

        event.refresh_from_db()
        self.assertEqual(event.status, WebhookEvent.STATUS_PROCESSED)
        self.registration.refresh_from_db()
        self.assertTrue(self.registration.is_active)
        self.assertIn('Reprocessing finished', out.getvalue())

    def test_skips_events_over_attempt_limit(self, mock_verify):
        event = self._failed_event(mock_verify)

        call_command('reprocess_payments', max_attempts=1, stdout=StringIO())

        event.refresh_from_db()
        self.assertEqual(event.status, WebhookEvent.STATUS_FAILED)
        self.assertEqual(event.attempts, 1)

    def test_dry_run_changes_nothing(self, mock_verify):
        event = self._failed_event(mock_verify)

        out = StringIO()
        call_command('reprocess_payments', dry_run=True, stdout=out)

        event.refresh_from_db()
        self.assertEqual(event.status, WebhookEvent.STATUS_FAILED)
        self.assertIn('Would reprocess', out.getvalue())

    def test_completes_paid_but_inactive_registrations(self, mock_verify):
        mock_verify.return_value = verify_result(self.reference)
        with patch('apps.vendors.workflow.payments.finalize', side_effect=RuntimeError('database busy')):
            reconcile(self.reference)

        self.assertEqual(PaymentRecord.objects.get(reference=self.reference).status, PaymentRecord.STATUS_SUCCESS)

        call_command('reprocess_payments', stdout=StringIO())

        self.registration.refresh_from_db()
        self.assertEqual(self.registration.status, VendorRegistration.STATUS_ACTIVE)


class ReprocessPayoutsCommandTestCase(TestCase):

    def setUp(self):
        self.user, _ = create_active_vendor('earner@example.com', 'VNDEARNER01')
        credit_wallet(self.user, Decimal('3000.00'))
        set_payout_account(self.user, '0123456789', '058', 'Ada Obi')

        transfer = (False, {'status': 'pending', 'transfer_code': 'TRF_stale', 'reference': '', 'amount': Decimal('1500')})
        with patch.object(paystack_service, 'initiate_transfer', return_value=transfer):
            self.payout = request_payout(self.user, '1500', reference='CM-PAYOUT-1718000000000-stale0001')

        WalletTransaction.objects.filter(pk=self.payout.pk).update(
            created_at=timezone.now() - timedelta(hours=2)
        )

    @patch.object(paystack_service, 'verify_transfer', return_value=(True, {'status': 'success'}))
    def test_settles_stale_payouts(self, mock_verify):
        out = StringIO()
        call_command('reprocess_payments', stdout=out)

        self.payout.refresh_from_db()
        self.assertEqual(self.payout.status, WalletTransaction.STATUS_COMPLETED)
        self.assertEqual(Wallet.objects.get(user=self.user).total_withdrawn, Decimal('1500.00'))
        mock_verify.assert_called_once_with('CM-PAYOUT-1718000000000-stale0001')
        self.assertIn('completed', out.getvalue())

    @patch.object(paystack_service, 'verify_transfer', side_effect=PaystackAPIError('Request timeout. Please try again.'))
    def test_unreachable_paystack_leaves_payout_pending(self, mock_verify):
        out = StringIO()
        call_command('reprocess_payments', stdout=out)

        self.payout.refresh_from_db()
        self.assertEqual(self.payout.status, WalletTransaction.STATUS_PENDING)
        self.assertIn('Could not check payout status', out.getvalue())

    @patch.object(paystack_service, 'verify_transfer')
    def test_dry_run_lists_payouts(self, mock_verify):
        out = StringIO()
        call_command('reprocess_payments', dry_run=True, stdout=out)

        mock_verify.assert_not_called()
        self.assertIn('Would check payout CM-PAYOUT-1718000000000-stale0001', out.getvalue())
