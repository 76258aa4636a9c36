from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase

from apps.vendors.models import ReferralRecord, Wallet, WalletTransaction
from apps.vendors.services.notifications import notification_service
from apps.vendors.workflow.referrals import credit_wallet, resolve_referrer, settle

from .helpers import create_active_vendor, create_vendor


class CreditWalletTestCase(TestCase):

    def test_credit_updates_balance_and_ledger(self):
        user, _ = create_vendor()

        first = credit_wallet(user, Decimal('500'), reference='REF-1')
        second = credit_wallet(user, Decimal('250'), reference='REF-2')

        wallet = Wallet.objects.get(user=user)
        self.assertEqual(wallet.balance, Decimal('750.00'))
        self.assertEqual(wallet.total_earned, Decimal('750.00'))
        self.assertEqual(first.balance_before, Decimal('0.00'))
        self.assertEqual(second.balance_before, Decimal('500.00'))
        self.assertEqual(second.balance_after, Decimal('750.00'))

    def test_wallet_created_on_first_credit(self):
        user, _ = create_vendor()
        Wallet.objects.filter(user=user).delete()

        credit_wallet(user, Decimal('100'))

        self.assertTrue(Wallet.objects.filter(user=user, balance=Decimal('100')).exists())


class SettleReferralTestCase(TestCase):

    def setUp(self):
        self.referrer, self.referrer_registration = create_active_vendor('referrer@example.com', 'VNDREFER001')
        self.referred, self.referred_registration = create_vendor(email='new@example.com')

    @patch.object(notification_service, 'send_referral_bonus', return_value=True)
    def test_settle_credits_referrer_once(self, mock_notify):
        record = settle('vndrefer001', self.referred)

        self.assertEqual(record.status, ReferralRecord.STATUS_COMPLETED)
        self.assertEqual(record.bonus_amount, Decimal('500'))
        self.assertEqual(record.referral_code, 'VNDREFER001')
        self.assertEqual(Wallet.objects.get(user=self.referrer).balance, Decimal('500.00'))
        mock_notify.assert_called_once_with(self.referrer, self.referred, Decimal('500'))

        self.assertIsNone(settle('VNDREFER001', self.referred))
        self.assertEqual(Wallet.objects.get(user=self.referrer).balance, Decimal('500.00'))
        self.assertEqual(
            WalletTransaction.objects.filter(transaction_type=WalletTransaction.TYPE_REFERRAL_BONUS).count(),
            1
        )

    def test_ledger_reference_without_payment(self):
        record = settle('VNDREFER001', self.referred, bonus_amount=Decimal('750'))

        transaction = WalletTransaction.objects.get(wallet__user=self.referrer)
        self.assertEqual(transaction.reference, f'REF-{record.pk}')
        self.assertEqual(transaction.amount, Decimal('750.00'))
        self.assertEqual(transaction.metadata['referred_user_id'], self.referred.pk)

    def test_no_code(self):
        self.assertIsNone(settle('', self.referred))
        self.assertIsNone(settle(None, self.referred))
        self.assertFalse(ReferralRecord.objects.exists())

    def test_unknown_code(self):
        self.assertIsNone(settle('VNDNOBODY99', self.referred))
        self.assertFalse(ReferralRecord.objects.exists())

    def test_self_referral(self):
        self.assertIsNone(settle('VNDREFER001', self.referrer))
        self.assertEqual(Wallet.objects.get(user=self.referrer).balance, Decimal('0.00'))

    def test_inactive_vendor_code_does_not_resolve(self):
        self.referrer_registration.status = 'pending'
        self.referrer_registration.save(update_fields=['status'])

        self.assertIsNone(resolve_referrer('VNDREFER001'))
        self.assertIsNone(settle('VNDREFER001', self.referred))

    @patch.object(notification_service, 'send_referral_bonus', return_value=False)
    def test_notification_failure_keeps_credit(self, mock_notify):
        record = settle('VNDREFER001', self.referred)

        self.assertIsNotNone(record)
        self.assertEqual(Wallet.objects.get(user=self.referrer).balance, Decimal('500.00'))
