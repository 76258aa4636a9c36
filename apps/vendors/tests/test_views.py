from decimal import Decimal
from unittest.mock import patch

from django.test import Client, TestCase
from django.urls import reverse

from apps.vendors.models import PaymentRecord, VendorRegistration, WebhookEvent
from apps.vendors.services.flutterwave import flutterwave_service
from apps.vendors.services.paystack import PaystackAPIError, paystack_service
from apps.vendors.services.qoreid import qoreid_service
from apps.vendors.workflow.payments import initiate
from apps.vendors.workflow.referrals import credit_wallet, settle

from .helpers import (
    User,
    create_active_vendor,
    create_vendor,
    flutterwave_webhook_body,
    mark_verified,
    verify_result,
)

NIN_DATA = {'verification_id': 1234, 'firstname': 'ADA', 'lastname': 'OBI', 'middlename': ''}


class OnboardingAccessTestCase(TestCase):

    def setUp(self):
        self.client = Client()

    def test_anonymous_gets_401(self):
        response = self.client.get(reverse('vendors:onboarding_status'))
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.json()['success'])

    def test_customer_gets_403(self):
        customer = User.objects.create_user(email='shopper@example.com', password='testpass123')
        self.client.force_login(customer)

        response = self.client.get(reverse('vendors:onboarding_status'))
        self.assertEqual(response.status_code, 403)

    def test_wrong_method(self):
        user, _ = create_vendor()
        self.client.force_login(user)

        response = self.client.get(reverse('vendors:select_tier'))
        self.assertEqual(response.status_code, 405)


class OnboardingFlowViewTestCase(TestCase):

    def setUp(self):
        self.client = Client()
        self.user, self.registration = create_vendor()
        self.client.force_login(self.user)

    def test_status(self):
        response = self.client.get(reverse('vendors:onboarding_status'))

        data = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(data['success'])
        self.assertEqual(data['registration']['current_step'], 'tier_selection')
        self.assertIsNone(data['data']['tier'])

    def test_select_tier(self):
        response = self.client.post(
            reverse('vendors:select_tier'),
            {'tier': 'premium'},
            content_type='application/json'
        )

        data = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(data['data']['fee'], '10000')
        self.assertEqual(data['data']['required_steps'], ['nin', 'cac'])
        self.assertEqual(data['registration']['current_step'], 'nin_verification')

    def test_invalid_tier_is_400(self):
        response = self.client.post(reverse('vendors:select_tier'), {'tier': 'gold'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'validation_error')

    def test_verify_nin_before_tier_is_409(self):
        response = self.client.post(reverse('vendors:verify_nin'), {
            'nin': '12345678901',
            'first_name': 'Ada',
            'last_name': 'Obi',
        })

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['code'], 'prerequisite_error')

    @patch.object(qoreid_service, 'verify_nin', return_value=(True, NIN_DATA))
    def test_verify_nin(self, mock_verify):
        self.client.post(reverse('vendors:select_tier'), {'tier': 'standard'})

        response = self.client.post(reverse('vendors:verify_nin'), {
            'nin': '12345678901',
            'first_name': 'Ada',
            'last_name': 'Obi',
        })

        data = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(data['data']['subject_number'], '*******8901')
        self.assertEqual(data['registration']['current_step'], 'payment')

    @patch.object(qoreid_service, 'verify_nin', return_value=(True, NIN_DATA))
    def test_verify_nin_mismatch_is_400(self, mock_verify):
        self.client.post(reverse('vendors:select_tier'), {'tier': 'standard'})

        response = self.client.post(reverse('vendors:verify_nin'), {
            'nin': '12345678901',
            'first_name': 'Bola',
            'last_name': 'Obi',
        })

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'identity_mismatch')

    def test_verify_cac_on_standard_tier_is_409(self):
        self.client.post(reverse('vendors:select_tier'), {'tier': 'standard'})

        response = self.client.post(reverse('vendors:verify_cac'), {
            'cac_number': 'RC200002',
            'company_name': 'Dynamite Events',
        })

        self.assertEqual(response.status_code, 409)

    def test_initiate_payment(self):
        mark_verified(self.registration)

        response = self.client.post(reverse('vendors:initiate_payment'), {})

        data = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(PaymentRecord.objects.filter(reference=data['data']['reference']).exists())
        self.assertEqual(data['data']['provider'], 'flutterwave')

    @patch.object(flutterwave_service, 'verify_transaction')
    def test_payment_callback(self, mock_verify):
        mark_verified(self.registration)
        reference = initiate(self.registration)['reference']
        mock_verify.return_value = verify_result(reference)

        response = self.client.get(reverse('vendors:payment_callback'), {
            'tx_ref': reference,
            'transaction_id': '4975361',
            'status': 'successful',
        })

        data = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(data['registration']['status'], VendorRegistration.STATUS_ACTIVE)
        mock_verify.assert_called_once_with(transaction_id='4975361', reference=reference)

    @patch.object(flutterwave_service, 'verify_transaction')
    def test_failed_payment_callback_is_402(self, mock_verify):
        mark_verified(self.registration)
        reference = initiate(self.registration)['reference']
        mock_verify.return_value = verify_result(reference, status='failed')

        response = self.client.get(reverse('vendors:payment_callback'), {'tx_ref': reference})

        self.assertEqual(response.status_code, 402)
        self.assertFalse(response.json()['success'])

    def test_callback_without_reference_is_400(self):
        response = self.client.get(reverse('vendors:payment_callback'), {'status': 'successful'})
        self.assertEqual(response.status_code, 400)

    def test_callback_for_someone_elses_payment_is_401(self):
        _, other = create_vendor(email='other@example.com')
        mark_verified(other)
        reference = initiate(other)['reference']

        response = self.client.get(reverse('vendors:payment_callback'), {'tx_ref': reference})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['code'], 'authenticity_error')


class ReferralsViewTestCase(TestCase):

    def test_overview(self):
        referrer, _ = create_active_vendor('referrer@example.com', 'VNDREFER001')
        referred, _ = create_vendor(email='new@example.com', full_name='Bola Ade')
        settle('VNDREFER001', referred)

        client = Client()
        client.force_login(referrer)
        response = client.get(reverse('vendors:referrals'))

        data = response.json()
        self.assertEqual(data['referral_code'], 'VNDREFER001')
        self.assertEqual(data['wallet']['balance'], '500.00')
        self.assertEqual(data['wallet']['total_withdrawn'], '0.00')
        self.assertIsNone(data['wallet']['payout_account'])
        self.assertEqual(len(data['referrals']), 1)
        self.assertEqual(data['referrals'][0]['referred'], 'Bola Ade')


class PayoutViewTestCase(TestCase):

    def setUp(self):
        self.user, _ = create_active_vendor('earner@example.com', 'VNDEARNER01')
        credit_wallet(self.user, Decimal('3000.00'))
        self.client = Client()
        self.client.force_login(self.user)

    def _save_account(self):
        return self.client.post(reverse('vendors:payout_account'), {
            'account_number': '0123456789',
            'bank_code': '058',
            'account_name': 'Ada Obi',
        })

    def test_save_payout_account(self):
        response = self._save_account()

        self.assertEqual(response.status_code, 200)
        account = response.json()['data']['wallet']['payout_account']
        self.assertEqual(account['account_number'], '******6789')
        self.assertEqual(account['bank_name'], 'Mock Bank')

    def test_invalid_payout_account_is_400(self):
        response = self.client.post(reverse('vendors:payout_account'), {
            'account_number': '12345',
            'bank_code': '058',
            'account_name': 'Ada Obi',
        })
        self.assertEqual(response.status_code, 400)

    def test_payout(self):
        self._save_account()

        response = self.client.post(reverse('vendors:request_payout'), {'amount': '1500'})

        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['payout']['status'], 'completed')
        self.assertEqual(data['wallet']['balance'], '1500.00')
        self.assertEqual(data['wallet']['total_withdrawn'], '1500.00')

    def test_payout_without_account_is_409(self):
        response = self.client.post(reverse('vendors:request_payout'), {'amount': '1500'})
        self.assertEqual(response.status_code, 409)

    def test_payout_above_balance_is_400(self):
        self._save_account()

        response = self.client.post(reverse('vendors:request_payout'), {'amount': '5000'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'insufficient_balance')

    @patch.object(paystack_service, 'initiate_transfer', side_effect=PaystackAPIError('Declined', 400))
    def test_failed_payout_is_402_on_repeat(self, mock_transfer):
        self._save_account()
        payload = {'amount': '1500', 'reference': 'CM-PAYOUT-1718000000000-a1b2c3d4e'}

        first = self.client.post(reverse('vendors:request_payout'), payload)
        second = self.client.post(reverse('vendors:request_payout'), payload)

        self.assertEqual(first.status_code, 502)
        self.assertEqual(second.status_code, 402)
        self.assertEqual(second.json()['data']['payout']['status'], 'failed')
        self.assertEqual(second.json()['data']['wallet']['balance'], '3000.00')
        mock_transfer.assert_called_once()

    def test_pending_vendor_cannot_withdraw_409(self):
        user, _ = create_vendor(email='pending@example.com')
        client = Client()
        client.force_login(user)

        response = client.post(reverse('vendors:request_payout'), {'amount': '1500'})
        self.assertEqual(response.status_code, 409)


@patch.object(flutterwave_service, 'secret_hash', 'view-secret-hash')
class WebhookViewTestCase(TestCase):

    def setUp(self):
        self.client = Client()
        self.url = reverse('vendors:payment_webhook', kwargs={'provider': 'flutterwave'})
        self.user, self.registration = create_vendor()
        mark_verified(self.registration)
        self.reference = initiate(self.registration)['reference']

    def test_get_is_liveness_check(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)

    def test_bad_signature_is_401(self):
        response = self.client.post(
            self.url,
            data=flutterwave_webhook_body(self.reference),
            content_type='application/json',
            HTTP_VERIF_HASH='forged'
        )

        self.assertEqual(response.status_code, 401)
        self.assertFalse(WebhookEvent.objects.exists())

    @patch.object(flutterwave_service, 'verify_transaction')
    def test_signed_webhook(self, mock_verify):
        mock_verify.return_value = verify_result(self.reference)

        response = self.client.post(
            self.url,
            data=flutterwave_webhook_body(self.reference),
            content_type='application/json',
            HTTP_VERIF_HASH='view-secret-hash'
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'received': True, 'status': WebhookEvent.STATUS_PROCESSED})
        self.registration.refresh_from_db()
        self.assertTrue(self.registration.is_active)

    def test_unknown_provider_is_400(self):
        response = self.client.post(
            reverse('vendors:payment_webhook', kwargs={'provider': 'stripe'}),
            data=b'{}',
            content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)
