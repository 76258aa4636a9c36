from unittest.mock import patch

from django.test import TestCase, override_settings

from apps.vendors.exceptions import PrerequisiteError, ReferralCodeExhaustedError
from apps.vendors.models import VendorRegistration
from apps.vendors.services.notifications import notification_service
from apps.vendors.workflow.registration import finalize, start_registration

from .helpers import create_active_vendor, create_vendor, mark_verified


class StartRegistrationTestCase(TestCase):

    def test_vendor_signup_opens_registration(self):
        user, registration = create_vendor(phone='08012345678')

        self.assertEqual(registration.email, user.email)
        self.assertEqual(registration.phone, '08012345678')
        self.assertEqual(registration.status, VendorRegistration.STATUS_PENDING)
        self.assertEqual(registration.current_step, 'tier_selection')

    def test_existing_registration_is_returned(self):
        user, registration = create_vendor()

        again = start_registration(user, referred_by='VNDREFER001')

        self.assertEqual(again.pk, registration.pk)
        self.assertEqual(again.referred_by, '')


class FinalizeTestCase(TestCase):

    def setUp(self):
        self.user, self.registration = create_vendor()
        mark_verified(self.registration)

    def test_activation_assigns_referral_code(self):
        registration = finalize(self.registration, {'status': 'success'})

        self.assertTrue(registration.is_active)
        self.assertTrue(registration.payment_verified)
        self.assertRegex(registration.referral_code, r'^VND[A-Z0-9]{8}$')
        self.assertIsNotNone(registration.registration_completed_at)
        self.assertIsNotNone(registration.welcome_notified_at)
        self.assertEqual(registration.current_step, 'complete')

    def test_finalize_is_idempotent(self):
        first = finalize(self.registration, 'success')
        code = first.referral_code

        with patch.object(notification_service, 'send_vendor_welcome') as mock_welcome:
            second = finalize(self.registration, 'success')

        self.assertEqual(second.referral_code, code)
        mock_welcome.assert_not_called()

    def test_requires_successful_payment(self):
        for status in ('pending', 'failed', 'cancelled', None):
            with self.assertRaises(PrerequisiteError):
                finalize(self.registration, status)

        self.registration.refresh_from_db()
        self.assertFalse(self.registration.is_active)

    def test_requires_completed_verification(self):
        _, registration = create_vendor(email='premium@example.com')
        VendorRegistration.objects.filter(pk=registration.pk).update(
            verification_type=VendorRegistration.VERIFICATION_NIN_CAC,
            nin_verified=True
        )

        with self.assertRaises(PrerequisiteError):
            finalize(registration, 'success')

    def test_code_collision_retries(self):
        create_active_vendor('taken@example.com', 'VNDTAKEN001')
        codes = iter(['VNDTAKEN001', 'VNDTAKEN001', 'VNDFRESH001'])

        with patch('apps.vendors.workflow.registration.generate_referral_code', side_effect=lambda: next(codes)):
            registration = finalize(self.registration, 'success')

        self.assertEqual(registration.referral_code, 'VNDFRESH001')

    @override_settings(VENDOR_REFERRAL_CODE_MAX_ATTEMPTS=3)
    def test_code_exhaustion(self):
        create_active_vendor('taken@example.com', 'VNDTAKEN001')

        with patch('apps.vendors.workflow.registration.generate_referral_code', return_value='VNDTAKEN001') as mock_generate:
            with self.assertRaises(ReferralCodeExhaustedError):
                finalize(self.registration, 'success')

        self.assertEqual(mock_generate.call_count, 3)
        self.registration.refresh_from_db()
        self.assertFalse(self.registration.is_active)
        self.assertIsNone(self.registration.referral_code)

    @patch.object(notification_service, 'send_vendor_welcome', return_value=False)
    def test_welcome_failure_does_not_undo_activation(self, mock_welcome):
        registration = finalize(self.registration, 'success')

        self.assertTrue(registration.is_active)
        self.assertIsNone(registration.welcome_notified_at)
        mock_welcome.assert_called_once()
