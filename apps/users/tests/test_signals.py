from allauth.account.signals import user_signed_up
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase

from apps.vendors.models import VendorRegistration, Wallet

User = get_user_model()


class SignupRoleTestCase(TestCase):

    def setUp(self):
        self.factory = RequestFactory()

    def _sign_up(self, email, path='/accounts/signup/', data=None):
        user = User.objects.create_user(email=email, password='testpass123')
        request = self.factory.post(path, data or {})
        user_signed_up.send(sender=User, request=request, user=user)
        user.refresh_from_db()
        return user

    def test_vendor_signup_with_referral_code(self):
        user = self._sign_up('vendor@example.com', data={'next': '/vendors/onboarding/', 'ref': 'vndrefer001'})

        self.assertEqual(user.role, User.ROLE_VENDOR)
        registration = VendorRegistration.objects.get(user=user)
        self.assertEqual(registration.referred_by, 'VNDREFER001')
        self.assertEqual(registration.status, VendorRegistration.STATUS_PENDING)

    def test_vendor_signup_path(self):
        user = self._sign_up('vendor2@example.com', path='/accounts/signup/vendor/')

        self.assertTrue(user.is_vendor)
        self.assertEqual(VendorRegistration.objects.get(user=user).referred_by, '')

    def test_customer_signup(self):
        user = self._sign_up('shopper@example.com')

        self.assertEqual(user.role, User.ROLE_CUSTOMER)
        self.assertFalse(VendorRegistration.objects.filter(user=user).exists())

    def test_signup_without_request_keeps_role(self):
        user = User.objects.create_user(email='api@example.com', password='testpass123')
        user_signed_up.send(sender=User, request=None, user=user)

        user.refresh_from_db()
        self.assertEqual(user.role, User.ROLE_CUSTOMER)


class UserCreationTestCase(TestCase):

    def test_every_user_gets_a_wallet(self):
        user = User.objects.create_user(email='shopper@example.com', password='testpass123')
        self.assertTrue(Wallet.objects.filter(user=user).exists())

    def test_vendor_created_directly_gets_registration(self):
        user = User.objects.create_user(email='vendor@example.com', password='testpass123', role=User.ROLE_VENDOR)
        self.assertTrue(VendorRegistration.objects.filter(user=user).exists())
