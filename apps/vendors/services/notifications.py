"""
Notification Service
Handles email notifications for vendor onboarding

Templates:
- vendor_welcome: registration complete, carries the vendor referral code
- payment_failed: registration fee payment failed or was cancelled
- referral_bonus: referrer credited for a referred vendor
- payout_completed: wallet payout reached the vendor's bank account
- payout_failed: wallet payout failed and the amount was returned

Environment Variables:
- EMAIL_BACKEND (default: console backend)
- EMAIL_HOST, EMAIL_PORT, EMAIL_HOST_USER, EMAIL_HOST_PASSWORD
- USE_MOCK_NOTIFICATIONS (set to 'True' for testing)
"""

import os
import logging
from typing import Dict
from django.template.loader import render_to_string
from django.conf import settings
from django.utils.html import strip_tags

from core.utils.email_service import send_carmelmart_email

from .utils import mask_sensitive_data

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Custom exception for notification errors"""
    pass


class EmailService:
    """
    Email service on top of Django's email backend
    """

    def __init__(self):
        self.use_mock = os.getenv('USE_MOCK_NOTIFICATIONS', 'True').lower() == 'true'

    def send_template_email(
        self,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict
    ) -> bool:
        """
        Send email using Django template

        Args:
            to_email: Recipient email
            subject: Email subject
            template_name: Template path (e.g., 'vendors/emails/vendor_welcome.html')
            context: Template context data

        Returns:
            True if sent successfully, False otherwise
        """

        if self.use_mock:
            return self._mock_send_email(to_email, subject, f"Template: {template_name}")

        try:
            html_message = render_to_string(template_name, context)
            plain_message = strip_tags(html_message)

            send_carmelmart_email(
                subject=subject,
                message=plain_message,
                recipient_list=[to_email],
                html_message=html_message
            )

            logger.info(f'Email sent to {to_email}: {subject}')
            return True

        except Exception as e:
            logger.error(f'Template email error ({template_name}): {str(e)}')
            return False

    def _mock_send_email(self, to_email: str, subject: str, message: str) -> bool:
        """Mock email sending for testing"""
        logger.info(f'[MOCK EMAIL] To: {to_email} | Subject: {subject}')
        logger.info(f'[MOCK EMAIL] Message: {message[:100]}...')
        return True


class NotificationService:
    """
    Onboarding notifications, addressed by template id
    Sending never raises: failures are logged and reported as False
    """

    TEMPLATES = {
        'vendor_welcome': (
            'Welcome to CarmelMart - Your Vendor Account is Active!',
            'vendors/emails/vendor_welcome.html',
        ),
        'payment_failed': (
            'Vendor Registration Payment Unsuccessful',
            'vendors/emails/payment_failed.html',
        ),
        'referral_bonus': (
            'You Earned a Referral Bonus!',
            'vendors/emails/referral_bonus.html',
        ),
        'payout_completed': (
            'Your CarmelMart Payout Has Been Sent',
            'vendors/emails/payout_completed.html',
        ),
        'payout_failed': (
            'Your CarmelMart Payout Was Unsuccessful',
            'vendors/emails/payout_failed.html',
        ),
    }

    def __init__(self):
        self.email = EmailService()

    def send(self, template_id: str, recipient: str, data: Dict) -> bool:
        """
        Send a templated notification

        Args:
            template_id: One of TEMPLATES
            recipient: Email address
            data: Template context

        Returns:
            True if sent successfully
        """
        if template_id not in self.TEMPLATES:
            logger.error(f'Unknown notification template: {template_id}')
            return False

        if not recipient:
            logger.warning(f'No recipient for {template_id} notification')
            return False

        subject, template_name = self.TEMPLATES[template_id]
        context = {
            'site_url': getattr(settings, 'SITE_URL', ''),
            'support_email': getattr(settings, 'SUPPORT_EMAIL', 'support@carmelmart.com'),
            **data,
        }

        return self.email.send_template_email(
            to_email=recipient,
            subject=subject,
            template_name=template_name,
            context=context
        )

    # ==========================================
    # ONBOARDING NOTIFICATIONS
    # ==========================================

    def send_vendor_welcome(self, registration) -> bool:
        """
        Send welcome email once the registration is active

        Args:
            registration: VendorRegistration instance
        """
        return self.send('vendor_welcome', registration.email or registration.user.email, {
            'vendor_name': registration.full_name or registration.business_name,
            'business_name': registration.business_name,
            'referral_code': registration.referral_code,
            'verification_type': registration.get_verification_type_display(),
            'dashboard_url': f'{getattr(settings, "SITE_URL", "")}/vendors/onboarding/status/',
        })

    def send_payment_failed(self, registration, payment, reason: str = '') -> bool:
        """Send email when the registration fee payment fails"""
        return self.send('payment_failed', registration.email or registration.user.email, {
            'vendor_name': registration.full_name or registration.business_name,
            'reference': payment.reference,
            'amount': payment.amount,
            'currency': payment.currency,
            'reason': reason or payment.failure_reason,
        })

    def send_referral_bonus(self, referrer, referred, amount) -> bool:
        """Send email to the referrer when a bonus is credited"""
        return self.send('referral_bonus', referrer.email, {
            'referrer_name': referrer.get_full_name(),
            'referred_name': referred.get_full_name(),
            'amount': amount,
        })

    # ==========================================
    # PAYOUT NOTIFICATIONS
    # ==========================================

    def send_payout_completed(self, user, payout) -> bool:
        """Send email when a wallet payout reaches the bank"""
        wallet = payout.wallet
        return self.send('payout_completed', user.email, {
            'vendor_name': user.get_full_name(),
            'amount': payout.amount,
            'reference': payout.reference,
            'bank_name': wallet.bank_name,
            'account_number': mask_sensitive_data(wallet.account_number),
        })

    def send_payout_failed(self, user, payout, reason: str = '') -> bool:
        return self.send('payout_failed', user.email, {
            'vendor_name': user.get_full_name(),
            'amount': payout.amount,
            'reference': payout.reference,
            'reason': reason,
        })


# Singleton instance
notification_service = NotificationService()
