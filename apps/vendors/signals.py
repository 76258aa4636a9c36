"""
Vendor App Signals
Open wallets for new users and start registrations for vendor users
"""

import logging

from django.db.models.signals import post_save
from django.dispatch import receiver
from django.contrib.auth import get_user_model

from .models import Wallet

logger = logging.getLogger(__name__)

User = get_user_model()


# ==========================================
# USER SIGNALS
# ==========================================

@receiver(post_save, sender=User)
def create_user_wallet(sender, instance, created, **kwargs):
    """
    Automatically create a Wallet when a User is created
    """
    if created:
        Wallet.objects.get_or_create(user=instance)
        logger.info(f'Wallet created for: {instance.email}')


@receiver(post_save, sender=User)
def start_registration_for_vendor_users(sender, instance, created, **kwargs):
    """
    Start a VendorRegistration when a vendor User is created directly
    Sign-ups through allauth get theirs (with the referral code) from the role signal
    """
    if created and getattr(instance, 'role', None) == User.ROLE_VENDOR:
        from .workflow.registration import start_registration
        start_registration(instance)
