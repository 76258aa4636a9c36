"""
Tier Selector
Maps a tier choice to its registration fee and required verification steps
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from django.conf import settings
from django.utils import timezone

from apps.vendors.exceptions import InvalidStateError, ValidationError
from apps.vendors.models import VendorRegistration, VerificationRecord

logger = logging.getLogger(__name__)


TIER_STANDARD = 'standard'
TIER_PREMIUM = 'premium'

TIER_CHOICES = [
    (TIER_STANDARD, 'Standard (NIN only)'),
    (TIER_PREMIUM, 'Premium (NIN + CAC)'),
]


def get_tier(choice: str) -> Dict:
    """
    Resolve a tier choice

    Returns:
        {
            'tier': 'standard',
            'verification_type': 'nin',
            'fee': Decimal('5000'),
            'required_steps': ['nin'],
        }

    Raises:
        ValidationError: Unknown tier
    """
    choice = (choice or '').strip().lower()

    if choice == TIER_STANDARD:
        return {
            'tier': TIER_STANDARD,
            'verification_type': VendorRegistration.VERIFICATION_NIN,
            'fee': Decimal(settings.VENDOR_STANDARD_FEE),
            'required_steps': [VerificationRecord.KIND_NIN],
        }

    if choice == TIER_PREMIUM:
        return {
            'tier': TIER_PREMIUM,
            'verification_type': VendorRegistration.VERIFICATION_NIN_CAC,
            'fee': Decimal(settings.VENDOR_PREMIUM_FEE),
            'required_steps': [VerificationRecord.KIND_NIN, VerificationRecord.KIND_CAC],
        }

    raise ValidationError('Please choose a valid tier (standard or premium)', choice=choice)


def tier_for_registration(registration: VendorRegistration) -> Optional[Dict]:
    """Tier matching the registration's verification type, None before selection"""
    if registration.verification_type == VendorRegistration.VERIFICATION_NIN:
        return get_tier(TIER_STANDARD)
    if registration.verification_type == VendorRegistration.VERIFICATION_NIN_CAC:
        return get_tier(TIER_PREMIUM)
    return None


def select_tier(registration: VendorRegistration, choice: str) -> VendorRegistration:
    """
    Record the tier choice on a registration

    Re-selecting the current tier is a no-op. The tier cannot change once any
    verification step has succeeded or the registration is active.
    """
    tier = get_tier(choice)
    registration.refresh_from_db()

    if registration.is_active:
        raise InvalidStateError('Your vendor registration is already complete')

    if registration.verification_type == tier['verification_type']:
        return registration

    if registration.nin_verified or registration.cac_verified:
        raise InvalidStateError(
            'Tier cannot be changed after verification has started',
            current=registration.verification_type
        )

    now = timezone.now()
    updated = VendorRegistration.objects.filter(
        pk=registration.pk,
        nin_verified=False,
        cac_verified=False,
    ).exclude(
        status=VendorRegistration.STATUS_ACTIVE
    ).update(
        verification_type=tier['verification_type'],
        tier_selected_at=now,
        updated_at=now,
    )

    registration.refresh_from_db()

    if not updated:
        raise InvalidStateError('Tier cannot be changed after verification has started')

    logger.info(f'Registration {registration.registration_id} selected {tier["tier"]} tier')
    return registration
