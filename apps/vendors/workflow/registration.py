"""
Registration Finalizer
Starts vendor registrations and activates them once payment is confirmed
"""

import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.vendors.exceptions import PrerequisiteError, ReferralCodeExhaustedError
from apps.vendors.models import PaymentRecord, VendorRegistration
from apps.vendors.services.notifications import notification_service
from apps.vendors.services.utils import generate_referral_code, normalize_referral_code

logger = logging.getLogger(__name__)


def start_registration(user, referred_by: str = '') -> VendorRegistration:
    """
    Create the vendor registration for a user taking the vendor role
    Idempotent: an existing registration is returned untouched
    """
    registration, created = VendorRegistration.objects.get_or_create(
        user=user,
        defaults={
            'email': user.email,
            'phone': getattr(user, 'phone', '') or '',
            'full_name': getattr(user, 'full_name', '') or '',
            'referred_by': normalize_referral_code(referred_by)[:20],
        }
    )

    if created:
        logger.info(
            f'Vendor registration started for {user.email}'
            + (f' (referred by {registration.referred_by})' if registration.referred_by else '')
        )

    return registration


def _activate(registration: VendorRegistration) -> bool:
    """
    Assign a fresh referral code and move the registration to active

    Returns:
        True if this call activated the registration, False if it already was

    Raises:
        ReferralCodeExhaustedError: No free code within the retry budget
    """
    max_attempts = getattr(settings, 'VENDOR_REFERRAL_CODE_MAX_ATTEMPTS', 10)

    for attempt in range(1, max_attempts + 1):
        code = generate_referral_code()

        if VendorRegistration.objects.filter(referral_code=code).exists():
            logger.warning(f'Referral code collision on attempt {attempt}')
            continue

        now = timezone.now()
        try:
            with transaction.atomic():
                updated = VendorRegistration.objects.filter(
                    pk=registration.pk
                ).exclude(
                    status=VendorRegistration.STATUS_ACTIVE
                ).update(
                    status=VendorRegistration.STATUS_ACTIVE,
                    referral_code=code,
                    payment_verified=True,
                    registration_completed_at=now,
                    updated_at=now,
                )
        except IntegrityError:
            logger.warning(f'Referral code collision on attempt {attempt}')
            continue

        return bool(updated)

    logger.error(f'Could not generate a referral code for registration {registration.registration_id}')
    raise ReferralCodeExhaustedError(
        'Could not generate a unique referral code. Please try again.',
        attempts=max_attempts
    )


def _send_welcome(registration: VendorRegistration):
    sent = notification_service.send_vendor_welcome(registration)

    if not sent:
        logger.warning(f'Welcome notification failed for registration {registration.registration_id}')
        return

    VendorRegistration.objects.filter(
        pk=registration.pk,
        welcome_notified_at__isnull=True
    ).update(welcome_notified_at=timezone.now())


def finalize(registration: VendorRegistration, payment_outcome) -> VendorRegistration:
    """
    Activate a registration after a successful payment

    Args:
        registration: VendorRegistration instance
        payment_outcome: Payment status string or outcome dict with a 'status' key

    Returns:
        The registration; already-active registrations come back unchanged

    Raises:
        PrerequisiteError: Payment not successful or verification incomplete
        ReferralCodeExhaustedError
    """
    registration.refresh_from_db()

    if registration.is_active:
        logger.info(f'Registration {registration.registration_id} already active')
        return registration

    status = payment_outcome.get('status') if isinstance(payment_outcome, dict) else payment_outcome
    if status != PaymentRecord.STATUS_SUCCESS:
        raise PrerequisiteError('Payment has not been confirmed', payment_status=status)

    if not registration.verification_complete:
        raise PrerequisiteError(
            'Verification is not complete',
            missing_steps=registration.missing_steps
        )

    activated = _activate(registration)
    registration.refresh_from_db()

    if not activated:
        return registration

    logger.info(
        f'Registration {registration.registration_id} activated with referral code {registration.referral_code}'
    )
    _send_welcome(registration)
    registration.refresh_from_db()

    return registration
