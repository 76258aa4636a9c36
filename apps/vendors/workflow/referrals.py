"""
Referral Settlement
Credits the referring vendor exactly once per referred vendor
"""

import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.vendors.models import (
    PaymentRecord,
    ReferralRecord,
    VendorRegistration,
    Wallet,
    WalletTransaction,
)
from apps.vendors.services.notifications import notification_service
from apps.vendors.services.utils import normalize_referral_code

logger = logging.getLogger(__name__)


# ==========================================
# WALLET
# ==========================================

def credit_wallet(
    user,
    amount: Decimal,
    transaction_type: str = WalletTransaction.TYPE_CREDIT,
    reference: str = '',
    description: str = '',
    metadata: Optional[dict] = None
) -> WalletTransaction:
    """
    Credit a user's wallet and append a ledger row
    Must run inside the caller's transaction
    """
    wallet, _ = Wallet.objects.get_or_create(user=user)
    wallet = Wallet.objects.select_for_update().get(pk=wallet.pk)
    balance_before = wallet.balance

    Wallet.objects.filter(pk=wallet.pk).update(
        balance=F('balance') + amount,
        total_earned=F('total_earned') + amount,
        updated_at=timezone.now()
    )
    wallet.refresh_from_db()

    return WalletTransaction.objects.create(
        wallet=wallet,
        transaction_type=transaction_type,
        amount=amount,
        reference=reference,
        description=description,
        balance_before=balance_before,
        balance_after=wallet.balance,
        metadata=metadata or {},
    )


# ==========================================
# SETTLEMENT
# ==========================================

def resolve_referrer(referral_code: str):
    """User owning an active vendor registration with this code, or None"""
    code = normalize_referral_code(referral_code)
    if not code:
        return None

    registration = VendorRegistration.objects.select_related('user').filter(
        referral_code=code,
        status=VendorRegistration.STATUS_ACTIVE
    ).first()

    return registration.user if registration else None


def settle(
    referral_code: str,
    referred_user,
    bonus_amount: Optional[Decimal] = None,
    payment: Optional[PaymentRecord] = None
) -> Optional[ReferralRecord]:
    """
    Record a referral and credit the referrer's wallet in one transaction

    Returns:
        The new ReferralRecord, or None when there is nothing to settle
        (no code, unknown code, self-referral, already settled)
    """
    code = normalize_referral_code(referral_code)
    if not code:
        return None

    referrer = resolve_referrer(code)
    if referrer is None:
        logger.warning(f'Referral code {code} does not belong to an active vendor')
        return None

    if referrer.pk == referred_user.pk:
        logger.warning(f'Self-referral ignored for user {referred_user.pk}')
        return None

    if ReferralRecord.objects.filter(referred=referred_user).exists():
        logger.info(f'Referral for user {referred_user.pk} already settled')
        return None

    amount = Decimal(bonus_amount if bonus_amount is not None else settings.REFERRAL_BONUS_AMOUNT)

    try:
        with transaction.atomic():
            record = ReferralRecord.objects.create(
                referrer=referrer,
                referred=referred_user,
                referral_code=code,
                payment=payment,
                bonus_amount=amount,
                status=ReferralRecord.STATUS_COMPLETED,
                completed_at=timezone.now(),
            )
            credit_wallet(
                referrer,
                amount,
                transaction_type=WalletTransaction.TYPE_REFERRAL_BONUS,
                reference=payment.reference if payment else f'REF-{record.pk}',
                description=f'Referral bonus for {referred_user.email}',
                metadata={'referral_id': record.pk, 'referred_user_id': referred_user.pk},
            )

    except IntegrityError:
        logger.info(f'Referral for user {referred_user.pk} already settled')
        return None

    logger.info(f'Referral bonus ₦{amount} credited to user {referrer.pk} (code {code})')
    notification_service.send_referral_bonus(referrer, referred_user, amount)

    return record
