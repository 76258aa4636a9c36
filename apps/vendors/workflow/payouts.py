"""
Referral Payouts
Pays wallet balance out to the vendor's bank account with Paystack transfers

The wallet is debited when the payout is requested. The payout row stays
'pending' until the transfer settles; a failed transfer credits the amount back.
"""

import logging
import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.vendors.exceptions import (
    InsufficientBalanceError,
    PrerequisiteError,
    ProviderError,
    ValidationError,
)
from apps.vendors.models import Wallet, WalletTransaction
from apps.vendors.services.notifications import notification_service
from apps.vendors.services.paystack import PaystackAPIError, paystack_service
from apps.vendors.services.utils import (
    PAYOUT_REFERENCE_PREFIX,
    generate_reference,
    mask_sensitive_data,
    validate_account_number,
    validate_bank_code,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('apps.vendors.security')

PAYOUT_REASON = 'Referral bonus'

TRANSFER_SUCCESS = 'success'
TRANSFER_FAILED = 'failed'
TRANSFER_PENDING = 'pending'


# ==========================================
# PAYOUT ACCOUNT
# ==========================================

def set_payout_account(user, account_number: str, bank_code: str, account_name: str) -> Wallet:
    """
    Register the bank account payouts are sent to

    Raises:
        ValidationError, ProviderError
    """
    account_number = re.sub(r'\s', '', account_number or '')
    bank_code = (bank_code or '').strip()
    account_name = (account_name or '').strip()

    for is_valid, error in (validate_account_number(account_number), validate_bank_code(bank_code)):
        if not is_valid:
            raise ValidationError(error)

    if not account_name:
        raise ValidationError('Account name is required')

    try:
        recipient = paystack_service.create_transfer_recipient(account_number, bank_code, account_name)
    except PaystackAPIError as e:
        logger.error(f'Transfer recipient creation failed for user {user.pk}: {str(e)}')
        raise ProviderError('Could not save your payout account. Please try again.')

    if not recipient.get('recipient_code'):
        logger.error(f'Paystack returned no recipient code for user {user.pk}')
        raise ProviderError('Could not save your payout account. Please try again.')

    wallet, _ = Wallet.objects.get_or_create(user=user)
    Wallet.objects.filter(pk=wallet.pk).update(
        account_number=account_number,
        account_name=(recipient.get('name') or account_name)[:200],
        bank_name=(recipient.get('bank_name') or '')[:100],
        bank_code=bank_code,
        recipient_code=recipient['recipient_code'][:50],
        updated_at=timezone.now()
    )
    wallet.refresh_from_db()

    logger.info(f'Payout account {mask_sensitive_data(account_number)} saved for user {user.pk}')
    return wallet


# ==========================================
# REQUEST
# ==========================================

def _parse_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError):
        raise ValidationError('Invalid payout amount')

    if not value.is_finite() or value <= 0:
        raise ValidationError('Invalid payout amount')

    if value != value.quantize(Decimal('0.01')):
        raise ValidationError('Payout amount can have at most 2 decimal places')

    return value


def _debit(wallet: Wallet, amount: Decimal, reference: str) -> WalletTransaction:
    """Hold the payout amount; runs inside the caller's transaction with the wallet locked"""
    balance_before = wallet.balance

    Wallet.objects.filter(pk=wallet.pk).update(
        balance=F('balance') - amount,
        updated_at=timezone.now()
    )
    wallet.refresh_from_db()

    return WalletTransaction.objects.create(
        wallet=wallet,
        transaction_type=WalletTransaction.TYPE_PAYOUT,
        amount=amount,
        status=WalletTransaction.STATUS_PENDING,
        reference=reference,
        description=f'Payout to {wallet.bank_name or "bank account"} {mask_sensitive_data(wallet.account_number)}',
        balance_before=balance_before,
        balance_after=wallet.balance,
        metadata={'recipient_code': wallet.recipient_code},
    )


def _existing_payout(user, reference: str) -> Optional[WalletTransaction]:
    payout = WalletTransaction.objects.select_related('wallet').filter(
        transaction_type=WalletTransaction.TYPE_PAYOUT,
        reference=reference
    ).first()

    if payout is not None and payout.wallet.user_id != user.pk:
        security_logger.warning(f'User {user.pk} reused payout reference {reference} of another wallet')
        raise ValidationError('Payout reference already used', reference=reference)

    return payout


def request_payout(user, amount, reference: Optional[str] = None) -> WalletTransaction:
    """
    Debit the wallet and transfer the amount to the payout account

    Args:
        user: Wallet owner
        amount: Amount in Naira
        reference: Idempotency key; repeating it returns the existing payout

    Returns:
        The payout WalletTransaction ('pending', 'completed' or 'failed')

    Raises:
        ValidationError, InsufficientBalanceError, PrerequisiteError, ProviderError
    """
    if reference:
        existing = _existing_payout(user, reference)
        if existing is not None:
            logger.info(f'Payout {reference} already requested ({existing.status})')
            return existing

    amount = _parse_amount(amount)
    minimum = Decimal(settings.PAYOUT_MINIMUM_AMOUNT)
    if amount < minimum:
        raise ValidationError(f'Minimum payout is ₦{minimum}', minimum=str(minimum))

    wallet, _ = Wallet.objects.get_or_create(user=user)
    if not wallet.has_payout_account:
        raise PrerequisiteError('Please add a payout bank account first')

    reference = reference or generate_reference(PAYOUT_REFERENCE_PREFIX)

    try:
        with transaction.atomic():
            wallet = Wallet.objects.select_for_update().get(pk=wallet.pk)
            if wallet.balance < amount:
                raise InsufficientBalanceError(
                    'Insufficient wallet balance',
                    balance=str(wallet.balance),
                    requested=str(amount)
                )
            payout = _debit(wallet, amount, reference)

    except IntegrityError:
        logger.info(f'Payout {reference} already requested')
        return _existing_payout(user, reference)

    logger.info(f'Payout {reference} requested: ₦{amount} for user {user.pk}')

    try:
        _, transfer = paystack_service.initiate_transfer(
            recipient_code=wallet.recipient_code,
            amount=amount,
            reference=reference,
            reason=PAYOUT_REASON
        )

    except PaystackAPIError as e:
        if e.status_code is None:
            # No answer from Paystack; the transfer webhook or refresh_payout settles it
            logger.error(f'Payout {reference} outcome unknown: {str(e)}')
            raise ProviderError('Your payout is processing. Please check back shortly.', reference=reference)

        logger.error(f'Payout {reference} rejected by Paystack: {str(e)}')
        apply_transfer_outcome(reference, TRANSFER_FAILED, reason=str(e))
        raise ProviderError('Payout could not be started. Please try again.', reference=reference)

    WalletTransaction.objects.filter(pk=payout.pk).update(
        metadata={**payout.metadata, 'transfer_code': transfer.get('transfer_code', '')}
    )

    if transfer['status'] != TRANSFER_PENDING:
        return apply_transfer_outcome(reference, transfer['status'])

    payout.refresh_from_db()
    return payout


# ==========================================
# SETTLEMENT
# ==========================================

def _reverse(payout: WalletTransaction, reason: str):
    """Credit a failed payout back; runs inside the caller's transaction"""
    wallet = Wallet.objects.select_for_update().get(pk=payout.wallet_id)
    balance_before = wallet.balance

    Wallet.objects.filter(pk=wallet.pk).update(
        balance=F('balance') + payout.amount,
        updated_at=timezone.now()
    )
    wallet.refresh_from_db()

    WalletTransaction.objects.create(
        wallet=wallet,
        transaction_type=WalletTransaction.TYPE_PAYOUT_REVERSAL,
        amount=payout.amount,
        reference=payout.reference,
        description=f'Payout {payout.reference} returned',
        balance_before=balance_before,
        balance_after=wallet.balance,
        metadata={'reason': reason[:255]},
        completed_at=timezone.now(),
    )


def apply_transfer_outcome(reference: str, status: str, reason: str = '') -> Optional[WalletTransaction]:
    """
    Settle a pending payout from a transfer result
    A payout leaves 'pending' once; later results for it change nothing

    Args:
        reference: Our payout reference
        status: 'success', 'failed' or 'pending'
        reason: Failure detail from the provider

    Returns:
        The payout, or None when no payout has this reference
    """
    payout = WalletTransaction.objects.select_related('wallet__user').filter(
        transaction_type=WalletTransaction.TYPE_PAYOUT,
        reference=reference
    ).first()

    if payout is None:
        logger.warning(f'Transfer result for unknown payout {reference}')
        return None

    if status not in (TRANSFER_SUCCESS, TRANSFER_FAILED):
        return payout

    now = timezone.now()
    new_status = WalletTransaction.STATUS_COMPLETED if status == TRANSFER_SUCCESS else WalletTransaction.STATUS_FAILED

    with transaction.atomic():
        updated = WalletTransaction.objects.filter(
            pk=payout.pk,
            status=WalletTransaction.STATUS_PENDING
        ).update(status=new_status, completed_at=now)

        if updated and status == TRANSFER_SUCCESS:
            Wallet.objects.filter(pk=payout.wallet_id).update(
                total_withdrawn=F('total_withdrawn') + payout.amount,
                updated_at=now
            )
        elif updated:
            _reverse(payout, reason or 'Transfer failed')

    payout.refresh_from_db()
    payout.wallet.refresh_from_db()
    user = payout.wallet.user

    if not updated:
        if payout.status == WalletTransaction.STATUS_COMPLETED and status == TRANSFER_FAILED:
            security_logger.warning(f'Payout {reference} reported failed after it completed')
        logger.info(f'Payout {reference} already {payout.status}')
        return payout

    if status == TRANSFER_SUCCESS:
        logger.info(f'Payout {reference} completed: ₦{payout.amount} to user {user.pk}')
        notification_service.send_payout_completed(user, payout)
    else:
        logger.warning(f'Payout {reference} failed and was returned to the wallet: {reason}')
        notification_service.send_payout_failed(user, payout, reason)

    return payout


def refresh_payout(payout: WalletTransaction) -> WalletTransaction:
    """
    Ask Paystack for the state of a pending payout
    A transfer Paystack does not know (404) was never made and is failed
    """
    try:
        _, transfer = paystack_service.verify_transfer(payout.reference)
    except PaystackAPIError as e:
        if e.status_code == 404:
            return apply_transfer_outcome(payout.reference, TRANSFER_FAILED, reason='Transfer not found')
        logger.error(f'Payout {payout.reference} lookup failed: {str(e)}')
        raise ProviderError('Could not check payout status. Please try again.', reference=payout.reference)

    return apply_transfer_outcome(payout.reference, transfer['status'])


def stale_payouts():
    """Pending payouts old enough to look up at Paystack"""
    cutoff = timezone.now() - timedelta(minutes=settings.PAYOUT_VERIFY_AFTER_MINUTES)
    return WalletTransaction.objects.filter(
        transaction_type=WalletTransaction.TYPE_PAYOUT,
        status=WalletTransaction.STATUS_PENDING,
        created_at__lt=cutoff
    ).order_by('created_at')
