"""
Onboarding operations called by the views
Each UI operation returns {'success', 'message', 'registration', 'data'}
"""

import logging
from typing import Dict, Mapping, Optional

from apps.vendors.exceptions import AuthenticityError, PrerequisiteError, ValidationError
from apps.vendors.models import PaymentRecord, VendorRegistration, VerificationRecord, Wallet, WalletTransaction
from apps.vendors.services.utils import mask_sensitive_data

from . import payments, payouts, tiers, verification

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('apps.vendors.security')


def get_registration(user) -> VendorRegistration:
    try:
        return VendorRegistration.objects.select_related('user').get(user=user)
    except VendorRegistration.DoesNotExist:
        raise PrerequisiteError('No vendor registration found for this account')


def _result(message: str, registration: VendorRegistration, data: Optional[Dict] = None) -> Dict:
    return {
        'success': True,
        'message': message,
        'registration': registration.to_state(),
        'data': data or {},
    }


def registration_state(user) -> Dict:
    registration = get_registration(user)
    tier = tiers.tier_for_registration(registration)

    return _result('Registration status', registration, {
        'tier': tier['tier'] if tier else None,
        'fee': str(tier['fee']) if tier else None,
        'required_steps': registration.required_steps,
        'missing_steps': registration.missing_steps,
    })


def select_tier(user, choice: str) -> Dict:
    registration = tiers.select_tier(get_registration(user), choice)
    tier = tiers.get_tier(choice)

    return _result(f'{tier["tier"].title()} tier selected', registration, {
        'tier': tier['tier'],
        'fee': str(tier['fee']),
        'required_steps': tier['required_steps'],
    })


def submit_nin_verification(user, nin: str, first_name: str, last_name: str) -> Dict:
    outcome = verification.verify(get_registration(user), VerificationRecord.KIND_NIN, {
        'nin': nin,
        'first_name': first_name,
        'last_name': last_name,
    })

    message = 'NIN already verified' if outcome['cached'] else 'NIN verified successfully'
    return _result(message, outcome['registration'], {
        'subject_name': outcome['subject_name'],
        'subject_number': outcome['subject_number'],
        'cached': outcome['cached'],
    })


def submit_cac_verification(user, cac_number: str, company_name: str) -> Dict:
    outcome = verification.verify(get_registration(user), VerificationRecord.KIND_CAC, {
        'cac_number': cac_number,
        'company_name': company_name,
    })

    message = 'CAC already verified' if outcome['cached'] else 'CAC verified successfully'
    return _result(message, outcome['registration'], {
        'subject_name': outcome['subject_name'],
        'subject_number': outcome['subject_number'],
        'cached': outcome['cached'],
    })


def initiate_payment(user, provider: Optional[str] = None) -> Dict:
    registration = get_registration(user)
    session = payments.initiate(registration, provider)
    registration.refresh_from_db()

    return _result('Payment initiated', registration, session)


def handle_payment_callback(user, reference: str, transaction_id: str = '', status: str = '') -> Dict:
    """
    Client-side return from checkout
    Only the owner of the payment may reconcile it from the browser
    """
    payment = PaymentRecord.objects.select_related('registration').filter(reference=reference).first()
    if payment is None:
        raise ValidationError('Unknown payment reference', reference=reference)

    if payment.registration.user_id != user.pk:
        security_logger.warning(f'User {user.pk} attempted callback for payment {reference} they do not own')
        raise AuthenticityError('This payment does not belong to your account', reference=reference)

    outcome = payments.reconcile(reference, {
        'source': 'callback',
        'transaction_id': transaction_id,
        'status': status,
    })

    messages = {
        PaymentRecord.STATUS_SUCCESS: 'Payment confirmed. Your vendor account is active!',
        PaymentRecord.STATUS_PENDING: 'Payment is still processing. We will update you shortly.',
        PaymentRecord.STATUS_FAILED: 'Payment failed. Please try again.',
        PaymentRecord.STATUS_CANCELLED: 'Payment was cancelled. Please try again.',
    }
    registration = VendorRegistration.objects.get(pk=payment.registration_id)

    result = _result(messages.get(outcome['status'], 'Payment updated'), registration, outcome)
    result['success'] = outcome['status'] in (PaymentRecord.STATUS_SUCCESS, PaymentRecord.STATUS_PENDING)
    return result


def handle_webhook(provider_name: str, raw_body: bytes, headers: Mapping):
    return payments.handle_webhook(provider_name, raw_body, headers)


# ==========================================
# WALLET & PAYOUTS
# ==========================================

def wallet_state(wallet: Wallet) -> Dict:
    return {
        'balance': str(wallet.balance),
        'total_earned': str(wallet.total_earned),
        'total_withdrawn': str(wallet.total_withdrawn),
        'payout_account': {
            'account_number': mask_sensitive_data(wallet.account_number),
            'account_name': wallet.account_name,
            'bank_name': wallet.bank_name,
        } if wallet.has_payout_account else None,
    }


def _active_registration(user) -> VendorRegistration:
    registration = get_registration(user)
    if not registration.is_active:
        raise PrerequisiteError('Please complete your vendor registration first')
    return registration


def update_payout_account(user, account_number: str, bank_code: str, account_name: str) -> Dict:
    registration = _active_registration(user)
    wallet = payouts.set_payout_account(user, account_number, bank_code, account_name)

    return _result('Payout account saved', registration, {'wallet': wallet_state(wallet)})


def request_payout(user, amount, reference: Optional[str] = None) -> Dict:
    registration = _active_registration(user)
    payout = payouts.request_payout(user, amount, reference)
    wallet = Wallet.objects.get(pk=payout.wallet_id)

    messages = {
        WalletTransaction.STATUS_COMPLETED: 'Payout sent to your bank account',
        WalletTransaction.STATUS_PENDING: 'Payout is processing. We will update you shortly.',
        WalletTransaction.STATUS_FAILED: 'Payout failed. The amount has been returned to your wallet.',
    }

    result = _result(messages[payout.status], registration, {
        'payout': {
            'reference': payout.reference,
            'amount': str(payout.amount),
            'status': payout.status,
        },
        'wallet': wallet_state(wallet),
    })
    result['success'] = payout.status != WalletTransaction.STATUS_FAILED
    return result
