"""
Payment Orchestrator
Creates registration fee payments and reconciles them from client callbacks
and provider webhooks

A payment leaves 'pending' through a single conditional UPDATE; whichever of
the callback or webhook loses that race returns the recorded outcome.
"""

import json
import logging
from decimal import Decimal
from typing import Dict, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.vendors.exceptions import (
    AmountMismatchError,
    AuthenticityError,
    DuplicateEventError,
    InvalidStateError,
    PrerequisiteError,
    ProviderError,
    ValidationError,
)
from apps.vendors.models import PaymentRecord, VendorRegistration, WebhookEvent
from apps.vendors.services.flutterwave import FlutterwaveAPIError, flutterwave_service
from apps.vendors.services.notifications import notification_service
from apps.vendors.services.paystack import PaystackAPIError, paystack_service
from apps.vendors.services.utils import generate_reference

from .payouts import apply_transfer_outcome
from .referrals import settle
from .registration import finalize
from .tiers import tier_for_registration

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('apps.vendors.security')

PROVIDER_ERRORS = (FlutterwaveAPIError, PaystackAPIError)

PAYMENT_PROVIDERS = {
    PaymentRecord.PROVIDER_FLUTTERWAVE: flutterwave_service,
    PaymentRecord.PROVIDER_PAYSTACK: paystack_service,
}


def get_payment_provider(name: Optional[str] = None):
    """Payment provider client by name, defaulting to settings.PAYMENT_PROVIDER"""
    name = (name or settings.PAYMENT_PROVIDER or '').strip().lower()
    try:
        return PAYMENT_PROVIDERS[name]
    except KeyError:
        raise ValidationError(f'Unsupported payment provider: {name}', provider=name)


# ==========================================
# OUTCOMES
# ==========================================

def _outcome(payment: PaymentRecord, duplicate: bool = False, errors=None) -> Dict:
    registration = VendorRegistration.objects.get(pk=payment.registration_id)
    return {
        'reference': payment.reference,
        'provider': payment.provider,
        'status': payment.status,
        'amount': str(payment.amount),
        'paid_amount': str(payment.paid_amount) if payment.paid_amount is not None else None,
        'currency': payment.currency,
        'failure_reason': payment.failure_reason,
        'duplicate': duplicate,
        'registration': registration.to_state(),
        'errors': errors or [],
    }


def _transition(payment: PaymentRecord, status: str, **fields):
    """
    Move a pending payment to a terminal status

    Raises:
        DuplicateEventError: The payment already left 'pending'
    """
    now = timezone.now()
    updated = PaymentRecord.objects.filter(
        pk=payment.pk,
        status=PaymentRecord.STATUS_PENDING
    ).update(status=status, completed_at=now, updated_at=now, **fields)

    if not updated:
        raise DuplicateEventError('Payment already reconciled', reference=payment.reference)

    payment.refresh_from_db()


# ==========================================
# INITIATE
# ==========================================

def initiate(registration: VendorRegistration, provider: Optional[str] = None) -> Dict:
    """
    Create a pending payment and the provider checkout for it

    Returns:
        {'reference', 'amount', 'currency', 'provider', 'checkout'}

    Raises:
        InvalidStateError, PrerequisiteError, ValidationError, ProviderError
    """
    registration.refresh_from_db()

    if registration.is_active:
        raise InvalidStateError('Your vendor registration is already complete')

    tier = tier_for_registration(registration)
    if tier is None:
        raise PrerequisiteError('Please select a tier before payment')

    if registration.missing_steps:
        raise PrerequisiteError(
            'Please complete verification before payment',
            missing_steps=registration.missing_steps
        )

    service = get_payment_provider(provider)
    currency = settings.PAYMENT_CURRENCY
    reference = generate_reference()

    with transaction.atomic():
        payment = PaymentRecord.objects.create(
            registration=registration,
            reference=reference,
            provider=service.name,
            amount=tier['fee'],
            currency=currency,
        )
        VendorRegistration.objects.filter(
            pk=registration.pk,
            status=VendorRegistration.STATUS_PAYMENT_FAILED
        ).update(status=VendorRegistration.STATUS_PENDING, updated_at=timezone.now())

    try:
        checkout = service.build_checkout(
            reference=reference,
            amount=payment.amount,
            currency=currency,
            customer={
                'email': registration.email or registration.user.email,
                'phone': registration.phone,
                'name': registration.full_name or registration.business_name,
            },
            redirect_url=f'{settings.SITE_URL}/vendors/onboarding/payment/callback/',
            metadata={
                'registration_id': str(registration.registration_id),
                'verification_type': registration.verification_type,
            }
        )
    except PROVIDER_ERRORS as e:
        logger.error(f'Checkout creation failed for {reference}: {str(e)}')
        PaymentRecord.objects.filter(pk=payment.pk, status=PaymentRecord.STATUS_PENDING).update(
            status=PaymentRecord.STATUS_CANCELLED,
            failure_reason='Checkout could not be created',
            updated_at=timezone.now()
        )
        raise ProviderError('Payment service is unavailable. Please try again.', reference=reference)

    logger.info(f'Payment {reference} initiated: ₦{payment.amount} via {service.name}')

    return {
        'reference': reference,
        'amount': str(payment.amount),
        'currency': currency,
        'provider': service.name,
        'checkout': checkout,
    }


# ==========================================
# RECONCILE
# ==========================================

def _record_failure(payment: PaymentRecord, status: str, reason: str, result: Dict):
    with transaction.atomic():
        _transition(
            payment,
            status,
            failure_reason=reason[:255],
            transaction_id=(result.get('transaction_id') or '')[:100],
            provider_reference=(result.get('provider_reference') or '')[:100],
            paid_amount=result.get('amount'),
        )
        VendorRegistration.objects.filter(
            pk=payment.registration_id
        ).exclude(
            status=VendorRegistration.STATUS_ACTIVE
        ).update(status=VendorRegistration.STATUS_PAYMENT_FAILED, updated_at=timezone.now())

    logger.warning(f'Payment {payment.reference} {status}: {reason}')

    registration = VendorRegistration.objects.select_related('user').get(pk=payment.registration_id)
    notification_service.send_payment_failed(registration, payment, reason)


def _record_success(payment: PaymentRecord, result: Dict):
    with transaction.atomic():
        _transition(
            payment,
            PaymentRecord.STATUS_SUCCESS,
            transaction_id=(result.get('transaction_id') or '')[:100],
            provider_reference=(result.get('provider_reference') or '')[:100],
            paid_amount=result.get('amount'),
        )
        VendorRegistration.objects.filter(pk=payment.registration_id).update(
            payment_verified=True,
            updated_at=timezone.now()
        )

    logger.info(f'Payment {payment.reference} confirmed: ₦{payment.paid_amount}')


def reconcile(reference: str, event: Optional[Dict] = None) -> Dict:
    """
    Bring a payment to its final state using the provider's own record

    Args:
        reference: Our payment reference
        event: {'source': 'callback'|'webhook', 'transaction_id', 'status'}.
            Claimed status and amount are never trusted; the provider is asked.

    Returns:
        Outcome dict (see _outcome); 'duplicate' is True when the payment was
        already final and nothing changed

    Raises:
        ValidationError, ProviderError, AuthenticityError, AmountMismatchError
    """
    event = event or {}

    try:
        payment = PaymentRecord.objects.get(reference=reference)
    except PaymentRecord.DoesNotExist:
        raise ValidationError('Unknown payment reference', reference=reference)

    try:
        if payment.is_terminal:
            raise DuplicateEventError('Payment already reconciled', reference=reference)

        service = get_payment_provider(payment.provider)

        try:
            _, result = service.verify_transaction(
                transaction_id=event.get('transaction_id') or None,
                reference=reference
            )
        except PROVIDER_ERRORS as e:
            logger.error(
                f'Payment verification failed for {reference} '
                f'({event.get("source", "unknown")}): {str(e)}'
            )
            raise ProviderError('Could not confirm payment. Please try again.', reference=reference)

        verified_reference = result.get('reference')
        if verified_reference and verified_reference != reference:
            security_logger.warning(
                f'Transaction {result.get("transaction_id")} belongs to {verified_reference}, '
                f'not {reference} ({event.get("source", "unknown")})'
            )
            raise AuthenticityError('Transaction does not match this payment', reference=reference)

        status = result.get('status')

        if status == PaymentRecord.STATUS_PENDING:
            logger.info(f'Payment {reference} still pending at {payment.provider}')
            return _outcome(payment)

        if status in (PaymentRecord.STATUS_FAILED, PaymentRecord.STATUS_CANCELLED):
            _record_failure(payment, status, f'Payment {status} at {payment.provider}', result)
            return _outcome(payment)

        paid_amount = Decimal(result.get('amount') or 0)
        paid_currency = (result.get('currency') or payment.currency).upper()

        if paid_currency != payment.currency.upper() or paid_amount < payment.amount:
            reason = f'Amount mismatch: paid {paid_currency} {paid_amount}, expected {payment.currency} {payment.amount}'
            security_logger.warning(f'Payment {reference}: {reason}')
            _record_failure(payment, PaymentRecord.STATUS_FAILED, reason, result)
            raise AmountMismatchError(
                'Payment amount does not match the registration fee',
                reference=reference,
                paid=str(paid_amount),
                expected=str(payment.amount)
            )

        _record_success(payment, result)

    except DuplicateEventError:
        payment.refresh_from_db()
        logger.info(f'Payment {reference} already {payment.status}; returning recorded outcome')

        registration = VendorRegistration.objects.get(pk=payment.registration_id)
        if payment.status == PaymentRecord.STATUS_SUCCESS and not registration.is_active:
            outcome = complete_post_payment(payment)
            outcome['duplicate'] = True
            return outcome

        return _outcome(payment, duplicate=True)

    return complete_post_payment(payment)


def complete_post_payment(payment: PaymentRecord) -> Dict:
    """
    Run referral settlement and finalization for a successful payment
    Each follow-up is isolated; its failure is logged and reported in 'errors'
    """
    if payment.status != PaymentRecord.STATUS_SUCCESS:
        raise PrerequisiteError('Payment has not been confirmed', reference=payment.reference)

    registration = VendorRegistration.objects.select_related('user').get(pk=payment.registration_id)
    errors = []

    try:
        settle(registration.referred_by, registration.user, payment=payment)
    except Exception as e:
        logger.exception(f'Referral settlement failed for payment {payment.reference}')
        errors.append({'step': 'referral', 'error': str(e)})

    try:
        finalize(registration, payment.status)
    except Exception as e:
        logger.exception(f'Finalization failed for payment {payment.reference}')
        errors.append({'step': 'finalize', 'error': getattr(e, 'message', '') or str(e)})

    return _outcome(payment, errors=errors)


# ==========================================
# WEBHOOKS
# ==========================================

def _mark_event(event: WebhookEvent, status: str, error: str = ''):
    WebhookEvent.objects.filter(pk=event.pk).update(
        status=status,
        last_error=error,
        processed_at=timezone.now() if status in (
            WebhookEvent.STATUS_PROCESSED, WebhookEvent.STATUS_IGNORED
        ) else None,
    )
    event.refresh_from_db()


def handle_webhook(provider_name: str, raw_body: bytes, headers: Mapping) -> WebhookEvent:
    """
    Authenticate, store and process a provider webhook

    Raises:
        AuthenticityError: Bad signature; nothing is stored
        ValidationError: Unknown provider or unreadable payload
    """
    service = get_payment_provider(provider_name)

    if not service.verify_webhook_signature(raw_body, headers):
        security_logger.warning(f'Invalid {service.name} webhook signature')
        raise AuthenticityError('Invalid webhook signature', provider=service.name)

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError('Invalid webhook payload', provider=service.name)

    if not isinstance(payload, dict):
        raise ValidationError('Invalid webhook payload', provider=service.name)

    parsed = service.parse_webhook_event(payload)
    event = WebhookEvent.objects.create(
        provider=service.name,
        event_type=parsed['event_type'][:50],
        reference=parsed['reference'][:100],
        transaction_id=parsed['transaction_id'][:100],
        payload=payload,
    )
    logger.info(f'{service.name} webhook stored: {event.event_type} {event.reference}')

    process_webhook_event(event)
    return event


def _process_transfer_event(event: WebhookEvent, parsed: Dict):
    """Settle the payout a transfer event refers to"""
    if not parsed['reference']:
        _mark_event(event, WebhookEvent.STATUS_IGNORED)
        return

    try:
        payout = apply_transfer_outcome(parsed['reference'], parsed['status'], reason=parsed.get('message', ''))
    except Exception as e:
        logger.exception(f'Webhook {event.pk} transfer processing failed')
        _mark_event(event, WebhookEvent.STATUS_FAILED, error=str(e))
        return

    if payout is None:
        _mark_event(event, WebhookEvent.STATUS_IGNORED, error='Unknown payout reference')
    elif payout.status == payout.STATUS_PENDING:
        _mark_event(event, WebhookEvent.STATUS_RECEIVED, error='Transfer still pending at provider')
    else:
        _mark_event(event, WebhookEvent.STATUS_PROCESSED)


def process_webhook_event(event: WebhookEvent) -> Optional[Dict]:
    """
    Apply a stored webhook event; safe to call again for failed events
    Errors are recorded on the event, never raised
    """
    service = get_payment_provider(event.provider)
    parsed = service.parse_webhook_event(event.payload)
    WebhookEvent.objects.filter(pk=event.pk).update(attempts=F('attempts') + 1)

    if service.is_transfer_event(parsed['event_type']):
        _process_transfer_event(event, parsed)
        return None

    if not service.is_payment_event(parsed['event_type']) or not parsed['reference']:
        _mark_event(event, WebhookEvent.STATUS_IGNORED)
        return None

    try:
        outcome = reconcile(parsed['reference'], {
            'source': 'webhook',
            'transaction_id': parsed['transaction_id'],
            'status': parsed['status'],
        })

    except AmountMismatchError as e:
        _mark_event(event, WebhookEvent.STATUS_PROCESSED, error=e.message)
        return None

    except ValidationError as e:
        logger.warning(f'Webhook {event.pk} ignored: {e.message}')
        _mark_event(event, WebhookEvent.STATUS_IGNORED, error=e.message)
        return None

    except Exception as e:
        logger.exception(f'Webhook {event.pk} processing failed')
        _mark_event(event, WebhookEvent.STATUS_FAILED, error=getattr(e, 'message', '') or str(e))
        return None

    if outcome['status'] == PaymentRecord.STATUS_PENDING:
        _mark_event(event, WebhookEvent.STATUS_RECEIVED, error='Payment still pending at provider')
        return outcome

    error = '; '.join(f'{item["step"]}: {item["error"]}' for item in outcome['errors'])
    _mark_event(event, WebhookEvent.STATUS_PROCESSED, error=error)
    return outcome
