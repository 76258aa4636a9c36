import json
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.vendors.models import VendorRegistration

User = get_user_model()


def create_vendor(email='vendor@example.com', full_name='Ada Obi', **extra):
    """Vendor user; the post_save signal opens the registration and wallet"""
    user = User.objects.create_user(
        email=email,
        password='testpass123',
        full_name=full_name,
        role=User.ROLE_VENDOR,
        **extra
    )
    registration = VendorRegistration.objects.get(user=user)
    return user, registration


def mark_verified(registration, verification_type=VendorRegistration.VERIFICATION_NIN):
    now = timezone.now()
    VendorRegistration.objects.filter(pk=registration.pk).update(
        verification_type=verification_type,
        tier_selected_at=now,
        nin_verified=True,
        nin_verified_at=now,
        cac_verified=verification_type == VendorRegistration.VERIFICATION_NIN_CAC,
        cac_verified_at=now if verification_type == VendorRegistration.VERIFICATION_NIN_CAC else None,
    )
    registration.refresh_from_db()
    return registration


def create_active_vendor(email, referral_code):
    user, registration = create_vendor(email=email, full_name='Referrer Vendor')
    mark_verified(registration)
    VendorRegistration.objects.filter(pk=registration.pk).update(
        status=VendorRegistration.STATUS_ACTIVE,
        payment_verified=True,
        referral_code=referral_code,
        registration_completed_at=timezone.now(),
    )
    registration.refresh_from_db()
    return user, registration


def verify_result(reference, amount='5000.00', status='success', currency='NGN', transaction_id='4975361'):
    """Return value for a patched provider verify_transaction"""
    return status == 'success', {
        'status': status,
        'amount': Decimal(amount),
        'currency': currency,
        'transaction_id': transaction_id,
        'reference': reference,
        'provider_reference': f'FLW-{transaction_id}',
    }


def flutterwave_webhook_body(reference, status='successful', amount=5000, transaction_id=4975361,
                             event='charge.completed'):
    return json.dumps({
        'event': event,
        'data': {
            'id': transaction_id,
            'tx_ref': reference,
            'amount': amount,
            'currency': 'NGN',
            'status': status,
            'customer': {'email': 'vendor@example.com'},
        }
    }).encode()
