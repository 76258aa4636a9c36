"""
Vendor App Views
JSON endpoints for vendor onboarding and provider webhooks
"""

import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from . import workflow
from .decorators import onboarding_errors, request_data, vendor_required
from .exceptions import AuthenticityError, OnboardingError
from .forms import (
    CACVerificationForm,
    NINVerificationForm,
    PaymentCallbackForm,
    PaymentInitiateForm,
    PayoutAccountForm,
    PayoutRequestForm,
    TierSelectionForm,
)
from .models import ReferralRecord, Wallet

logger = logging.getLogger(__name__)


def _form_error(form):
    errors = form.errors.get_json_data()
    first = next(iter(errors.values()))[0]['message'] if errors else 'Invalid input'
    return JsonResponse({
        'success': False,
        'error': first,
        'code': 'validation_error',
        'errors': errors
    }, status=400)


# ==========================================
# ONBOARDING
# ==========================================

@require_http_methods(["GET"])
@vendor_required
@onboarding_errors
def onboarding_status(request):
    return JsonResponse(workflow.registration_state(request.user))


@require_http_methods(["POST"])
@vendor_required
@onboarding_errors
def select_tier(request):
    form = TierSelectionForm(request_data(request))
    if not form.is_valid():
        return _form_error(form)

    return JsonResponse(workflow.select_tier(request.user, form.cleaned_data['tier']))


@require_http_methods(["POST"])
@vendor_required
@onboarding_errors
def verify_nin(request):
    form = NINVerificationForm(request_data(request))
    if not form.is_valid():
        return _form_error(form)

    return JsonResponse(workflow.submit_nin_verification(
        request.user,
        nin=form.cleaned_data['nin'],
        first_name=form.cleaned_data['first_name'],
        last_name=form.cleaned_data['last_name']
    ))


@require_http_methods(["POST"])
@vendor_required
@onboarding_errors
def verify_cac(request):
    form = CACVerificationForm(request_data(request))
    if not form.is_valid():
        return _form_error(form)

    return JsonResponse(workflow.submit_cac_verification(
        request.user,
        cac_number=form.cleaned_data['cac_number'],
        company_name=form.cleaned_data['company_name']
    ))


@require_http_methods(["POST"])
@vendor_required
@onboarding_errors
def initiate_payment(request):
    form = PaymentInitiateForm(request_data(request))
    if not form.is_valid():
        return _form_error(form)

    return JsonResponse(workflow.initiate_payment(request.user, form.cleaned_data.get('provider') or None))


@require_http_methods(["GET", "POST"])
@vendor_required
@onboarding_errors
def payment_callback(request):
    """
    Browser return from checkout
    GET for redirect flows (query string), POST for inline checkout callbacks
    """
    data = request.GET if request.method == 'GET' else request_data(request)
    form = PaymentCallbackForm(data)
    if not form.is_valid():
        return _form_error(form)

    result = workflow.handle_payment_callback(
        request.user,
        reference=form.cleaned_data['reference'],
        transaction_id=form.cleaned_data.get('transaction_id', ''),
        status=form.cleaned_data.get('status', '')
    )
    return JsonResponse(result, status=200 if result['success'] else 402)


# ==========================================
# REFERRALS
# ==========================================

@require_http_methods(["GET"])
@vendor_required
@onboarding_errors
def referrals_overview(request):
    """Vendor's own referral code, wallet balance and referrals made"""
    state = workflow.registration_state(request.user)
    wallet, _ = Wallet.objects.get_or_create(user=request.user)

    referrals = ReferralRecord.objects.filter(
        referrer=request.user
    ).select_related('referred').order_by('-created_at')

    return JsonResponse({
        'success': True,
        'referral_code': state['registration']['referral_code'],
        'wallet': workflow.wallet_state(wallet),
        'referrals': [
            {
                'referred': referral.referred.get_full_name(),
                'bonus_amount': str(referral.bonus_amount),
                'status': referral.status,
                'created_at': referral.created_at.isoformat(),
            }
            for referral in referrals
        ],
    })


@require_http_methods(["POST"])
@vendor_required
@onboarding_errors
def payout_account(request):
    form = PayoutAccountForm(request_data(request))
    if not form.is_valid():
        return _form_error(form)

    return JsonResponse(workflow.update_payout_account(
        request.user,
        account_number=form.cleaned_data['account_number'],
        bank_code=form.cleaned_data['bank_code'],
        account_name=form.cleaned_data['account_name']
    ))


@require_http_methods(["POST"])
@vendor_required
@onboarding_errors
def request_payout(request):
    """Withdraw referral earnings to the saved payout account"""
    form = PayoutRequestForm(request_data(request))
    if not form.is_valid():
        return _form_error(form)

    result = workflow.request_payout(
        request.user,
        amount=form.cleaned_data['amount'],
        reference=form.cleaned_data.get('reference') or None
    )
    return JsonResponse(result, status=200 if result['success'] else 402)


# ==========================================
# WEBHOOKS
# ==========================================

@csrf_exempt
@require_http_methods(["GET", "POST"])
def payment_webhook(request, provider):
    """
    Provider webhook endpoint
    Bad signature -> 401. Once stored, always 200 so the provider stops retrying
    """
    if request.method == 'GET':
        return JsonResponse({'message': f'{provider} webhook endpoint is active'})

    try:
        event = workflow.handle_webhook(provider, request.body, request.headers)

    except AuthenticityError as e:
        return JsonResponse({'error': e.message}, status=e.status_code)

    except OnboardingError as e:
        logger.warning(f'{provider} webhook rejected: {e.message}')
        return JsonResponse({'error': e.message}, status=e.status_code)

    return JsonResponse({'received': True, 'status': event.status})
