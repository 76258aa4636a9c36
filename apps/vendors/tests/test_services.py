import hashlib
import hmac
import json
from decimal import Decimal

import pytest
import requests
from django.core.cache import cache

from apps.vendors.services.flutterwave import FlutterwaveAPIError, FlutterwaveService
from apps.vendors.services.paystack import PaystackAPIError, PaystackService
from apps.vendors.services.qoreid import QoreIDAPIError, QoreIDService

QOREID_URL = 'https://api.qoreid.com'
FLUTTERWAVE_URL = 'https://api.flutterwave.com/v3'
PAYSTACK_URL = 'https://api.paystack.co'


@pytest.fixture
def qoreid(requests_mock):
    cache.clear()
    service = QoreIDService()
    service.use_mock = False
    service.client_id = 'client-id'
    service.client_secret = 'client-secret'
    service.base_url = QOREID_URL
    requests_mock.post(f'{QOREID_URL}/token', json={'accessToken': 'token-123', 'expiresIn': 7200})
    yield service
    cache.clear()


@pytest.fixture
def flutterwave():
    service = FlutterwaveService()
    service.use_mock = False
    service.secret_key = 'FLWSECK_TEST-key'
    service.secret_hash = 'dashboard-hash'
    return service


@pytest.fixture
def paystack():
    service = PaystackService()
    service.use_mock = False
    service.secret_key = 'sk_test_key'
    return service


# ==========================================
# QOREID
# ==========================================

def test_qoreid_nin_verified(qoreid, requests_mock):
    requests_mock.post(f'{QOREID_URL}/v1/ng/identities/nin/12345678901', json={
        'id': 1234,
        'status': {'state': 'complete', 'status': 'verified'},
        'nin': {'firstname': 'ADA', 'lastname': 'OBI', 'middlename': 'CHIOMA', 'photo': 'abc'},
    })

    verified, data = qoreid.verify_nin('12345678901', 'Ada', 'Obi')

    assert verified is True
    assert data['firstname'] == 'ADA'
    assert data['verification_id'] == 1234
    assert requests_mock.last_request.json() == {'firstname': 'ADA', 'lastname': 'OBI'}
    assert requests_mock.last_request.headers['Authorization'] == 'Bearer token-123'


def test_qoreid_token_is_cached(qoreid, requests_mock):
    requests_mock.post(f'{QOREID_URL}/v1/ng/identities/nin/12345678901', json={
        'id': 1,
        'status': {'status': 'verified'},
        'nin': {'firstname': 'ADA', 'lastname': 'OBI'},
    })

    qoreid.verify_nin('12345678901', 'Ada', 'Obi')
    qoreid.verify_nin('12345678901', 'Ada', 'Obi')

    token_calls = [r for r in requests_mock.request_history if r.path == '/token']
    assert len(token_calls) == 1


def test_qoreid_nin_not_found(qoreid, requests_mock):
    requests_mock.post(
        f'{QOREID_URL}/v1/ng/identities/nin/12345678901',
        status_code=404,
        json={'message': 'NIN not found'}
    )

    verified, data = qoreid.verify_nin('12345678901', 'Ada', 'Obi')

    assert verified is False
    assert 'NIN not found' in data['error']


def test_qoreid_nin_unverified_status(qoreid, requests_mock):
    requests_mock.post(f'{QOREID_URL}/v1/ng/identities/nin/12345678901', json={
        'status': {'status': 'id_mismatch', 'message': 'Names do not match'},
    })

    verified, data = qoreid.verify_nin('12345678901', 'Ada', 'Obi')

    assert verified is False
    assert data['error'] == 'Names do not match'


def test_qoreid_server_error_raises(qoreid, requests_mock):
    requests_mock.post(f'{QOREID_URL}/v1/ng/identities/nin/12345678901', status_code=503)

    with pytest.raises(QoreIDAPIError) as exc_info:
        qoreid.verify_nin('12345678901', 'Ada', 'Obi')

    assert exc_info.value.status_code == 503


def test_qoreid_timeout_raises(qoreid, requests_mock):
    requests_mock.post(f'{QOREID_URL}/v1/ng/identities/cac-basic', exc=requests.exceptions.ConnectTimeout)

    with pytest.raises(QoreIDAPIError):
        qoreid.verify_cac('RC200002', 'Dynamite')


def test_qoreid_cac_verified(qoreid, requests_mock):
    requests_mock.post(f'{QOREID_URL}/v1/ng/identities/cac-basic', json={
        'id': 5678,
        'status': {'status': 'verified'},
        'cac': {'companyName': 'DYNAMITE EVENTS SERVICES LTD', 'rcNumber': '200002', 'status': 'ACTIVE'},
    })

    verified, data = qoreid.verify_cac('RC200002', 'Dynamite')

    assert verified is True
    assert data['company_name'] == 'DYNAMITE EVENTS SERVICES LTD'
    assert data['status'] == 'ACTIVE'
    assert requests_mock.last_request.json() == {'regNumber': 'RC200002'}


def test_qoreid_mock_mode_echoes_names():
    service = QoreIDService()
    service.use_mock = True

    verified, data = service.verify_nin('12345678901', 'Ada', 'Obi')

    assert verified is True
    assert (data['firstname'], data['lastname']) == ('ADA', 'OBI')


# ==========================================
# FLUTTERWAVE
# ==========================================

def test_flutterwave_verify_by_id(flutterwave, requests_mock):
    requests_mock.get(f'{FLUTTERWAVE_URL}/transactions/4975361/verify', json={
        'status': 'success',
        'data': {
            'id': 4975361,
            'tx_ref': 'CM-VND-1718000000000-k3m9p2l5a',
            'flw_ref': 'FLW-MOCK-abc',
            'amount': 5000,
            'currency': 'NGN',
            'status': 'successful',
        }
    })

    successful, result = flutterwave.verify_transaction(transaction_id='4975361')

    assert successful is True
    assert result['status'] == 'success'
    assert result['amount'] == Decimal('5000')
    assert result['reference'] == 'CM-VND-1718000000000-k3m9p2l5a'
    assert result['transaction_id'] == '4975361'


def test_flutterwave_verify_by_reference(flutterwave, requests_mock):
    requests_mock.get(f'{FLUTTERWAVE_URL}/transactions/verify_by_reference', json={
        'status': 'success',
        'data': {'id': 1, 'tx_ref': 'CM-VND-1', 'amount': 5000, 'currency': 'NGN', 'status': 'failed'},
    })

    successful, result = flutterwave.verify_transaction(reference='CM-VND-1')

    assert successful is False
    assert result['status'] == 'failed'
    assert requests_mock.last_request.qs == {'tx_ref': ['cm-vnd-1']}


def test_flutterwave_error_raises(flutterwave, requests_mock):
    requests_mock.get(
        f'{FLUTTERWAVE_URL}/transactions/1/verify',
        status_code=400,
        json={'status': 'error', 'message': 'No transaction was found for this id'}
    )

    with pytest.raises(FlutterwaveAPIError) as exc_info:
        flutterwave.verify_transaction(transaction_id='1')

    assert exc_info.value.status_code == 400


def test_flutterwave_signature(flutterwave):
    assert flutterwave.verify_webhook_signature(b'{}', {'verif-hash': 'dashboard-hash'})
    assert not flutterwave.verify_webhook_signature(b'{}', {'verif-hash': 'wrong'})
    assert not flutterwave.verify_webhook_signature(b'{}', {})


def test_flutterwave_signature_without_configured_hash(flutterwave):
    flutterwave.secret_hash = ''
    assert not flutterwave.verify_webhook_signature(b'{}', {'verif-hash': 'mock-secret-hash'})


def test_flutterwave_mock_hash_rejected_outside_debug(flutterwave, settings):
    settings.DEBUG = False
    flutterwave.use_mock = True
    flutterwave.secret_hash = ''

    assert not flutterwave.verify_webhook_signature(b'{}', {'verif-hash': 'mock-secret-hash'})


def test_flutterwave_mock_hash_accepted_in_local_debug(flutterwave, settings):
    settings.DEBUG = True
    flutterwave.use_mock = True
    flutterwave.secret_hash = ''

    assert flutterwave.verify_webhook_signature(b'{}', {'verif-hash': 'mock-secret-hash'})
    assert not flutterwave.verify_webhook_signature(b'{}', {'verif-hash': 'guess'})


def test_flutterwave_verify_with_null_references(flutterwave, requests_mock):
    requests_mock.get(f'{FLUTTERWAVE_URL}/transactions/7/verify', json={
        'status': 'success',
        'data': {'id': 7, 'tx_ref': None, 'flw_ref': None, 'amount': 5000, 'currency': None, 'status': 'successful'},
    })

    _, result = flutterwave.verify_transaction(transaction_id='7')

    assert result['reference'] == ''
    assert result['provider_reference'] == ''
    assert result['currency'] == ''


def test_flutterwave_parse_webhook(flutterwave):
    parsed = flutterwave.parse_webhook_event({
        'event': 'charge.completed',
        'data': {'id': 99, 'tx_ref': 'CM-VND-1', 'amount': 5000, 'currency': 'NGN', 'status': 'successful'},
    })

    assert parsed == {
        'event_type': 'charge.completed',
        'reference': 'CM-VND-1',
        'transaction_id': '99',
        'status': 'success',
        'amount': Decimal('5000'),
        'currency': 'NGN',
    }
    assert flutterwave.is_payment_event('charge.completed')
    assert not flutterwave.is_payment_event('transfer.completed')


def test_flutterwave_parse_transfer_webhook(flutterwave):
    parsed = flutterwave.parse_webhook_event({
        'event': 'transfer.completed',
        'data': {'id': 26251, 'reference': 'CM-PAYOUT-1', 'amount': 1000, 'currency': 'NGN',
                 'status': 'FAILED', 'complete_message': 'Account resolved failed'},
    })

    assert parsed['reference'] == 'CM-PAYOUT-1'
    assert parsed['status'] == 'failed'
    assert parsed['message'] == 'Account resolved failed'
    assert flutterwave.is_transfer_event('transfer.completed')


def test_flutterwave_checkout(flutterwave):
    config = flutterwave.build_checkout(
        reference='CM-VND-1',
        amount=Decimal('5000'),
        currency='NGN',
        customer={'email': 'vendor@example.com', 'phone': '080', 'name': 'Ada Obi'},
        redirect_url='http://localhost:8000/vendors/onboarding/payment/callback/'
    )

    assert config['tx_ref'] == 'CM-VND-1'
    assert config['amount'] == 5000.0
    assert config['customer']['email'] == 'vendor@example.com'
    assert 'mock' not in config


# ==========================================
# PAYSTACK
# ==========================================

def test_paystack_initialize(paystack, requests_mock):
    requests_mock.post(f'{PAYSTACK_URL}/transaction/initialize', json={
        'status': True,
        'data': {
            'authorization_url': 'https://checkout.paystack.com/abc',
            'access_code': 'abc',
            'reference': 'CM-VND-1',
        }
    })

    session = paystack.build_checkout(
        reference='CM-VND-1',
        amount=Decimal('5000'),
        currency='NGN',
        customer={'email': 'vendor@example.com'},
    )

    assert session['authorization_url'] == 'https://checkout.paystack.com/abc'
    assert session['amount_kobo'] == 500000
    assert requests_mock.last_request.json()['amount'] == 500000


def test_paystack_abandoned_checkout_is_pending(paystack, requests_mock):
    requests_mock.get(f'{PAYSTACK_URL}/transaction/verify/CM-VND-1', json={
        'status': True,
        'data': {'id': 302961, 'reference': 'CM-VND-1', 'amount': 500000, 'currency': 'NGN', 'status': 'abandoned'},
    })

    successful, result = paystack.verify_transaction(reference='CM-VND-1')

    assert successful is False
    assert result['status'] == 'pending'
    assert result['amount'] == Decimal('5000')


@pytest.mark.parametrize('provider_status, status', [
    ('ongoing', 'pending'),
    ('success', 'success'),
    ('failed', 'failed'),
    ('reversed', 'failed'),
])
def test_paystack_transaction_status_mapping(paystack, requests_mock, provider_status, status):
    requests_mock.get(f'{PAYSTACK_URL}/transaction/verify/CM-VND-1', json={
        'status': True,
        'data': {'id': 1, 'reference': 'CM-VND-1', 'amount': 500000, 'currency': 'NGN', 'status': provider_status},
    })

    _, result = paystack.verify_transaction(reference='CM-VND-1')

    assert result['status'] == status


def test_paystack_verify_requires_reference(paystack):
    with pytest.raises(PaystackAPIError):
        paystack.verify_transaction(transaction_id='302961')


def test_paystack_signature(paystack):
    body = json.dumps({'event': 'charge.success'}).encode()
    signature = hmac.new(b'sk_test_key', body, hashlib.sha512).hexdigest()

    assert paystack.verify_webhook_signature(body, {'x-paystack-signature': signature})
    assert not paystack.verify_webhook_signature(body + b' ', {'x-paystack-signature': signature})

    paystack.secret_key = ''
    assert not paystack.verify_webhook_signature(body, {'x-paystack-signature': signature})


def test_paystack_create_transfer_recipient(paystack, requests_mock):
    requests_mock.post(f'{PAYSTACK_URL}/transferrecipient', json={
        'status': True,
        'data': {
            'recipient_code': 'RCP_t0ya41mp35flk40',
            'name': 'ADA OBI',
            'details': {'account_number': '0123456789', 'bank_code': '058', 'bank_name': 'Guaranty Trust Bank'},
        }
    })

    recipient = paystack.create_transfer_recipient('0123456789', '058', 'Ada Obi')

    assert recipient['recipient_code'] == 'RCP_t0ya41mp35flk40'
    assert recipient['bank_name'] == 'Guaranty Trust Bank'
    assert requests_mock.last_request.json() == {
        'type': 'nuban',
        'name': 'Ada Obi',
        'account_number': '0123456789',
        'bank_code': '058',
        'currency': 'NGN',
    }


def test_paystack_initiate_transfer(paystack, requests_mock):
    requests_mock.post(f'{PAYSTACK_URL}/transfer', json={
        'status': True,
        'data': {'transfer_code': 'TRF_1ptvuv321ahaa7q', 'reference': 'CM-PAYOUT-1', 'amount': 150000, 'status': 'otp'},
    })

    settled, transfer = paystack.initiate_transfer('RCP_1', Decimal('1500'), reference='CM-PAYOUT-1')

    assert settled is False
    assert transfer['status'] == 'pending'
    assert transfer['transfer_code'] == 'TRF_1ptvuv321ahaa7q'
    assert transfer['amount'] == Decimal('1500')
    body = requests_mock.last_request.json()
    assert body['amount'] == 150000
    assert body['reference'] == 'CM-PAYOUT-1'
    assert body['reason'] == 'Referral bonus'
    assert body['source'] == 'balance'


def test_paystack_transfer_rejection_keeps_status_code(paystack, requests_mock):
    requests_mock.post(f'{PAYSTACK_URL}/transfer', status_code=400, json={
        'status': False,
        'message': 'Your balance is not enough to fulfil this request',
    })

    with pytest.raises(PaystackAPIError) as exc_info:
        paystack.initiate_transfer('RCP_1', Decimal('1500'), reference='CM-PAYOUT-1')

    assert exc_info.value.status_code == 400
    assert 'balance is not enough' in str(exc_info.value)


def test_paystack_verify_unknown_transfer(paystack, requests_mock):
    requests_mock.get(f'{PAYSTACK_URL}/transfer/verify/CM-PAYOUT-1', status_code=404, json={
        'status': False,
        'message': 'Transfer not found',
    })

    with pytest.raises(PaystackAPIError) as exc_info:
        paystack.verify_transfer('CM-PAYOUT-1')

    assert exc_info.value.status_code == 404


def test_paystack_parse_transfer_webhook(paystack):
    parsed = paystack.parse_webhook_event({
        'event': 'transfer.reversed',
        'data': {'id': 37272792, 'reference': 'CM-PAYOUT-1', 'amount': 150000, 'status': 'reversed'},
    })

    assert parsed['reference'] == 'CM-PAYOUT-1'
    assert parsed['status'] == 'failed'
    assert parsed['amount'] == Decimal('1500')
    assert paystack.is_transfer_event('transfer.success')
    assert not paystack.is_payment_event('transfer.success')
