"""
Flutterwave API Integration Service
Handles inline checkout, transaction verification and webhook authentication
Documentation: https://developer.flutterwave.com/docs

Environment Variables Required:
- FLUTTERWAVE_PUBLIC_KEY
- FLUTTERWAVE_SECRET_KEY
- FLUTTERWAVE_SECRET_HASH (webhook 'verif-hash' value set on the dashboard)
- USE_MOCK_FLUTTERWAVE (set to 'True' for testing without real API)
"""

import hmac
import os
import requests
import logging
from typing import Dict, Mapping, Optional, Tuple
from decimal import Decimal, InvalidOperation

from django.conf import settings

logger = logging.getLogger(__name__)


class FlutterwaveAPIError(Exception):
    """Custom exception for Flutterwave API errors"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def get_header(headers: Mapping, name: str) -> str:
    """Case-insensitive header lookup for plain dicts and Django's HttpHeaders"""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return ''


class FlutterwaveService:
    """
    Service class for interacting with Flutterwave API
    Checkout runs in the browser (inline script); the server only verifies
    """

    name = 'flutterwave'

    PAYMENT_OPTIONS = 'card,ussd,banktransfer'
    CHECKOUT_TITLE = 'CarmelMart - Vendor Registration Fee'

    # Flutterwave transaction status -> payment record status
    STATUS_MAP = {
        'successful': 'success',
        'failed': 'failed',
        'cancelled': 'cancelled',
        'pending': 'pending',
    }

    # Flutterwave transfer status -> payout status
    TRANSFER_STATUS_MAP = {
        'successful': 'success',
        'failed': 'failed',
    }

    MOCK_SECRET_HASH = 'mock-secret-hash'

    def __init__(self):
        self.public_key = os.getenv('FLUTTERWAVE_PUBLIC_KEY', '')
        self.secret_key = os.getenv('FLUTTERWAVE_SECRET_KEY', '')
        self.secret_hash = os.getenv('FLUTTERWAVE_SECRET_HASH', '')
        self.base_url = 'https://api.flutterwave.com/v3'
        self.timeout = int(os.getenv('PROVIDER_TIMEOUT_SECONDS', '30'))
        self.use_mock = os.getenv('USE_MOCK_FLUTTERWAVE', 'True').lower() == 'true'

        if not self.use_mock and not self.secret_key:
            logger.warning('Flutterwave API key not configured. Using mock mode.')
            self.use_mock = True

        if not self.secret_hash:
            logger.warning('FLUTTERWAVE_SECRET_HASH not configured. Flutterwave webhooks will be rejected.')

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        return {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json',
        }

    def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None
    ) -> Dict:
        """
        Make HTTP request to Flutterwave API

        Raises:
            FlutterwaveAPIError: If API request fails
        """
        url = f"{self.base_url}{endpoint}"

        try:
            if method.upper() == 'GET':
                response = requests.get(url, headers=self._get_headers(), params=data, timeout=self.timeout)
            else:
                response = requests.post(url, headers=self._get_headers(), json=data, timeout=self.timeout)

            response.raise_for_status()
            result = response.json()

            if result.get('status') != 'success':
                raise FlutterwaveAPIError(result.get('message', 'Unknown error'))

            return result

        except requests.exceptions.Timeout:
            logger.error(f'Flutterwave API timeout: {endpoint}')
            raise FlutterwaveAPIError('Request timeout. Please try again.')

        except requests.exceptions.RequestException as e:
            status_code = None
            error_msg = str(e)
            if getattr(e, 'response', None) is not None:
                status_code = e.response.status_code
                try:
                    error_msg = e.response.json().get('message', error_msg)
                except ValueError:
                    pass

            logger.error(f'Flutterwave API error ({status_code}): {error_msg}')
            raise FlutterwaveAPIError(f'API Error: {error_msg}', status_code=status_code)

        except ValueError:
            raise FlutterwaveAPIError('Invalid response from Flutterwave')

    def _to_decimal(self, value) -> Decimal:
        try:
            return Decimal(str(value))
        except (InvalidOperation, TypeError):
            return Decimal('0')

    # ==========================================
    # CHECKOUT
    # ==========================================

    def build_checkout(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        customer: Dict,
        redirect_url: Optional[str] = None,
        metadata: Optional[Dict] = None
    ) -> Dict:
        """
        Build parameters for the Flutterwave inline checkout (FlutterwaveCheckout)

        Args:
            reference: Our payment reference, sent as tx_ref
            amount: Amount in Naira
            currency: Currency code
            customer: {'email', 'phone', 'name'}
            redirect_url: Where Flutterwave sends the browser afterwards
            metadata: Extra fields echoed back on verification

        Returns:
            Checkout configuration dictionary
        """
        config = {
            'public_key': self.public_key or 'FLWPUBK_TEST-mock',
            'tx_ref': reference,
            'amount': float(amount),
            'currency': currency,
            'payment_options': self.PAYMENT_OPTIONS,
            'customer': {
                'email': customer.get('email', ''),
                'phone_number': customer.get('phone', ''),
                'name': customer.get('name', ''),
            },
            'customizations': {
                'title': self.CHECKOUT_TITLE,
                'description': f'Vendor registration fee - {reference}',
            },
            'meta': metadata or {},
        }

        if redirect_url:
            config['redirect_url'] = redirect_url

        if self.use_mock:
            config['mock'] = True
            logger.info(f'[MOCK] Checkout prepared: ₦{amount} ({reference})')
        else:
            logger.info(f'Checkout prepared: {reference}')

        return config

    # ==========================================
    # VERIFICATION
    # ==========================================

    def verify_transaction(
        self,
        transaction_id: Optional[str] = None,
        reference: Optional[str] = None
    ) -> Tuple[bool, Dict]:
        """
        Verify a transaction server-side, by transaction id or by our tx_ref

        Returns:
            Tuple of (successful: bool, data: dict)

        Example response data:
            {
                'status': 'success',  # or 'failed', 'cancelled', 'pending'
                'amount': Decimal('5000.00'),
                'currency': 'NGN',
                'transaction_id': '4975361',
                'reference': 'CM-VND-1718000000000-k3m9p2l5a',
                'provider_reference': 'FLW-MOCK-...',
            }

        Raises:
            FlutterwaveAPIError: If Flutterwave could not be reached
        """
        if not transaction_id and not reference:
            raise FlutterwaveAPIError('A transaction id or reference is required')

        if self.use_mock:
            return self._mock_verify_transaction(transaction_id, reference)

        if transaction_id:
            response = self._make_request('GET', f'/transactions/{transaction_id}/verify')
        else:
            response = self._make_request('GET', '/transactions/verify_by_reference', data={'tx_ref': reference})

        data = response.get('data') or {}
        status = self.STATUS_MAP.get(str(data.get('status', '')).lower(), 'pending')

        result = {
            'status': status,
            'amount': self._to_decimal(data.get('amount', 0)),
            'currency': data.get('currency') or '',
            'transaction_id': str(data.get('id') or ''),
            'reference': data.get('tx_ref') or '',
            'provider_reference': data.get('flw_ref') or '',
            'raw_response': data,
        }

        if status == 'success':
            logger.info(f'Transaction verified: {result["reference"]}')
        else:
            logger.warning(f'Transaction {result["reference"]} is {data.get("status")}')

        return status == 'success', result

    # ==========================================
    # WEBHOOKS
    # ==========================================

    def verify_webhook_signature(self, raw_body: bytes, headers: Mapping) -> bool:
        """
        Flutterwave sends the dashboard secret hash in the 'verif-hash' header
        """
        signature = get_header(headers, 'verif-hash')
        if not signature:
            return False

        if not self.secret_hash:
            # Unsigned test deliveries only while running locally in mock mode
            if self.use_mock and settings.DEBUG:
                return hmac.compare_digest(signature, self.MOCK_SECRET_HASH)
            logger.error('FLUTTERWAVE_SECRET_HASH not set. Rejecting webhook.')
            return False

        return hmac.compare_digest(signature, self.secret_hash)

    def parse_webhook_event(self, payload: Dict) -> Dict:
        """
        Normalize a webhook payload

        Example payloads:
            {
                'event': 'charge.completed',
                'data': {'id': 4975361, 'tx_ref': 'CM-VND-...', 'amount': 5000,
                         'currency': 'NGN', 'status': 'successful', 'customer': {...}}
            }
            {
                'event': 'transfer.completed',
                'data': {'id': 26251, 'reference': 'CM-PAYOUT-...', 'amount': 1000,
                         'currency': 'NGN', 'status': 'SUCCESSFUL', 'complete_message': '...'}
            }
        """
        data = payload.get('data') or {}
        event_type = payload.get('event') or payload.get('event.type') or ''
        status = str(data.get('status') or '').lower()

        if self.is_transfer_event(event_type):
            return {
                'event_type': event_type,
                'reference': data.get('reference') or '',
                'transaction_id': str(data.get('id') or ''),
                'status': self.TRANSFER_STATUS_MAP.get(status, 'pending'),
                'amount': self._to_decimal(data.get('amount', 0)),
                'currency': data.get('currency') or '',
                'message': data.get('complete_message') or '',
            }

        return {
            'event_type': event_type,
            'reference': data.get('tx_ref') or '',
            'transaction_id': str(data.get('id') or ''),
            'status': self.STATUS_MAP.get(status, 'pending'),
            'amount': self._to_decimal(data.get('amount', 0)),
            'currency': data.get('currency') or '',
        }

    def is_payment_event(self, event_type: str) -> bool:
        return event_type in ('charge.completed', 'charge.failed')

    def is_transfer_event(self, event_type: str) -> bool:
        return event_type == 'transfer.completed'

    # ==========================================
    # MOCK METHODS (FOR TESTING)
    # ==========================================

    def _mock_verify_transaction(self, transaction_id: Optional[str], reference: Optional[str]) -> Tuple[bool, Dict]:
        """Mock transaction verification - always returns success"""
        logger.info(f'[MOCK] Transaction verified: {reference or transaction_id}')

        return True, {
            'status': 'success',
            'amount': Decimal('10000.00'),
            'currency': 'NGN',
            'transaction_id': str(transaction_id or 'mock_txn'),
            'reference': reference or '',
            'provider_reference': f'FLW-MOCK-{transaction_id or reference}',
            'mock': True
        }


# Singleton instance
flutterwave_service = FlutterwaveService()
