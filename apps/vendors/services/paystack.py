"""
Paystack API Integration Service
Handles payment initialization, verification, transfers (payouts) and webhook authentication
Documentation: https://paystack.com/docs/api/

Environment Variables Required:
- PAYSTACK_SECRET_KEY
- PAYSTACK_PUBLIC_KEY
- USE_MOCK_PAYSTACK (set to 'True' for testing without real API)
"""

import hashlib
import hmac
import os
import requests
import logging
from typing import Dict, Mapping, Optional, Tuple
from decimal import Decimal

from .flutterwave import get_header

logger = logging.getLogger(__name__)


class PaystackAPIError(Exception):
    """Custom exception for Paystack API errors"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class PaystackService:
    """
    Service class for interacting with Paystack API
    Handles payment initialization, verification, transfers and webhooks
    """

    name = 'paystack'

    # Paystack transaction status -> payment record status
    # Only failed and reversed are final; abandoned and ongoing checkouts can still be paid
    STATUS_MAP = {
        'success': 'success',
        'failed': 'failed',
        'reversed': 'failed',
        'abandoned': 'pending',
        'ongoing': 'pending',
        'pending': 'pending',
        'processing': 'pending',
    }

    # Paystack transfer status -> payout status
    TRANSFER_STATUS_MAP = {
        'success': 'success',
        'failed': 'failed',
        'reversed': 'failed',
        'rejected': 'failed',
        'blocked': 'failed',
    }

    TRANSFER_EVENTS = ('transfer.success', 'transfer.failed', 'transfer.reversed')

    def __init__(self):
        self.secret_key = os.getenv('PAYSTACK_SECRET_KEY', '')
        self.public_key = os.getenv('PAYSTACK_PUBLIC_KEY', '')
        self.base_url = 'https://api.paystack.co'
        self.timeout = int(os.getenv('PROVIDER_TIMEOUT_SECONDS', '30'))
        self.use_mock = os.getenv('USE_MOCK_PAYSTACK', 'True').lower() == 'true'

        if not self.use_mock and not self.secret_key:
            logger.warning('Paystack API key not configured. Using mock mode.')
            self.use_mock = True

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
        Make HTTP request to Paystack API

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint
            data: Request payload

        Returns:
            Response data as dictionary

        Raises:
            PaystackAPIError: If API request fails
        """
        url = f"{self.base_url}{endpoint}"

        try:
            if method.upper() == 'GET':
                response = requests.get(url, headers=self._get_headers(), params=data, timeout=self.timeout)
            else:
                response = requests.post(url, headers=self._get_headers(), json=data, timeout=self.timeout)

            response.raise_for_status()
            result = response.json()

            # Paystack always returns status field
            if not result.get('status'):
                error_msg = result.get('message', 'Unknown error')
                raise PaystackAPIError(error_msg, status_code=response.status_code)

            return result

        except requests.exceptions.Timeout:
            logger.error(f'Paystack API timeout: {endpoint}')
            raise PaystackAPIError('Request timeout. Please try again.')

        except requests.exceptions.RequestException as e:
            logger.error(f'Paystack API error: {str(e)}')
            status_code = None
            error_msg = str(e)
            if getattr(e, 'response', None) is not None:
                status_code = e.response.status_code
                try:
                    error_msg = e.response.json().get('message', error_msg)
                except ValueError:
                    pass

            raise PaystackAPIError(f'API Error: {error_msg}', status_code=status_code)

        except ValueError:
            raise PaystackAPIError('Invalid response from Paystack')

    def _convert_to_kobo(self, amount: Decimal) -> int:
        """
        Convert Naira to Kobo (Paystack uses kobo)
        1 Naira = 100 Kobo

        Args:
            amount: Amount in Naira (e.g., 1000.00)

        Returns:
            Amount in kobo (e.g., 100000)
        """
        return int(Decimal(amount) * 100)

    def _convert_to_naira(self, kobo) -> Decimal:
        """
        Convert Kobo to Naira

        Args:
            kobo: Amount in kobo

        Returns:
            Amount in Naira as Decimal
        """
        return Decimal(kobo or 0) / 100

    # ==========================================
    # PAYMENT INITIALIZATION & VERIFICATION
    # ==========================================

    def initialize_payment(
        self,
        email: str,
        amount: Decimal,
        reference: str,
        currency: str = 'NGN',
        callback_url: Optional[str] = None,
        metadata: Optional[Dict] = None
    ) -> Dict:
        """
        Initialize a payment transaction
        Customer will be redirected to Paystack payment page

        Args:
            email: Customer email
            amount: Amount in Naira
            reference: Our payment reference
            currency: Currency code
            callback_url: URL to redirect after payment
            metadata: Additional data (registration_id, etc.)

        Returns:
            Example:
            {
                'authorization_url': 'https://checkout.paystack.com/...',
                'access_code': 'access_code_here',
                'reference': 'CM-VND-...'
            }

        Raises:
            PaystackAPIError: If the transaction could not be initialized
        """

        if self.use_mock:
            return self._mock_initialize_payment(email, amount, reference)

        payload = {
            'email': email,
            'amount': self._convert_to_kobo(amount),
            'currency': currency,
            'reference': reference,
        }

        if callback_url:
            payload['callback_url'] = callback_url

        if metadata:
            payload['metadata'] = metadata

        response = self._make_request('POST', '/transaction/initialize', data=payload)
        data = response['data']
        logger.info(f'Payment initialized: {data.get("reference")}')

        return {
            'authorization_url': data.get('authorization_url'),
            'access_code': data.get('access_code'),
            'reference': data.get('reference'),
        }

    def build_checkout(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        customer: Dict,
        redirect_url: Optional[str] = None,
        metadata: Optional[Dict] = None
    ) -> Dict:
        """Checkout parameters for the Paystack redirect/popup flow"""
        session = self.initialize_payment(
            email=customer.get('email', ''),
            amount=amount,
            reference=reference,
            currency=currency,
            callback_url=redirect_url,
            metadata=metadata
        )
        session['public_key'] = self.public_key
        session['amount_kobo'] = self._convert_to_kobo(amount)
        session['currency'] = currency
        return session

    def verify_transaction(
        self,
        transaction_id: Optional[str] = None,
        reference: Optional[str] = None
    ) -> Tuple[bool, Dict]:
        """
        Verify a payment transaction by reference
        Paystack verifies by reference only; transaction_id is informational

        Returns:
            Tuple of (successful: bool, data: dict)

        Example response data:
            {
                'status': 'success',  # or 'failed', 'cancelled', 'pending'
                'amount': Decimal('10000.00'),
                'currency': 'NGN',
                'transaction_id': '302961',
                'reference': 'CM-VND-...',
                'paid_at': '2024-01-01T10:00:00',
            }

        Raises:
            PaystackAPIError: If Paystack could not be reached
        """
        if not reference:
            raise PaystackAPIError('A reference is required')

        if self.use_mock:
            return self._mock_verify_transaction(reference)

        response = self._make_request('GET', f'/transaction/verify/{reference}')
        data = response['data']
        status = self.STATUS_MAP.get(data.get('status'), 'pending')

        result = {
            'status': status,
            'amount': self._convert_to_naira(data.get('amount', 0)),
            'currency': data.get('currency') or 'NGN',
            'transaction_id': str(data.get('id') or ''),
            'reference': data.get('reference') or '',
            'provider_reference': data.get('reference') or '',
            'paid_at': data.get('paid_at'),
            'channel': data.get('channel'),
            'raw_response': data,
        }

        if status == 'success':
            logger.info(f'Payment verified: {reference}')
        else:
            logger.warning(f'Payment {reference} is {data.get("status")}')

        return status == 'success', result

    # ==========================================
    # TRANSFER RECIPIENTS (Vendor Bank Accounts)
    # ==========================================

    def create_transfer_recipient(
        self,
        account_number: str,
        bank_code: str,
        name: str,
        currency: str = 'NGN'
    ) -> Dict:
        """
        Create a transfer recipient (save vendor's payout bank account)

        Args:
            account_number: NUBAN account number
            bank_code: Bank code (e.g., '058' for GTBank)
            name: Account holder name
            currency: Currency code (default: NGN)

        Returns:
            Example:
            {
                'recipient_code': 'RCP_xxx',
                'name': 'Ada Obi',
                'account_number': '0123456789',
                'bank_name': 'Guaranty Trust Bank',
                'bank_code': '058'
            }

        Raises:
            PaystackAPIError: If the recipient could not be created
        """

        if self.use_mock:
            return self._mock_create_transfer_recipient(account_number, bank_code, name)

        response = self._make_request(
            'POST',
            '/transferrecipient',
            data={
                'type': 'nuban',
                'name': name,
                'account_number': account_number,
                'bank_code': bank_code,
                'currency': currency
            }
        )

        data = response['data']
        details = data.get('details') or {}
        logger.info(f'Transfer recipient created: {data.get("recipient_code")}')

        return {
            'recipient_code': data.get('recipient_code') or '',
            'name': data.get('name') or name,
            'account_number': details.get('account_number') or account_number,
            'bank_name': details.get('bank_name') or '',
            'bank_code': details.get('bank_code') or bank_code,
        }

    # ==========================================
    # TRANSFERS (Referral Payouts)
    # ==========================================

    def initiate_transfer(
        self,
        recipient_code: str,
        amount: Decimal,
        reference: str,
        reason: str = 'Referral bonus'
    ) -> Tuple[bool, Dict]:
        """
        Initiate a transfer from the Paystack balance to a recipient

        Args:
            recipient_code: Recipient code from create_transfer_recipient
            amount: Amount in Naira
            reference: Our payout reference (idempotency key at Paystack)
            reason: Transfer narration

        Returns:
            Tuple of (settled: bool, data: dict)

        Example response data:
            {
                'status': 'pending',  # or 'success', 'failed'
                'transfer_code': 'TRF_xxx',
                'reference': 'CM-PAYOUT-...',
                'amount': Decimal('1000.00'),
            }

        Raises:
            PaystackAPIError: If the transfer was not accepted
        """

        if self.use_mock:
            return self._mock_initiate_transfer(recipient_code, amount, reference)

        response = self._make_request('POST', '/transfer', data={
            'source': 'balance',
            'amount': self._convert_to_kobo(amount),
            'recipient': recipient_code,
            'reason': reason,
            'reference': reference,
        })

        data = response['data']
        status = self.TRANSFER_STATUS_MAP.get(data.get('status'), 'pending')
        logger.info(f'Transfer {reference} initiated: {data.get("transfer_code")} ({data.get("status")})')

        return status == 'success', {
            'status': status,
            'transfer_code': data.get('transfer_code') or '',
            'reference': data.get('reference') or reference,
            'amount': self._convert_to_naira(data.get('amount', 0)),
        }

    def verify_transfer(self, reference: str) -> Tuple[bool, Dict]:
        """
        Look up a transfer by our payout reference

        Returns:
            Tuple of (settled: bool, data: dict) with the same shape as initiate_transfer

        Raises:
            PaystackAPIError: If Paystack could not be reached or has no such transfer (404)
        """

        if self.use_mock:
            return self._mock_verify_transfer(reference)

        response = self._make_request('GET', f'/transfer/verify/{reference}')
        data = response['data']
        status = self.TRANSFER_STATUS_MAP.get(data.get('status'), 'pending')

        return status == 'success', {
            'status': status,
            'transfer_code': data.get('transfer_code') or '',
            'reference': data.get('reference') or reference,
            'amount': self._convert_to_naira(data.get('amount', 0)),
        }

    # ==========================================
    # WEBHOOKS
    # ==========================================

    def verify_webhook_signature(self, raw_body: bytes, headers: Mapping) -> bool:
        """
        x-paystack-signature is the HMAC-SHA512 of the raw body keyed with the secret key
        """
        signature = get_header(headers, 'x-paystack-signature')
        if not signature or not self.secret_key:
            return False

        expected = hmac.new(self.secret_key.encode(), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

    def parse_webhook_event(self, payload: Dict) -> Dict:
        """
        Normalize a webhook payload

        Example payloads:
            {
                'event': 'charge.success',
                'data': {'id': 302961, 'reference': 'CM-VND-...', 'amount': 500000,
                         'currency': 'NGN', 'status': 'success'}
            }
            {
                'event': 'transfer.success',
                'data': {'id': 37272792, 'reference': 'CM-PAYOUT-...', 'amount': 100000,
                         'transfer_code': 'TRF_xxx', 'status': 'success', 'reason': 'Referral bonus'}
            }
        """
        data = payload.get('data') or {}
        event_type = payload.get('event') or ''
        status_map = self.TRANSFER_STATUS_MAP if self.is_transfer_event(event_type) else self.STATUS_MAP

        return {
            'event_type': event_type,
            'reference': data.get('reference') or '',
            'transaction_id': str(data.get('id') or ''),
            'status': status_map.get(data.get('status'), 'pending'),
            'amount': self._convert_to_naira(data.get('amount', 0)),
            'currency': data.get('currency') or '',
        }

    def is_payment_event(self, event_type: str) -> bool:
        return event_type in ('charge.success', 'charge.failed')

    def is_transfer_event(self, event_type: str) -> bool:
        return event_type in self.TRANSFER_EVENTS

    # ==========================================
    # MOCK METHODS (FOR TESTING)
    # ==========================================

    def _mock_initialize_payment(self, email: str, amount: Decimal, reference: str) -> Dict:
        """Mock payment initialization"""
        logger.info(f'[MOCK] Payment initialized: ₦{amount} for {email}')

        return {
            'authorization_url': f'https://mock-paystack.com/pay/{reference}',
            'access_code': f'mock_access_{reference}',
            'reference': reference,
            'mock': True
        }

    def _mock_verify_transaction(self, reference: str) -> Tuple[bool, Dict]:
        """Mock payment verification - always returns success"""
        logger.info(f'[MOCK] Payment verified: {reference}')

        return True, {
            'status': 'success',
            'amount': Decimal('10000.00'),
            'currency': 'NGN',
            'transaction_id': 'mock_txn',
            'reference': reference,
            'provider_reference': reference,
            'paid_at': '2024-01-01T10:00:00',
            'channel': 'card',
            'mock': True
        }

    def _mock_create_transfer_recipient(self, account_number: str, bank_code: str, name: str) -> Dict:
        """Mock transfer recipient creation"""
        logger.info(f'[MOCK] Recipient created: {name} - {account_number[-4:]}')

        return {
            'recipient_code': f'RCP_mock_{account_number[-4:]}',
            'name': name,
            'account_number': account_number,
            'bank_name': 'Mock Bank',
            'bank_code': bank_code,
            'mock': True
        }

    def _mock_initiate_transfer(self, recipient_code: str, amount: Decimal, reference: str) -> Tuple[bool, Dict]:
        """Mock transfer initiation - settles immediately"""
        logger.info(f'[MOCK] Transfer initiated: ₦{amount} to {recipient_code}')

        return True, {
            'status': 'success',
            'transfer_code': f'TRF_mock_{reference[-4:]}',
            'reference': reference,
            'amount': Decimal(amount),
            'mock': True
        }

    def _mock_verify_transfer(self, reference: str) -> Tuple[bool, Dict]:
        """Mock transfer verification"""
        logger.info(f'[MOCK] Transfer verified: {reference}')

        return True, {
            'status': 'success',
            'transfer_code': f'TRF_mock_{reference[-4:]}',
            'reference': reference,
            'amount': Decimal('0.00'),
            'mock': True
        }


# Singleton instance
paystack_service = PaystackService()
