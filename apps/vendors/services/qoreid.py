"""
QoreID API Integration Service
Handles NIN (identity) and CAC (business) verification
Documentation: https://docs.qoreid.com/

Environment Variables Required:
- QOREID_CLIENT_ID
- QOREID_CLIENT_SECRET
- QOREID_BASE_URL (optional, defaults to production)
- USE_MOCK_QOREID (set to 'True' for testing without real API)
"""

import os
import requests
import logging
from typing import Dict, Optional, Tuple
from django.core.cache import cache

from .utils import mask_sensitive_data

logger = logging.getLogger(__name__)


class QoreIDAPIError(Exception):
    """Custom exception for QoreID API errors"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class QoreIDService:
    """
    Service class for interacting with QoreID API

    verify_* methods return (verified, data) when QoreID answered, and raise
    QoreIDAPIError when it could not be reached or failed server-side
    """

    TOKEN_CACHE_KEY = 'qoreid_access_token'

    # Statuses meaning "QoreID answered, the identity was not found/verified"
    NOT_VERIFIED_STATUS_CODES = (400, 404, 422)

    def __init__(self):
        self.client_id = os.getenv('QOREID_CLIENT_ID', '')
        self.client_secret = os.getenv('QOREID_CLIENT_SECRET', '')
        self.base_url = os.getenv('QOREID_BASE_URL', 'https://api.qoreid.com').rstrip('/')
        self.timeout = int(os.getenv('PROVIDER_TIMEOUT_SECONDS', '30'))
        self.use_mock = os.getenv('USE_MOCK_QOREID', 'True').lower() == 'true'

        if not self.use_mock and (not self.client_id or not self.client_secret):
            logger.warning('QoreID API credentials not configured. Using mock mode.')
            self.use_mock = True

    def _get_access_token(self) -> str:
        """
        Exchange client credentials for a bearer token
        Tokens are cached until shortly before they expire
        """
        token = cache.get(self.TOKEN_CACHE_KEY)
        if token:
            return token

        url = f"{self.base_url}/token"

        try:
            response = requests.post(
                url,
                json={'clientId': str(self.client_id), 'secret': str(self.client_secret)},
                headers={'Accept': 'text/plain', 'Content-Type': 'application/json'},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.Timeout:
            logger.error('QoreID token request timeout')
            raise QoreIDAPIError('Request timeout. Please try again.')

        except requests.exceptions.RequestException as e:
            logger.error(f'QoreID authorization failed: {str(e)}')
            raise QoreIDAPIError('Authorization with verification service failed')

        except ValueError:
            raise QoreIDAPIError('Invalid token response from QoreID')

        token = data.get('accessToken') or data.get('access_token')
        if not token:
            raise QoreIDAPIError('No access token in QoreID response')

        expires_in = int(data.get('expiresIn') or data.get('expires_in') or 3600)
        cache.set(self.TOKEN_CACHE_KEY, token, timeout=max(60, expires_in - 60))
        return token

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        return {
            'Authorization': f'Bearer {self._get_access_token()}',
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }

    def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None
    ) -> Dict:
        """
        Make HTTP request to QoreID API

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint
            data: Request payload

        Returns:
            Response data as dictionary

        Raises:
            QoreIDAPIError: If API request fails
        """
        url = f"{self.base_url}{endpoint}"

        try:
            if method.upper() == 'GET':
                response = requests.get(url, headers=self._get_headers(), params=data, timeout=self.timeout)
            else:
                response = requests.post(url, headers=self._get_headers(), json=data, timeout=self.timeout)

            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout:
            logger.error(f'QoreID API timeout: {endpoint}')
            raise QoreIDAPIError('Request timeout. Please try again.')

        except requests.exceptions.RequestException as e:
            status_code = None
            error_msg = str(e)
            if getattr(e, 'response', None) is not None:
                status_code = e.response.status_code
                try:
                    error_data = e.response.json()
                    error_msg = error_data.get('message') or error_data.get('error') or error_msg
                except ValueError:
                    pass

            logger.error(f'QoreID API error ({status_code}): {error_msg}')
            raise QoreIDAPIError(f'API Error: {error_msg}', status_code=status_code)

        except ValueError:
            raise QoreIDAPIError('Invalid response from QoreID')

    # ==========================================
    # NIN VERIFICATION
    # ==========================================

    def verify_nin(self, nin_number: str, first_name: str, last_name: str) -> Tuple[bool, Dict]:
        """
        Verify NIN and retrieve identity information

        Args:
            nin_number: 11-digit National Identity Number
            first_name: First name submitted by the vendor
            last_name: Last name submitted by the vendor

        Returns:
            Tuple of (verified: bool, data: dict)

        Example response data:
            {
                'verification_id': 1234,
                'firstname': 'JOHN',
                'lastname': 'DOE',
                'middlename': 'SMITH',
                'phone': '08012345678',
                'birthdate': '1990-01-15',
                'gender': 'm',
                'photo': 'base64...'
            }

        Raises:
            QoreIDAPIError: If QoreID could not be reached
        """

        if self.use_mock:
            return self._mock_verify_nin(nin_number, first_name, last_name)

        try:
            response = self._make_request(
                'POST',
                f'/v1/ng/identities/nin/{nin_number}',
                data={
                    'firstname': first_name.upper(),
                    'lastname': last_name.upper(),
                }
            )
        except QoreIDAPIError as e:
            if e.status_code in self.NOT_VERIFIED_STATUS_CODES:
                logger.warning(f'NIN not verified by QoreID: {mask_sensitive_data(nin_number)}')
                return False, {'error': str(e)}
            raise

        status = response.get('status') or {}
        if status.get('status') != 'verified':
            logger.warning(f'NIN verification failed: {mask_sensitive_data(nin_number)}')
            return False, {'error': status.get('message') or 'NIN verification failed'}

        data = response.get('nin') or response.get('summary') or {}

        normalized_data = {
            'verification_id': response.get('id'),
            'firstname': data.get('firstname', ''),
            'lastname': data.get('lastname', data.get('surname', '')),
            'middlename': data.get('middlename', ''),
            'phone': data.get('phone', ''),
            'birthdate': data.get('birthdate', ''),
            'gender': data.get('gender', ''),
            'photo': data.get('photo', ''),
        }

        logger.info(f'NIN verified successfully: {mask_sensitive_data(nin_number)}')
        return True, normalized_data

    # ==========================================
    # CAC VERIFICATION
    # ==========================================

    def verify_cac(self, cac_number: str, company_name: str = '') -> Tuple[bool, Dict]:
        """
        Verify CAC registration and retrieve business information

        Args:
            cac_number: Registration number (e.g., 'RC123456', 'BN200002')
            company_name: Company name submitted by the vendor (used by mock mode)

        Returns:
            Tuple of (verified: bool, data: dict)

        Example response data:
            {
                'verification_id': 5678,
                'company_name': 'DYNAMITE EVENTS SERVICES',
                'rc_number': '200002',
                'status': 'ACTIVE',
                'company_type': 'Business',
                'registration_date': '2022-08-04',
                'address': 'Oxford Street, Abeere',
                'state': 'Oyo',
                'email': 'info@example.com'
            }

        Raises:
            QoreIDAPIError: If QoreID could not be reached
        """

        if self.use_mock:
            return self._mock_verify_cac(cac_number, company_name)

        try:
            response = self._make_request(
                'POST',
                '/v1/ng/identities/cac-basic',
                data={'regNumber': cac_number}
            )
        except QoreIDAPIError as e:
            if e.status_code in self.NOT_VERIFIED_STATUS_CODES:
                logger.warning(f'CAC not verified by QoreID: {cac_number}')
                return False, {'error': str(e)}
            raise

        status = response.get('status') or {}
        cac = response.get('cac')
        if status.get('status') != 'verified' or not cac:
            logger.warning(f'CAC verification failed: {cac_number}')
            return False, {'error': status.get('message') or response.get('message') or 'CAC verification failed'}

        normalized_data = {
            'verification_id': response.get('id'),
            'company_name': cac.get('companyName') or '',
            'rc_number': cac.get('rcNumber') or cac_number,
            'status': cac.get('status') or '',
            'company_type': cac.get('classification') or cac.get('companyType') or '',
            'registration_date': cac.get('registrationDate') or '',
            'address': cac.get('headOfficeAddress') or cac.get('branchAddress') or '',
            'state': cac.get('state') or '',
            'email': cac.get('companyEmail') or '',
        }

        logger.info(f'CAC verified successfully: {cac_number}')
        return True, normalized_data

    # ==========================================
    # MOCK METHODS (FOR TESTING)
    # ==========================================

    def _mock_verify_nin(self, nin_number: str, first_name: str, last_name: str) -> Tuple[bool, Dict]:
        """Mock NIN verification - echoes the submitted names"""
        logger.info(f'[MOCK] NIN verification: {mask_sensitive_data(nin_number)}')

        return True, {
            'verification_id': f'mock_nin_{nin_number[-4:]}',
            'firstname': first_name.upper(),
            'lastname': last_name.upper(),
            'middlename': '',
            'phone': '08012345678',
            'birthdate': '1990-01-15',
            'gender': 'm',
            'photo': '',
            'mock': True
        }

    def _mock_verify_cac(self, cac_number: str, company_name: str) -> Tuple[bool, Dict]:
        """Mock CAC verification - active business under the submitted name"""
        logger.info(f'[MOCK] CAC verification: {cac_number}')

        return True, {
            'verification_id': f'mock_cac_{cac_number[-4:]}',
            'company_name': (company_name or 'DYNAMITE EVENTS SERVICES').upper(),
            'rc_number': cac_number,
            'status': 'ACTIVE',
            'company_type': 'Business',
            'registration_date': '2022-08-04',
            'address': 'Oxford Street, Abeere',
            'state': '',
            'email': '',
            'mock': True
        }


# Singleton instance
qoreid_service = QoreIDService()
