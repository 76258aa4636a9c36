"""
Vendor App Utility Functions
Helpers for identifier validation, masking, references and referral codes
"""

import hashlib
import re
import secrets
import string
import time
from typing import Tuple
import logging

logger = logging.getLogger(__name__)


NIN_PATTERN = re.compile(r'^[0-9]{11}$')
CAC_PATTERN = re.compile(r'^(BN|RC|IT|LLP)[0-9]+$')
NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")
ACCOUNT_NUMBER_PATTERN = re.compile(r'^[0-9]{10}$')
BANK_CODE_PATTERN = re.compile(r'^[0-9]{3,6}$')

REFERRAL_CODE_PREFIX = 'VND'
REFERRAL_CODE_CHARS = string.ascii_uppercase + string.digits
REFERRAL_CODE_LENGTH = 8

PAYMENT_REFERENCE_PREFIX = 'CM-VND'
PAYOUT_REFERENCE_PREFIX = 'CM-PAYOUT'


# ==========================================
# MASKING & HASHING
# ==========================================

def mask_sensitive_data(data: str) -> str:
    """
    Mask an identifier (NIN, CAC number, account number) for storage and logs

    Args:
        data: Identifier to mask

    Returns:
        Masked string with only the last 4 characters visible
    """
    if not data:
        return ''

    if len(data) > 4:
        return '*' * (len(data) - 4) + data[-4:]

    return data


def hash_data(data: str) -> str:
    """
    Create SHA256 hash of data
    Used to detect an identifier reused across registrations without storing it

    Args:
        data: Data to hash

    Returns:
        SHA256 hash as hex string
    """
    return hashlib.sha256(data.encode()).hexdigest()


# ==========================================
# REFERENCES & CODES
# ==========================================

def generate_reference(prefix: str = PAYMENT_REFERENCE_PREFIX, length: int = 9) -> str:
    """
    Generate a payment reference (idempotency key)

    Args:
        prefix: Reference prefix
        length: Length of random suffix

    Returns:
        Reference string (e.g., 'CM-VND-1718000000000-k3m9p2l5a')
    """
    chars = string.ascii_lowercase + string.digits
    random_part = ''.join(secrets.choice(chars) for _ in range(length))
    timestamp = int(time.time() * 1000)

    return f"{prefix}-{timestamp}-{random_part}"


def generate_referral_code() -> str:
    """
    Generate a vendor referral code: 'VND' + 8 characters from [A-Z0-9]
    Uniqueness is checked by the caller
    """
    random_part = ''.join(secrets.choice(REFERRAL_CODE_CHARS) for _ in range(REFERRAL_CODE_LENGTH))
    return f"{REFERRAL_CODE_PREFIX}{random_part}"


def normalize_referral_code(code) -> str:
    return (code or '').strip().upper()


# ==========================================
# VALIDATION
# ==========================================

def normalize_nin(nin: str) -> str:
    """Remove spaces and dashes from a NIN"""
    return re.sub(r'[\s\-]', '', nin or '')


def validate_nin(nin: str) -> Tuple[bool, str]:
    """
    Validate Nigerian National Identity Number

    Args:
        nin: NIN string (already normalized)

    Returns:
        Tuple of (is_valid: bool, error_message: str)
    """
    if not nin:
        return False, 'NIN is required'

    if not NIN_PATTERN.match(nin):
        return False, 'NIN must be exactly 11 digits'

    return True, ''


def normalize_cac_number(cac_number: str) -> str:
    return re.sub(r'\s', '', cac_number or '').upper()


def validate_cac_number(cac_number: str) -> Tuple[bool, str]:
    """
    Validate CAC registration number (BN, RC, IT or LLP followed by digits)

    Args:
        cac_number: Registration number (already normalized)

    Returns:
        Tuple of (is_valid: bool, error_message: str)
    """
    if not cac_number:
        return False, 'CAC registration number is required'

    if not CAC_PATTERN.match(cac_number):
        return False, 'Invalid CAC number format. Use BN, RC, IT or LLP followed by digits'

    return True, ''


def validate_person_name(name: str, label: str = 'Name') -> Tuple[bool, str]:
    if not name or not name.strip():
        return False, f'{label} is required'

    if not NAME_PATTERN.match(name.strip()):
        return False, f'Invalid {label.lower()} format'

    return True, ''


def partial_match(value: str, candidate: str) -> bool:
    """Case-insensitive check that candidate appears inside value"""
    if not value or not candidate:
        return False
    return candidate.strip().lower() in value.strip().lower()


def validate_account_number(account_number: str) -> Tuple[bool, str]:
    """NUBAN account number: exactly 10 digits"""
    if not account_number:
        return False, 'Account number is required'

    if not ACCOUNT_NUMBER_PATTERN.match(account_number):
        return False, 'Account number must be exactly 10 digits'

    return True, ''


def validate_bank_code(bank_code: str) -> Tuple[bool, str]:
    if not bank_code:
        return False, 'Bank code is required'

    if not BANK_CODE_PATTERN.match(bank_code):
        return False, 'Invalid bank code'

    return True, ''
