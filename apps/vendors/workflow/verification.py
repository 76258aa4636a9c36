"""
Verification Step Runner
Runs NIN and CAC verification against QoreID and records the result once
"""

import logging
from typing import Dict

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.vendors.exceptions import (
    IdentityMismatchError,
    PrerequisiteError,
    ProviderError,
    ValidationError,
)
from apps.vendors.models import VendorRegistration, VerificationRecord
from apps.vendors.services.qoreid import QoreIDAPIError, qoreid_service
from apps.vendors.services.utils import (
    hash_data,
    mask_sensitive_data,
    normalize_cac_number,
    normalize_nin,
    partial_match,
    validate_cac_number,
    validate_nin,
    validate_person_name,
)

logger = logging.getLogger(__name__)


FLAG_FIELDS = {
    VerificationRecord.KIND_NIN: ('nin_verified', 'nin_verified_at'),
    VerificationRecord.KIND_CAC: ('cac_verified', 'cac_verified_at'),
}


# ==========================================
# CLAIM VALIDATION
# ==========================================

def clean_claims(kind: str, claims: Dict) -> Dict:
    """
    Normalize and validate submitted claims before anything else happens

    Raises:
        ValidationError: Malformed input
    """
    if kind == VerificationRecord.KIND_NIN:
        nin = normalize_nin(claims.get('nin', ''))
        is_valid, error = validate_nin(nin)
        if not is_valid:
            raise ValidationError(error, field='nin')

        first_name = (claims.get('first_name') or '').strip()
        last_name = (claims.get('last_name') or '').strip()
        for field, value, label in (
            ('first_name', first_name, 'First name'),
            ('last_name', last_name, 'Last name'),
        ):
            is_valid, error = validate_person_name(value, label)
            if not is_valid:
                raise ValidationError(error, field=field)

        return {'identifier': nin, 'first_name': first_name, 'last_name': last_name}

    if kind == VerificationRecord.KIND_CAC:
        cac_number = normalize_cac_number(claims.get('cac_number', ''))
        is_valid, error = validate_cac_number(cac_number)
        if not is_valid:
            raise ValidationError(error, field='cac_number')

        company_name = (claims.get('company_name') or '').strip()
        if not company_name:
            raise ValidationError('Company name is required', field='company_name')

        return {'identifier': cac_number, 'company_name': company_name}

    raise ValidationError(f'Unknown verification kind: {kind}')


# ==========================================
# PROVIDER CALL & CROSS-CHECK
# ==========================================

def _call_provider(kind: str, cleaned: Dict):
    try:
        if kind == VerificationRecord.KIND_NIN:
            return qoreid_service.verify_nin(
                cleaned['identifier'],
                cleaned['first_name'],
                cleaned['last_name']
            )
        return qoreid_service.verify_cac(cleaned['identifier'], cleaned['company_name'])

    except QoreIDAPIError as e:
        logger.error(
            f'{kind.upper()} verification provider error for '
            f'{mask_sensitive_data(cleaned["identifier"])}: {str(e)}'
        )
        raise ProviderError('Verification service is unavailable. Please try again.', kind=kind)


def _cross_check(kind: str, cleaned: Dict, data: Dict) -> Dict:
    """
    Compare provider data with the claims

    Returns:
        Fields for the verification record (subject_name) and registration update

    Raises:
        IdentityMismatchError
    """
    if kind == VerificationRecord.KIND_NIN:
        first_ok = partial_match(data.get('firstname', ''), cleaned['first_name'])
        last_ok = partial_match(data.get('lastname', ''), cleaned['last_name'])
        if not (first_ok and last_ok):
            raise IdentityMismatchError(
                'The names you entered do not match your NIN record',
                first_name_match=first_ok,
                last_name_match=last_ok
            )

        full_name = ' '.join(
            part.strip().title()
            for part in (data.get('firstname'), data.get('middlename'), data.get('lastname'))
            if part and part.strip()
        )
        return {'subject_name': full_name, 'registration_fields': {'full_name': full_name}}

    company_name = data.get('company_name', '')
    name_ok = (
        partial_match(company_name, cleaned['company_name'])
        or partial_match(cleaned['company_name'], company_name)
    )
    if not name_ok:
        raise IdentityMismatchError('Company name does not match CAC record', company_name=company_name)

    if str(data.get('status', '')).upper() != 'ACTIVE':
        raise IdentityMismatchError(
            'Business is not active on the CAC register',
            business_status=data.get('status', '')
        )

    return {'subject_name': company_name, 'registration_fields': {'business_name': company_name}}


# ==========================================
# VERIFY
# ==========================================

def _outcome(registration: VendorRegistration, kind: str, record, cached: bool) -> Dict:
    return {
        'kind': kind,
        'verified': True,
        'cached': cached,
        'subject_name': record.subject_name if record else '',
        'subject_number': record.subject_number if record else '',
        'registration': registration,
    }


def verify(registration: VendorRegistration, kind: str, claims: Dict) -> Dict:
    """
    Run one verification step for a registration

    Args:
        registration: VendorRegistration instance
        kind: 'nin' or 'cac'
        claims: NIN {'nin', 'first_name', 'last_name'} or CAC {'cac_number', 'company_name'}

    Returns:
        Outcome dict; 'cached' is True when the step had already succeeded

    Raises:
        ValidationError, PrerequisiteError, ProviderError, IdentityMismatchError
    """
    cleaned = clean_claims(kind, claims)
    flag_field, timestamp_field = FLAG_FIELDS[kind]

    registration.refresh_from_db()

    if getattr(registration, flag_field):
        record = registration.verification_records.filter(kind=kind).first()
        return _outcome(registration, kind, record, cached=True)

    if not registration.verification_type:
        raise PrerequisiteError('Please select a tier before verification')

    if kind not in registration.required_steps:
        raise PrerequisiteError('CAC verification is only required for the premium tier')

    subject_hash = hash_data(f'{kind}:{cleaned["identifier"]}')
    if VerificationRecord.objects.filter(kind=kind, subject_hash=subject_hash).exclude(
        registration=registration
    ).exists():
        raise ValidationError(f'This {kind.upper()} is already registered to another vendor', field=kind)

    # Provider call happens outside any transaction
    verified, data = _call_provider(kind, cleaned)

    if not verified:
        logger.warning(
            f'{kind.upper()} not verified for registration {registration.registration_id}: '
            f'{data.get("error", "")}'
        )
        raise IdentityMismatchError(
            data.get('error') or f'{kind.upper()} could not be verified',
            kind=kind
        )

    checked = _cross_check(kind, cleaned, data)
    now = timezone.now()

    update_fields = {flag_field: True, timestamp_field: now, 'updated_at': now}
    for field, value in checked['registration_fields'].items():
        if value and not getattr(registration, field):
            update_fields[field] = value

    try:
        with transaction.atomic():
            record = VerificationRecord.objects.create(
                registration=registration,
                kind=kind,
                subject_name=checked['subject_name'],
                subject_number=mask_sensitive_data(cleaned['identifier']),
                subject_hash=subject_hash,
                provider_verification_id=str(data.get('verification_id') or ''),
                provider_data={k: v for k, v in data.items() if k != 'photo'},
            )
            VendorRegistration.objects.filter(
                pk=registration.pk,
                **{flag_field: False}
            ).update(**update_fields)

    except IntegrityError:
        registration.refresh_from_db()
        if getattr(registration, flag_field):
            record = registration.verification_records.filter(kind=kind).first()
            return _outcome(registration, kind, record, cached=True)
        raise ValidationError(f'This {kind.upper()} is already registered to another vendor', field=kind)

    registration.refresh_from_db()
    logger.info(
        f'{kind.upper()} verified for registration {registration.registration_id}: '
        f'{mask_sensitive_data(cleaned["identifier"])}'
    )
    return _outcome(registration, kind, record, cached=False)
