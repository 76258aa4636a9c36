"""
Vendor Onboarding Exceptions
Error taxonomy raised by the onboarding workflow and mapped to HTTP responses by the views
"""


class OnboardingError(Exception):
    """Base class for vendor onboarding workflow errors"""
    status_code = 400
    code = 'onboarding_error'

    def __init__(self, message='', **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(OnboardingError):
    """Malformed input, rejected before any side effect"""
    code = 'validation_error'


class IdentityMismatchError(OnboardingError):
    """Identity provider data does not match what the user submitted"""
    code = 'identity_mismatch'


class ProviderError(OnboardingError):
    """Upstream provider timeout or error; the step can be retried"""
    status_code = 502
    code = 'provider_error'


class AuthenticityError(OnboardingError):
    """Payment event could not be authenticated"""
    status_code = 401
    code = 'authenticity_error'


class AmountMismatchError(OnboardingError):
    """Verified payment amount or currency does not cover the fee"""
    code = 'amount_mismatch'


class PrerequisiteError(OnboardingError):
    """Step attempted before the steps it depends on"""
    status_code = 409
    code = 'prerequisite_error'


class InvalidStateError(OnboardingError):
    """Attempt to change something that can no longer change"""
    status_code = 409
    code = 'invalid_state'


class DuplicateEventError(OnboardingError):
    """Event already applied; callers return the recorded outcome instead"""
    status_code = 200
    code = 'duplicate_event'


class ReferralCodeExhaustedError(OnboardingError):
    """Could not find a free vendor referral code within the retry budget"""
    status_code = 500
    code = 'referral_code_exhausted'


class InsufficientBalanceError(OnboardingError):
    """Payout larger than the available wallet balance"""
    code = 'insufficient_balance'
