"""
Vendor Onboarding Workflow
Tier selection -> NIN/CAC verification -> payment -> referral settlement -> activation -> payouts
"""

from .operations import (
    handle_payment_callback,
    handle_webhook,
    initiate_payment,
    registration_state,
    request_payout,
    select_tier,
    submit_cac_verification,
    submit_nin_verification,
    update_payout_account,
    wallet_state,
)

__all__ = [
    'select_tier',
    'submit_nin_verification',
    'submit_cac_verification',
    'initiate_payment',
    'handle_payment_callback',
    'handle_webhook',
    'registration_state',
    'update_payout_account',
    'request_payout',
    'wallet_state',
]
