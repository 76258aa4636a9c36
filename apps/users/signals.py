import logging

from django.dispatch import receiver
from allauth.account.signals import user_signed_up

from .models import CustomUser

logger = logging.getLogger(__name__)


def _request_value(request, key):
    try:
        return (request.GET.get(key, '') or request.POST.get(key, '') or '').strip()
    except AttributeError:
        return ''


def _assign_role_from_request(request, user):
    """Inspect the sign-up request and assign user.role.

    Uses simple substring checks (case-insensitive) on the request path
    and the `next` parameter. A vendor sign-up also starts the vendor
    registration, carrying the `ref` referral code if one was supplied.
    """
    path = (getattr(request, 'path', '') or '').lower()
    next_url = _request_value(request, 'next').lower()

    if 'vendor' in path or 'vendor' in next_url:
        user.role = CustomUser.ROLE_VENDOR
    else:
        user.role = CustomUser.ROLE_CUSTOMER

    user.save(update_fields=['role'])
    logger.info(f"Assigned role '{user.role}' to user {user.email}")

    if user.is_vendor:
        from apps.vendors.workflow.registration import start_registration
        start_registration(user, referred_by=_request_value(request, 'ref'))


@receiver(user_signed_up)
def assign_role_on_account_signup(request, user, **kwargs):
    """Handle role assignment for regular (email/password) signups."""
    if request is None:
        logger.info(f"No request available; left role as '{user.role}' for {user.email}")
        return

    _assign_role_from_request(request, user)
