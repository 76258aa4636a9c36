"""
Vendor App Decorators
Access control and error mapping for the onboarding JSON endpoints
"""

import json
import logging
from functools import wraps

from django.http import JsonResponse

from .exceptions import OnboardingError, ProviderError

logger = logging.getLogger(__name__)


# ==========================================
# VENDOR ACCESS DECORATORS
# ==========================================

def vendor_required(view_func):
    """
    Decorator for JSON views that require an authenticated vendor
    Returns JSON errors instead of redirects

    Usage:
        @vendor_required
        def verify_nin(request):
            ...
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        # Check if user is authenticated
        if not request.user.is_authenticated:
            return JsonResponse({
                'success': False,
                'error': 'Authentication required'
            }, status=401)

        # Check if user is a vendor
        if not getattr(request.user, 'is_vendor', False):
            return JsonResponse({
                'success': False,
                'error': 'Vendor account required'
            }, status=403)

        return view_func(request, *args, **kwargs)

    return wrapper


# ==========================================
# ERROR MAPPING
# ==========================================

def onboarding_errors(view_func):
    """
    Map workflow errors to JSON responses with the error's status code
    Provider errors reach the user as "try again"; details stay in the log
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)

        except ProviderError as e:
            logger.error(f'{request.path}: {e.message} {e.context}')
            return JsonResponse({
                'success': False,
                'error': e.message or 'Service temporarily unavailable. Please try again.',
                'code': e.code
            }, status=e.status_code)

        except OnboardingError as e:
            logger.info(f'{request.path}: {e.code} - {e.message}')
            return JsonResponse({
                'success': False,
                'error': e.message,
                'code': e.code
            }, status=e.status_code)

    return wrapper


# ==========================================
# UTILITY FUNCTIONS
# ==========================================

def request_data(request):
    """POST data from a JSON body or a form-encoded body"""
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body or b'{}')
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return request.POST
