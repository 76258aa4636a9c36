"""
Vendor Services Package
Centralized imports for all services
"""

from .qoreid import qoreid_service, QoreIDAPIError
from .flutterwave import flutterwave_service, FlutterwaveAPIError
from .paystack import paystack_service, PaystackAPIError
from .notifications import notification_service

__all__ = [
    'qoreid_service',
    'flutterwave_service',
    'paystack_service',
    'notification_service',
    'QoreIDAPIError',
    'FlutterwaveAPIError',
    'PaystackAPIError',
]
