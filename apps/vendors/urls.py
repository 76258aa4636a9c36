from django.urls import path
from . import views

app_name = 'vendors'

urlpatterns = [
    # ==========================================
    # ONBOARDING FLOW
    # ==========================================
    path('onboarding/status/', views.onboarding_status, name='onboarding_status'),
    path('onboarding/tier/', views.select_tier, name='select_tier'),

    # Verification
    path('onboarding/verify-nin/', views.verify_nin, name='verify_nin'),
    path('onboarding/verify-cac/', views.verify_cac, name='verify_cac'),

    # Payment
    path('onboarding/payment/initiate/', views.initiate_payment, name='initiate_payment'),
    path('onboarding/payment/callback/', views.payment_callback, name='payment_callback'),

    # ==========================================
    # REFERRALS
    # ==========================================
    path('referrals/', views.referrals_overview, name='referrals'),
    path('referrals/payout-account/', views.payout_account, name='payout_account'),
    path('referrals/payout/', views.request_payout, name='request_payout'),

    # ==========================================
    # WEBHOOKS
    # ==========================================
    path('webhooks/<str:provider>/', views.payment_webhook, name='payment_webhook'),
]
