"""
Vendor App Django Admin
Provides admin interface for registrations, verification, payments, referrals and wallets
"""

from django.contrib import admin
from django.utils.html import format_html
from django.contrib import messages
from .models import (
    VendorRegistration, VerificationRecord, PaymentRecord, WebhookEvent,
    ReferralRecord, Wallet, WalletTransaction
)
from .workflow.payments import complete_post_payment, process_webhook_event


# ==========================================
# INLINE ADMIN CLASSES
# ==========================================

class VerificationRecordInline(admin.TabularInline):
    """Show verification records inside VendorRegistration admin"""
    model = VerificationRecord
    extra = 0
    readonly_fields = ['kind', 'subject_name', 'subject_number', 'provider_verification_id', 'verified_at']
    exclude = ['subject_hash', 'provider_data']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class PaymentRecordInline(admin.TabularInline):
    """Show payments inside VendorRegistration admin"""
    model = PaymentRecord
    extra = 0
    fields = ['reference', 'provider', 'amount', 'paid_amount', 'status', 'created_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


# ==========================================
# VENDOR REGISTRATION ADMIN
# ==========================================

@admin.register(VendorRegistration)
class VendorRegistrationAdmin(admin.ModelAdmin):
    list_display = [
        'registration_id_short', 'display_name', 'user_email',
        'status_badge', 'tier', 'nin_badge', 'cac_badge', 'payment_badge',
        'referral_code', 'created_at'
    ]
    list_filter = ['status', 'verification_type', 'nin_verified', 'cac_verified', 'payment_verified', 'created_at']
    search_fields = ['full_name', 'business_name', 'user__email', 'referral_code', 'referred_by']
    readonly_fields = [
        'registration_id', 'user', 'verification_type', 'nin_verified', 'cac_verified',
        'payment_verified', 'referral_code', 'referred_by', 'status',
        'tier_selected_at', 'nin_verified_at', 'cac_verified_at',
        'registration_completed_at', 'welcome_notified_at', 'created_at', 'updated_at'
    ]

    fieldsets = (
        ('Vendor', {
            'fields': ('registration_id', 'user', 'full_name', 'email', 'phone', 'business_name', 'address')
        }),
        ('Bank Details', {
            'fields': ('bank_name', 'account_number', 'account_name'),
            'classes': ('collapse',)
        }),
        ('Onboarding', {
            'fields': (
                'status', 'verification_type', 'nin_verified', 'cac_verified', 'payment_verified',
                'referral_code', 'referred_by'
            )
        }),
        ('Timestamps', {
            'fields': (
                'tier_selected_at', 'nin_verified_at', 'cac_verified_at',
                'registration_completed_at', 'welcome_notified_at', 'created_at', 'updated_at'
            ),
            'classes': ('collapse',)
        }),
    )

    inlines = [VerificationRecordInline, PaymentRecordInline]

    def registration_id_short(self, obj):
        return str(obj.registration_id)[:8]
    registration_id_short.short_description = 'Registration ID'

    def display_name(self, obj):
        return obj.business_name or obj.full_name or '-'
    display_name.short_description = 'Vendor'

    def user_email(self, obj):
        return obj.user.email
    user_email.short_description = 'Email'

    def tier(self, obj):
        return obj.get_verification_type_display() or '-'
    tier.short_description = 'Tier'

    def status_badge(self, obj):
        colors = {
            'active': 'green',
            'pending': 'orange',
            'payment_failed': 'red',
        }
        color = colors.get(obj.status, 'gray')
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 10px; border-radius: 3px;">{}</span>',
            color, obj.get_status_display()
        )
    status_badge.short_description = 'Status'

    def nin_badge(self, obj):
        if obj.nin_verified:
            return format_html('<span style="color: green;">✓ NIN</span>')
        return format_html('<span style="color: orange;">⏳ NIN</span>')
    nin_badge.short_description = 'Identity'

    def cac_badge(self, obj):
        if obj.verification_type != VendorRegistration.VERIFICATION_NIN_CAC:
            return format_html('<span style="color: gray;">N/A</span>')
        if obj.cac_verified:
            return format_html('<span style="color: green;">✓ CAC</span>')
        return format_html('<span style="color: orange;">⏳ CAC</span>')
    cac_badge.short_description = 'Business'

    def payment_badge(self, obj):
        if obj.payment_verified:
            return format_html('<span style="color: green; font-weight: bold;">✓ Paid</span>')
        return format_html('<span style="color: red;">✗ Unpaid</span>')
    payment_badge.short_description = 'Payment'


@admin.register(VerificationRecord)
class VerificationRecordAdmin(admin.ModelAdmin):
    list_display = ['registration', 'kind', 'subject_name', 'subject_number', 'verified_at']
    list_filter = ['kind', 'verified_at']
    search_fields = ['subject_name', 'registration__user__email']
    readonly_fields = [
        'registration', 'kind', 'subject_name', 'subject_number', 'subject_hash',
        'provider_verification_id', 'provider_data', 'verified_at'
    ]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return request.user.is_superuser


# ==========================================
# PAYMENTS & WEBHOOKS ADMIN
# ==========================================

@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = [
        'reference', 'registration', 'provider', 'amount', 'paid_amount',
        'status_badge', 'created_at', 'completed_at'
    ]
    list_filter = ['status', 'provider', 'created_at']
    search_fields = ['reference', 'transaction_id', 'registration__user__email']
    readonly_fields = [
        'registration', 'reference', 'provider', 'amount', 'currency', 'status',
        'transaction_id', 'provider_reference', 'paid_amount', 'failure_reason',
        'created_at', 'updated_at', 'completed_at'
    ]

    actions = ['rerun_follow_ups']

    def status_badge(self, obj):
        colors = {
            'success': 'green',
            'pending': 'orange',
            'failed': 'red',
            'cancelled': 'gray',
        }
        color = colors.get(obj.status, 'gray')
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 10px; border-radius: 3px;">{}</span>',
            color, obj.get_status_display()
        )
    status_badge.short_description = 'Status'

    def has_add_permission(self, request):
        return False

    # Admin Actions
    def rerun_follow_ups(self, request, queryset):
        """Re-run referral settlement and activation for successful payments"""
        count = 0
        for payment in queryset.filter(status=PaymentRecord.STATUS_SUCCESS):
            outcome = complete_post_payment(payment)
            if not outcome['errors']:
                count += 1
        self.message_user(request, f'✓ Completed follow-ups for {count} payment(s)', messages.SUCCESS)
    rerun_follow_ups.short_description = 'Re-run referral and activation for successful payments'


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ['provider', 'event_type', 'reference', 'status', 'attempts', 'received_at', 'processed_at']
    list_filter = ['provider', 'status', 'event_type', 'received_at']
    search_fields = ['reference', 'transaction_id']
    readonly_fields = [
        'provider', 'event_type', 'reference', 'transaction_id', 'payload',
        'status', 'attempts', 'last_error', 'received_at', 'processed_at'
    ]

    actions = ['reprocess_events']

    def has_add_permission(self, request):
        return False

    def reprocess_events(self, request, queryset):
        """Reprocess failed or unfinished webhook events"""
        count = 0
        for event in queryset.filter(status__in=[WebhookEvent.STATUS_FAILED, WebhookEvent.STATUS_RECEIVED]):
            process_webhook_event(event)
            count += 1
        self.message_user(request, f'↻ Reprocessed {count} event(s)', messages.SUCCESS)
    reprocess_events.short_description = 'Reprocess selected events'


# ==========================================
# REFERRALS & WALLETS ADMIN
# ==========================================

@admin.register(ReferralRecord)
class ReferralRecordAdmin(admin.ModelAdmin):
    list_display = ['referrer', 'referred', 'referral_code', 'bonus_amount', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['referral_code', 'referrer__email', 'referred__email']
    readonly_fields = [
        'referrer', 'referred', 'referral_code', 'payment', 'bonus_amount',
        'status', 'created_at', 'completed_at'
    ]

    def has_add_permission(self, request):
        return False


class WalletTransactionInline(admin.TabularInline):
    model = WalletTransaction
    extra = 0
    fields = ['transaction_type', 'amount', 'status', 'balance_before', 'balance_after', 'reference', 'created_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ['user', 'balance', 'total_earned', 'total_withdrawn', 'has_payout_account', 'updated_at']
    search_fields = ['user__email', 'user__full_name', 'account_number']
    readonly_fields = [
        'user', 'balance', 'total_earned', 'total_withdrawn', 'recipient_code', 'created_at', 'updated_at'
    ]
    fieldsets = (
        ('Balance', {
            'fields': ('user', 'balance', 'total_earned', 'total_withdrawn')
        }),
        ('Payout Account', {
            'fields': ('account_number', 'account_name', 'bank_name', 'bank_code', 'recipient_code')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_payout_account(self, obj):
        return obj.has_payout_account
    has_payout_account.boolean = True
    has_payout_account.short_description = 'Payout Account'
    inlines = [WalletTransactionInline]


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = [
        'transaction_id_short', 'wallet_user', 'transaction_type',
        'amount', 'status', 'created_at'
    ]
    list_filter = ['transaction_type', 'status', 'created_at']
    search_fields = ['transaction_id', 'wallet__user__email', 'reference']
    readonly_fields = [
        'transaction_id', 'wallet', 'transaction_type', 'amount', 'status', 'reference',
        'description', 'balance_before', 'balance_after', 'metadata', 'created_at', 'completed_at'
    ]

    def transaction_id_short(self, obj):
        return str(obj.transaction_id)[:8]
    transaction_id_short.short_description = 'Transaction ID'

    def wallet_user(self, obj):
        return obj.wallet.user.email
    wallet_user.short_description = 'User'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return request.user.is_superuser
