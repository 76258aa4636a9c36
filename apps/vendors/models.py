"""
Vendor App Models
Database schema for vendor onboarding: registration, verification, payments, referrals and wallets
"""

from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models
from decimal import Decimal
import uuid


# ==========================================
# VENDOR REGISTRATION
# ==========================================

class VendorRegistration(models.Model):
    """
    Vendor onboarding record - one per vendor user
    Tracks tier choice, verification flags, payment and activation
    """

    VERIFICATION_NIN = 'nin'
    VERIFICATION_NIN_CAC = 'nin_cac'

    VERIFICATION_TYPE_CHOICES = [
        (VERIFICATION_NIN, 'NIN only (Standard)'),
        (VERIFICATION_NIN_CAC, 'NIN + CAC (Premium)'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_PAYMENT_FAILED = 'payment_failed'
    STATUS_ACTIVE = 'active'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PAYMENT_FAILED, 'Payment Failed'),
        (STATUS_ACTIVE, 'Active'),
    ]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='vendor_registration'
    )
    registration_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    # Contact & Business
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    full_name = models.CharField(max_length=200, blank=True, help_text="Filled from NIN data")
    business_name = models.CharField(max_length=200, blank=True)
    address = models.TextField(blank=True)

    # Bank Details
    bank_name = models.CharField(max_length=100, blank=True)
    account_number = models.CharField(max_length=20, blank=True)
    account_name = models.CharField(max_length=200, blank=True)

    # Tier & Verification
    verification_type = models.CharField(
        max_length=10,
        choices=VERIFICATION_TYPE_CHOICES,
        blank=True
    )
    nin_verified = models.BooleanField(default=False)
    cac_verified = models.BooleanField(default=False)
    payment_verified = models.BooleanField(default=False)

    # Referrals
    referral_code = models.CharField(
        max_length=11,
        unique=True,
        null=True,
        blank=True,
        validators=[RegexValidator(r'^VND[A-Z0-9]{8}$', 'Invalid vendor referral code')],
        help_text="Vendor's own code, generated on activation"
    )
    referred_by = models.CharField(
        max_length=20,
        blank=True,
        help_text="Referral code used at sign-up"
    )

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    # Timestamps
    tier_selected_at = models.DateTimeField(null=True, blank=True)
    nin_verified_at = models.DateTimeField(null=True, blank=True)
    cac_verified_at = models.DateTimeField(null=True, blank=True)
    registration_completed_at = models.DateTimeField(null=True, blank=True)
    welcome_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Vendor Registration"
        verbose_name_plural = "Vendor Registrations"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.business_name or self.full_name or self.email} - {self.status}"

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE

    @property
    def required_steps(self):
        """Verification steps the chosen tier requires"""
        if self.verification_type == self.VERIFICATION_NIN_CAC:
            return [VerificationRecord.KIND_NIN, VerificationRecord.KIND_CAC]
        if self.verification_type == self.VERIFICATION_NIN:
            return [VerificationRecord.KIND_NIN]
        return []

    @property
    def missing_steps(self):
        flags = {
            VerificationRecord.KIND_NIN: self.nin_verified,
            VerificationRecord.KIND_CAC: self.cac_verified,
        }
        return [step for step in self.required_steps if not flags[step]]

    @property
    def verification_complete(self):
        return bool(self.verification_type) and not self.missing_steps

    @property
    def current_step(self):
        """Which onboarding step the vendor should see next"""
        if self.is_active:
            return 'complete'
        if not self.verification_type:
            return 'tier_selection'
        if self.missing_steps:
            return f'{self.missing_steps[0]}_verification'
        return 'payment'

    def to_state(self):
        """Serializable snapshot returned to UI callers"""
        return {
            'registration_id': str(self.registration_id),
            'status': self.status,
            'verification_type': self.verification_type,
            'nin_verified': self.nin_verified,
            'cac_verified': self.cac_verified,
            'payment_verified': self.payment_verified,
            'referral_code': self.referral_code,
            'referred_by': self.referred_by,
            'current_step': self.current_step,
            'registration_completed_at': (
                self.registration_completed_at.isoformat() if self.registration_completed_at else None
            ),
        }


class VerificationRecord(models.Model):
    """
    Result of one successful NIN or CAC verification
    Written once per registration and kind, never updated
    """

    KIND_NIN = 'nin'
    KIND_CAC = 'cac'

    KIND_CHOICES = [
        (KIND_NIN, 'NIN Verification'),
        (KIND_CAC, 'CAC Verification'),
    ]

    registration = models.ForeignKey(
        VendorRegistration,
        on_delete=models.CASCADE,
        related_name='verification_records'
    )
    kind = models.CharField(max_length=10, choices=KIND_CHOICES)

    # Subject (identifier stored masked, hash kept for duplicate checks)
    subject_name = models.CharField(max_length=200)
    subject_number = models.CharField(max_length=20)
    subject_hash = models.CharField(max_length=64)

    provider_verification_id = models.CharField(max_length=100, blank=True)
    provider_data = models.JSONField(default=dict, blank=True)

    verified_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Verification Record"
        verbose_name_plural = "Verification Records"
        ordering = ['-verified_at']
        constraints = [
            models.UniqueConstraint(fields=['registration', 'kind'], name='unique_verification_per_kind'),
            models.UniqueConstraint(fields=['kind', 'subject_hash'], name='unique_verification_subject'),
        ]

    def __str__(self):
        return f"{self.get_kind_display()} - {self.subject_name} ({self.subject_number})"


# ==========================================
# PAYMENTS
# ==========================================

class PaymentRecord(models.Model):
    """
    Registration fee payment
    The reference is the idempotency key shared with the payment provider
    """

    PROVIDER_FLUTTERWAVE = 'flutterwave'
    PROVIDER_PAYSTACK = 'paystack'

    PROVIDER_CHOICES = [
        (PROVIDER_FLUTTERWAVE, 'Flutterwave'),
        (PROVIDER_PAYSTACK, 'Paystack'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_CANCELLED)

    registration = models.ForeignKey(
        VendorRegistration,
        on_delete=models.CASCADE,
        related_name='payments'
    )
    reference = models.CharField(max_length=100, unique=True)
    provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES, default=PROVIDER_FLUTTERWAVE)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='NGN')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    # Set from provider confirmation only
    transaction_id = models.CharField(max_length=100, blank=True)
    provider_reference = models.CharField(max_length=100, blank=True)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Payment Record"
        verbose_name_plural = "Payment Records"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.reference} - ₦{self.amount} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES


class WebhookEvent(models.Model):
    """
    Authenticated provider webhook delivery, stored before processing
    so failed processing can be retried without the provider resending
    """

    STATUS_RECEIVED = 'received'
    STATUS_PROCESSED = 'processed'
    STATUS_IGNORED = 'ignored'
    STATUS_FAILED = 'failed'

    STATUS_CHOICES = [
        (STATUS_RECEIVED, 'Received'),
        (STATUS_PROCESSED, 'Processed'),
        (STATUS_IGNORED, 'Ignored'),
        (STATUS_FAILED, 'Failed'),
    ]

    provider = models.CharField(max_length=20, choices=PaymentRecord.PROVIDER_CHOICES)
    event_type = models.CharField(max_length=50)
    reference = models.CharField(max_length=100, blank=True, db_index=True)
    transaction_id = models.CharField(max_length=100, blank=True)
    payload = models.JSONField(default=dict)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_RECEIVED)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        ordering = ['-received_at']

    def __str__(self):
        return f"{self.provider}:{self.event_type} {self.reference} - {self.status}"


# ==========================================
# REFERRALS & WALLET
# ==========================================

class ReferralRecord(models.Model):
    """
    Referral bonus owed to a vendor for bringing in another vendor
    At most one per referred user
    """

    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    referrer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='referrals_made'
    )
    referred = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='referrals_received'
    )
    referral_code = models.CharField(max_length=20)
    payment = models.ForeignKey(
        PaymentRecord,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='referrals'
    )
    bonus_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Referral"
        verbose_name_plural = "Referrals"
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['referrer', 'referred'], name='unique_referral_pair'),
            models.UniqueConstraint(fields=['referred'], name='unique_referral_per_referred'),
        ]

    def __str__(self):
        return f"{self.referrer} → {self.referred} - ₦{self.bonus_amount}"


class Wallet(models.Model):
    """
    Account balance credited with referral bonuses and paid out by bank transfer
    """
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='wallet'
    )

    # Payout Bank Account
    account_number = models.CharField(max_length=20, blank=True)
    account_name = models.CharField(max_length=200, blank=True)
    bank_name = models.CharField(max_length=100, blank=True)
    bank_code = models.CharField(max_length=10, blank=True)
    recipient_code = models.CharField(
        max_length=50,
        blank=True,
        help_text="Paystack transfer recipient for this account"
    )

    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Available balance"
    )
    total_earned = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Lifetime credits"
    )
    total_withdrawn = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Completed payouts"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Wallet"
        verbose_name_plural = "Wallets"

    def __str__(self):
        return f"{self.user}'s Wallet - ₦{self.balance}"

    @property
    def has_payout_account(self):
        return bool(self.recipient_code)


class WalletTransaction(models.Model):
    """
    Ledger of wallet movements
    A payout is a debit row that stays 'pending' until the transfer settles
    """

    TYPE_CREDIT = 'credit'
    TYPE_REFERRAL_BONUS = 'referral_bonus'
    TYPE_PAYOUT = 'payout'
    TYPE_PAYOUT_REVERSAL = 'payout_reversal'

    TRANSACTION_TYPE_CHOICES = [
        (TYPE_CREDIT, 'Credit'),
        (TYPE_REFERRAL_BONUS, 'Referral Bonus'),
        (TYPE_PAYOUT, 'Payout'),
        (TYPE_PAYOUT_REVERSAL, 'Payout Reversal'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
    ]

    wallet = models.ForeignKey(Wallet, on_delete=models.CASCADE, related_name='transactions')
    transaction_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPE_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_COMPLETED)

    reference = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)

    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)

    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Wallet Transaction"
        verbose_name_plural = "Wallet Transactions"
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['reference'],
                condition=models.Q(transaction_type='payout'),
                name='unique_payout_reference'
            ),
        ]

    def __str__(self):
        return f"{self.transaction_type} - ₦{self.amount} - {self.status}"
