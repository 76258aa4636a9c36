"""
Vendor App Forms
Request shape for the onboarding endpoints
Identifier formats are checked by the verification workflow
"""

from decimal import Decimal

from django import forms

from .models import PaymentRecord
from .workflow.tiers import TIER_CHOICES


# ==========================================
# TIER & VERIFICATION FORMS
# ==========================================

class TierSelectionForm(forms.Form):
    """
    Step 1: Vendor picks standard (NIN) or premium (NIN + CAC)
    """
    tier = forms.ChoiceField(choices=TIER_CHOICES)

    def clean_tier(self):
        return self.cleaned_data['tier'].strip().lower()


class NINVerificationForm(forms.Form):
    """
    Step 2: NIN with the names it should carry
    """
    nin = forms.CharField(
        max_length=20,
        label='National Identity Number (NIN)',
        widget=forms.TextInput(attrs={
            'placeholder': '12345678901',
            'inputmode': 'numeric',
            'autocomplete': 'off'
        })
    )
    first_name = forms.CharField(max_length=100)
    last_name = forms.CharField(max_length=100)


class CACVerificationForm(forms.Form):
    """
    Step 3 (premium only): CAC registration number and company name
    """
    cac_number = forms.CharField(
        max_length=20,
        label='CAC Registration Number',
        widget=forms.TextInput(attrs={'placeholder': 'RC123456'})
    )
    company_name = forms.CharField(max_length=200)


# ==========================================
# PAYMENT FORMS
# ==========================================

class PaymentInitiateForm(forms.Form):
    provider = forms.ChoiceField(choices=PaymentRecord.PROVIDER_CHOICES, required=False)


class PaymentCallbackForm(forms.Form):
    """
    Values the checkout hands back to the browser
    Flutterwave: tx_ref, transaction_id, status. Paystack: reference (trxref)
    """
    reference = forms.CharField(max_length=100, required=False)
    tx_ref = forms.CharField(max_length=100, required=False)
    trxref = forms.CharField(max_length=100, required=False)
    transaction_id = forms.CharField(max_length=100, required=False)
    status = forms.CharField(max_length=30, required=False)

    def clean(self):
        cleaned_data = super().clean()
        reference = (
            cleaned_data.get('reference')
            or cleaned_data.get('tx_ref')
            or cleaned_data.get('trxref')
        )

        if not reference:
            raise forms.ValidationError('Payment reference is required')

        cleaned_data['reference'] = reference.strip()
        return cleaned_data


# ==========================================
# PAYOUT FORMS
# ==========================================

class PayoutAccountForm(forms.Form):
    """
    Bank account referral earnings are paid into
    """
    account_number = forms.CharField(
        max_length=20,
        widget=forms.TextInput(attrs={'placeholder': '0123456789', 'inputmode': 'numeric'})
    )
    bank_code = forms.CharField(max_length=10, help_text='e.g. 058 for GTBank')
    account_name = forms.CharField(max_length=200)


class PayoutRequestForm(forms.Form):
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    reference = forms.CharField(max_length=100, required=False)
