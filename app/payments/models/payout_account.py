"""
ProviderPayoutAccount model.

Links a provider's profile to their Stripe Connect account. Onboarding itself
happens outside this service; escrow release only reads onboarding_status.

Usage:
    from payments.models import ProviderPayoutAccount

    account = ProviderPayoutAccount.objects.filter(profile__user_id=provider_id).first()
    if account and account.is_ready_for_payouts:
        ...
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel, UUIDPrimaryKeyMixin
from payments.state_machines import OnboardingStatus


class ProviderPayoutAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    A provider's Stripe Connected Account for receiving payouts.

    Fields:
        profile: OneToOne link to the provider's Profile
        stripe_account_id: Unique Stripe Account ID (acct_xxx)
        onboarding_status: onboarding, enabled or restricted

    Properties:
        is_ready_for_payouts: True if transfers to this account are allowed
    """

    profile = models.OneToOneField(
        "authentication.Profile",
        on_delete=models.PROTECT,
        related_name="payout_account",
        help_text="Provider profile this account belongs to",
    )

    stripe_account_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Account ID (acct_xxx)",
    )

    onboarding_status = models.CharField(
        max_length=20,
        choices=OnboardingStatus.choices,
        default=OnboardingStatus.ONBOARDING,
        db_index=True,
        help_text="Stripe Connect onboarding status",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Provider Payout Account"
        verbose_name_plural = "Provider Payout Accounts"

    def __str__(self) -> str:
        return f"ProviderPayoutAccount({self.stripe_account_id}, {self.onboarding_status})"

    @property
    def is_ready_for_payouts(self) -> bool:
        return self.onboarding_status == OnboardingStatus.ENABLED

    @classmethod
    def for_provider(cls, provider_id) -> ProviderPayoutAccount | None:
        return cls.objects.filter(profile__user_id=provider_id).first()
