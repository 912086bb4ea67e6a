"""
Pricing for the visit fee and invoices.

Every amount is an integer number of centavos (MXN minor units). Display
helpers convert to human-readable strings.

Visit fee:
    The customer pays VISIT_FEE_CENTS plus IVA. The provider's share is a
    fixed PROVIDER_VISIT_PAYOUT_CENTS (no IVA); the rest is the platform's.

Invoices:
    A commission percentage is charged to each side of the subtotal:
        provider_fee = round(subtotal * PROVIDER_FEE_PERCENT / 100)
        customer_fee = round(subtotal * CUSTOMER_FEE_PERCENT / 100)
        subtotal_provider = subtotal - provider_fee          (paid out)
        total_customer_amount = subtotal + customer_fee      (charged)
        chamby_commission_amount = provider_fee + customer_fee
    so total_customer_amount == subtotal_provider + chamby_commission_amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

IVA_RATE = Decimal("0.16")


def _percent_of(amount_cents: int, percent: int | Decimal) -> int:
    # Half-up to whole centavos
    value = Decimal(amount_cents) * Decimal(percent) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Visit Fee
# =============================================================================


@dataclass(frozen=True)
class VisitFeeBreakdown:
    base_cents: int
    iva_cents: int
    customer_total_cents: int
    provider_payout_cents: int
    platform_commission_cents: int


def visit_fee_breakdown() -> VisitFeeBreakdown:
    """
    Visit fee split from settings.

    With the defaults: base 35000, IVA 5600, customer total 40600,
    provider payout 25000, platform commission 10000.
    """
    base = settings.VISIT_FEE_CENTS
    iva = _percent_of(base, IVA_RATE * 100)
    provider_payout = settings.PROVIDER_VISIT_PAYOUT_CENTS
    return VisitFeeBreakdown(
        base_cents=base,
        iva_cents=iva,
        customer_total_cents=base + iva,
        provider_payout_cents=provider_payout,
        platform_commission_cents=base - provider_payout,
    )


# =============================================================================
# Invoices
# =============================================================================


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: int
    provider_fee: int
    customer_fee: int
    chamby_commission_amount: int
    subtotal_provider: int
    total_customer_amount: int


def compute_invoice_totals(subtotal_cents: int) -> InvoiceTotals:
    """
    Split an invoice subtotal into the amounts stored on Invoice.

    Args:
        subtotal_cents: Sum of line item totals, in centavos

    Returns:
        InvoiceTotals; total_customer_amount always equals
        subtotal_provider + chamby_commission_amount
    """
    provider_fee = _percent_of(subtotal_cents, settings.PROVIDER_FEE_PERCENT)
    customer_fee = _percent_of(subtotal_cents, settings.CUSTOMER_FEE_PERCENT)
    return InvoiceTotals(
        subtotal=subtotal_cents,
        provider_fee=provider_fee,
        customer_fee=customer_fee,
        chamby_commission_amount=provider_fee + customer_fee,
        subtotal_provider=subtotal_cents - provider_fee,
        total_customer_amount=subtotal_cents + customer_fee,
    )


# =============================================================================
# Formatting
# =============================================================================


def format_centavos(centavos: int) -> str:
    """Format centavos as "$350.00"."""
    return f"${Decimal(centavos) / 100:.2f}"


def format_mxn(centavos: int) -> str:
    """Format centavos as "$350.00 MXN"."""
    return f"{format_centavos(centavos)} MXN"
