"""
Tests for the invoice and payout transition tables.
"""

from payments.state_machines import (
    INVOICE_TRANSITIONS,
    PAID_INVOICE_STATUSES,
    PAYOUT_TRANSITIONS,
    InvoiceStatus,
    PayoutStatus,
    sources_for,
)


class TestInvoiceTransitions:
    def test_paid_reachable_from_open_and_failed(self):
        sources = sources_for(INVOICE_TRANSITIONS, InvoiceStatus.PAID)

        assert set(sources) == {"pending", "accepted", "failed"}

    def test_released_only_after_payment(self):
        """Escrow is released only from paid or ready_to_release."""
        sources = sources_for(INVOICE_TRANSITIONS, InvoiceStatus.RELEASED)

        assert set(sources) == {"paid", "ready_to_release"}

    def test_terminal_states_have_no_exits(self):
        for target, sources in INVOICE_TRANSITIONS.items():
            assert InvoiceStatus.RELEASED not in sources
            assert InvoiceStatus.CANCELLED not in sources

    def test_paid_invoice_cannot_be_cancelled(self):
        sources = sources_for(INVOICE_TRANSITIONS, InvoiceStatus.CANCELLED)

        assert "paid" not in sources
        assert "ready_to_release" not in sources

    def test_unknown_target_has_no_sources(self):
        assert sources_for(INVOICE_TRANSITIONS, "refunded") == []

    def test_paid_statuses_for_admin_console(self):
        assert set(PAID_INVOICE_STATUSES) == {"paid", "ready_to_release", "released"}


class TestPayoutTransitions:
    def test_failed_payout_can_be_paid(self):
        assert set(sources_for(PAYOUT_TRANSITIONS, PayoutStatus.PAID)) == {"pending", "failed"}

    def test_paid_is_terminal(self):
        for sources in PAYOUT_TRANSITIONS.values():
            assert PayoutStatus.PAID not in sources

    def test_sources_are_plain_strings(self):
        sources = sources_for(PAYOUT_TRANSITIONS, PayoutStatus.FAILED)

        assert sources == ["pending"]
        assert all(type(s) is str for s in sources)
