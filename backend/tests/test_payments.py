"""
Payment allocation: targeted and shop-wide collection, projection updates,
ledger entries and write ordering.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from fieldsales.models import PaymentStatus, TransactionType
from fieldsales.permissions import PermissionDenied
from fieldsales.services.entity_store import StoreWriteError
from fieldsales.services.payment_service import NoOutstandingBills
from fieldsales.validation import ValidationError


def _payments(services, shop_id="shop-1"):
    return [e for e in services.ledger.transactions(shop_id) if e.type == TransactionType.PAYMENT]


class TestShopWide:
    def test_oldest_bill_paid_first(self, services, users, make_bill):
        b1 = make_bill("500")
        b2 = make_bill("300")

        with services.auth.acting_as(users.kpo):
            result = services.payments.collect_payment("600", shop_id="shop-1")

        first, second = services.billing.get_bill(b1.id), services.billing.get_bill(b2.id)
        assert [a.amount for a in result.applied] == [Decimal("500"), Decimal("100")]
        assert first.payment_status == PaymentStatus.PAID
        assert first.remaining_credit == Decimal("0")
        assert second.payment_status == PaymentStatus.PARTIALLY_PAID
        assert second.remaining_credit == Decimal("200")
        assert result.unapplied_amount == Decimal("0")
        assert result.warnings == []

    def test_order_follows_billed_at_not_creation(self, services, users, clock, make_bill):
        later = make_bill("500")
        clock.set(datetime(2024, 11, 10, 9, 0, 0))
        earlier = make_bill("300")

        with services.auth.acting_as(users.kpo):
            result = services.payments.collect_payment("300", shop_id="shop-1")

        assert [b.id for b in result.applied_bills] == [earlier.id]
        assert services.billing.get_bill(later.id).paid_amount == Decimal("0")

    def test_whole_second_stamp_sorts_before_fraction_of_same_second(self, services, users, store, make_bill):
        later = make_bill("500")
        earlier = make_bill("300")
        store.update("bills", later.id, {"billedAt": "2024-11-15T10:00:00.500000Z"})
        store.update("bills", earlier.id, {"billedAt": "2024-11-15T10:00:00Z"})

        with services.auth.acting_as(users.kpo):
            result = services.payments.collect_payment("100", shop_id="shop-1")

        assert [b.id for b in result.applied_bills] == [earlier.id]
        assert services.billing.get_bill(later.id).paid_amount == Decimal("0")

    def test_leftover_reported_as_unapplied(self, services, users, make_bill):
        bill = make_bill("200")

        with services.auth.acting_as(users.kpo):
            result = services.payments.collect_payment("500", shop_id="shop-1")

        assert services.billing.get_bill(bill.id).payment_status == PaymentStatus.PAID
        assert result.total_applied == Decimal("200")
        assert result.unapplied_amount == Decimal("300")
        assert len(result.warnings) == 1
        assert [e.amount for e in _payments(services)] == [Decimal("-200")]

    def test_paid_bills_are_skipped(self, services, users, make_bill):
        paid = make_bill("100", cash="100")
        open_bill = make_bill("300")

        with services.auth.acting_as(users.kpo):
            result = services.payments.collect_payment("50", shop_id="shop-1")

        assert [b.id for b in result.applied_bills] == [open_bill.id]
        assert services.billing.get_bill(paid.id).paid_amount == Decimal("100")

    def test_no_outstanding_bills(self, services, users, make_bill):
        make_bill("100", cash="100")

        with services.auth.acting_as(users.kpo):
            with pytest.raises(NoOutstandingBills):
                services.payments.collect_payment("50", shop_id="shop-1")
            with pytest.raises(NoOutstandingBills):
                services.payments.collect_payment("50", shop_id="shop-empty")

        # Only the cash collected at booking
        assert len(_payments(services)) == 1

    def test_projection_follows_each_bill(self, services, users, make_bill):
        b1 = make_bill("500")
        b2 = make_bill("300")

        with services.auth.acting_as(users.kpo):
            services.payments.collect_payment("600", shop_id="shop-1")

        p1 = services.store.get("outstanding_payments", b1.order_id)
        p2 = services.store.get("outstanding_payments", b2.order_id)
        assert (p1["paidAmount"], p1["remainingBalance"], p1["paymentStatus"]) == ("500", "0", "PAID")
        assert (p2["paidAmount"], p2["remainingBalance"], p2["paymentStatus"]) == ("100", "200", "PARTIALLY_PAID")

    def test_ledger_entries_chain_balances(self, services, users, make_bill):
        make_bill("500")
        make_bill("300")

        with services.auth.acting_as(users.kpo):
            services.payments.collect_payment("600", shop_id="shop-1")

        payments = _payments(services)
        assert [e.amount for e in payments] == [Decimal("-500"), Decimal("-100")]
        assert payments[0].balance_before == Decimal("800")
        assert payments[0].balance_after == Decimal("300")
        assert payments[1].balance_after == Decimal("200")
        assert services.ledger.verify_shop_ledger("shop-1") == []


class TestTargeted:
    def test_amount_within_remaining(self, services, users, make_bill):
        bill = make_bill("500")

        with services.auth.acting_as(users.kpo):
            result = services.payments.collect_payment("200", bill_id=bill.id)

        updated = services.billing.get_bill(bill.id)
        assert updated.paid_amount == Decimal("200")
        assert updated.remaining_credit == Decimal("300")
        assert [e.amount for e in _payments(services)] == [Decimal("-200")]
        assert result.advance_amount == Decimal("0")
        assert result.warnings == []

    def test_excess_stays_on_bill_as_advance(self, services, users, make_bill):
        bill = make_bill("500")
        other = make_bill("300")

        with services.auth.acting_as(users.kpo):
            result = services.payments.collect_payment("700", bill_id=bill.id)

        updated = services.billing.get_bill(bill.id)
        assert updated.paid_amount == Decimal("700")
        assert updated.remaining_credit == Decimal("0")
        assert updated.display_paid_amount == Decimal("500")
        assert updated.payment_status == PaymentStatus.PAID
        assert result.advance_amount == Decimal("200")
        assert len(result.warnings) == 1
        # Never redistributed
        assert services.billing.get_bill(other.id).paid_amount == Decimal("0")
        assert [e.amount for e in _payments(services)] == [Decimal("-700")]

    def test_paid_at_set_once(self, services, users, make_bill):
        bill = make_bill("500")

        with services.auth.acting_as(users.kpo):
            services.payments.collect_payment("500", bill_id=bill.id)
            first_paid_at = services.billing.get_bill(bill.id).paid_at
            services.payments.collect_payment("10", bill_id=bill.id)

        assert first_paid_at is not None
        assert services.billing.get_bill(bill.id).paid_at == first_paid_at

    def test_salesman_limited_to_assigned_bills(self, services, users, make_bill):
        bill = make_bill("500")
        services.store.update("bills", bill.id, {"salesmanId": users.other_salesman.id})

        with services.auth.acting_as(users.salesman):
            with pytest.raises(PermissionDenied):
                services.payments.collect_payment("100", bill_id=bill.id)

        with services.auth.acting_as(users.other_salesman):
            services.payments.collect_payment("100", bill_id=bill.id)

        assert services.billing.get_bill(bill.id).paid_amount == Decimal("100")


class TestValidation:
    @pytest.mark.parametrize("amount", ["0", "-5", "abc", None])
    def test_amount_must_be_positive(self, services, users, make_bill, amount):
        make_bill("500")

        with services.auth.acting_as(users.kpo):
            with pytest.raises(ValidationError):
                services.payments.collect_payment(amount, shop_id="shop-1")

    def test_exactly_one_target(self, services, users, make_bill):
        bill = make_bill("500")

        with services.auth.acting_as(users.kpo):
            with pytest.raises(ValidationError):
                services.payments.collect_payment("100")
            with pytest.raises(ValidationError):
                services.payments.collect_payment("100", shop_id="shop-1", bill_id=bill.id)

    def test_booker_cannot_collect(self, services, users, make_bill):
        make_bill("500")

        with services.auth.acting_as(users.booker):
            with pytest.raises(PermissionDenied):
                services.payments.collect_payment("100", shop_id="shop-1")


class TestWriteOrdering:
    def test_failed_bill_write_appends_no_ledger_entry(self, services, users, make_bill, monkeypatch):
        bill = make_bill("500")

        def broken(_bill):
            raise StoreWriteError("disk full")

        monkeypatch.setattr(services.billing, "save_bill", broken)
        with services.auth.acting_as(users.kpo):
            with pytest.raises(StoreWriteError):
                services.payments.collect_payment("200", bill_id=bill.id)

        assert _payments(services) == []
        assert services.billing.get_bill(bill.id).paid_amount == Decimal("0")

    def test_failure_midway_keeps_completed_bills(self, services, users, make_bill, monkeypatch):
        b1 = make_bill("500")
        b2 = make_bill("300")
        real_save = services.billing.save_bill

        def save_first_only(bill):
            if bill.id == b2.id:
                raise StoreWriteError("disk full")
            return real_save(bill)

        monkeypatch.setattr(services.billing, "save_bill", save_first_only)
        with services.auth.acting_as(users.kpo):
            with pytest.raises(StoreWriteError):
                services.payments.collect_payment("600", shop_id="shop-1")

        assert services.billing.get_bill(b1.id).paid_amount == Decimal("500")
        assert services.billing.get_bill(b2.id).paid_amount == Decimal("0")
        assert [e.bill_id for e in _payments(services)] == [b1.id]

    def test_remote_outage_does_not_block_collection(self, services, users, remote, make_bill):
        bill = make_bill("500")
        remote.fail = True

        with services.auth.acting_as(users.kpo):
            services.payments.collect_payment("200", bill_id=bill.id)

        assert services.billing.get_bill(bill.id).paid_amount == Decimal("200")
        assert services.store.sync_summary()["pending"] >= 3

        remote.fail = False
        services.store.sync_pending()
        assert services.store.sync_summary()["pending"] == 0
        assert remote.get("bills", bill.id)["paidAmount"] == "200"
