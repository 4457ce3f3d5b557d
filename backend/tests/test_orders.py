"""
Order service: booking, submission, edit requests, review and delivery.
"""

from decimal import Decimal

import pytest

from fieldsales.models import OrderStatus, PaymentMode
from fieldsales.permissions import PermissionDenied
from fieldsales.services.auth_service import NotAuthenticated
from fieldsales.services.entity_store import EntityNotFound
from fieldsales.services.lifecycle_service import EditRequestPending, InvalidTransition
from fieldsales.validation import ValidationError


class TestCreateOrder:
    def test_draft_with_computed_totals(self, services, users, line, make_order):
        order = make_order([line(quantity=2, unit_price="100", discount_percent="10")])

        assert order.status == OrderStatus.DRAFT
        assert order.order_number == "ORD-2024-0001"
        assert order.booker_id == users.booker.id
        assert order.booker_name == "Bilal Booker"
        assert order.subtotal == Decimal("200")
        assert order.total_discount == Decimal("20")
        assert order.unauthorized_discount == Decimal("10")
        assert order.grand_total == Decimal("180")
        assert order.credit_amount == Decimal("180")
        assert order.created_at is not None
        assert order.history[0]["action"] == "create"

    def test_order_numbers_increase(self, make_order):
        first = make_order()
        second = make_order()

        assert first.order_number == "ORD-2024-0001"
        assert second.order_number == "ORD-2024-0002"

    def test_draft_may_start_empty(self, make_order):
        order = make_order([])

        assert order.items == []
        assert order.grand_total == Decimal("0")

    def test_requires_an_actor(self, services):
        with pytest.raises(NotAuthenticated):
            services.orders.create_order("shop-1")

    def test_salesman_cannot_book(self, services, users):
        with services.auth.acting_as(users.salesman):
            with pytest.raises(PermissionDenied):
                services.orders.create_order("shop-1", items=[])

    def test_kpo_books_on_behalf_of_booker(self, services, users, line):
        with services.auth.acting_as(users.kpo):
            order = services.orders.create_order("shop-1", items=[line()], booker_id=users.other_booker.id)

        assert order.booker_id == users.other_booker.id

    @pytest.mark.parametrize(
        "bad_item",
        [
            {"productId": "p1", "quantity": 0, "unitPrice": "10"},
            {"productId": "p1", "quantity": "1.5", "unitPrice": "10"},
            {"productId": "p1", "quantity": 1, "unitPrice": "-1"},
            {"productId": "p1", "quantity": 1, "unitPrice": "10", "discountPercent": "-5"},
            {"quantity": 1, "unitPrice": "10"},
        ],
    )
    def test_invalid_lines_rejected(self, services, users, bad_item):
        with services.auth.acting_as(users.booker):
            with pytest.raises(ValidationError):
                services.orders.create_order("shop-1", items=[bad_item])

    def test_partial_payment_split(self, make_order, line):
        order = make_order([line(unit_price="500")], payment_mode="partial", cash_amount="200")

        assert order.payment_mode == PaymentMode.PARTIAL
        assert order.cash_amount == Decimal("200")
        assert order.credit_amount == Decimal("300")


class TestSubmitOrder:
    def test_submit_transitions_and_stamps(self, services, users, make_submitted_order):
        order = make_submitted_order()

        assert order.status == OrderStatus.SUBMITTED
        doc = services.store.get("orders", order.id)
        assert doc["submittedBy"] == users.booker.id
        assert doc["submittedAt"]
        assert [h["action"] for h in order.history] == ["create", "submit"]

    def test_cannot_submit_without_items(self, services, users, make_order):
        order = make_order([])

        with services.auth.acting_as(users.booker):
            with pytest.raises(ValidationError):
                services.orders.submit_order(order.id)

        assert services.orders.get_order(order.id).status == OrderStatus.DRAFT

    def test_booker_cannot_submit_someone_elses_order(self, services, users, make_order):
        order = make_order()

        with services.auth.acting_as(users.other_booker):
            with pytest.raises(PermissionDenied):
                services.orders.submit_order(order.id)

    def test_submitted_order_cannot_resubmit_without_approved_edit(self, services, users, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.booker):
            with pytest.raises(InvalidTransition):
                services.orders.submit_order(order.id)

    def test_submit_can_change_payment_mode(self, services, users, make_order, line):
        order = make_order([line(unit_price="300")])

        with services.auth.acting_as(users.booker):
            submitted = services.orders.submit_order(order.id, payment_mode="partial", cash_amount="100")

        assert submitted.cash_amount == Decimal("100")
        assert submitted.credit_amount == Decimal("200")
        assert submitted.cash_amount + submitted.credit_amount == submitted.grand_total

    def test_unknown_order(self, services, users):
        with services.auth.acting_as(users.booker):
            with pytest.raises(EntityNotFound):
                services.orders.submit_order("nope")


class TestEditRequests:
    def test_request_then_approve(self, services, users, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.booker):
            requested = services.orders.request_edit(order.id, note="wrong quantity")
        with services.auth.acting_as(users.kpo):
            approved = services.orders.approve_edit(order.id)

        assert requested.status == OrderStatus.EDIT_REQUESTED
        assert approved.status == OrderStatus.SUBMITTED
        assert approved.edit_approved is True

    def test_duplicate_request_rejected(self, services, users, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.booker):
            services.orders.request_edit(order.id)
            with pytest.raises(EditRequestPending):
                services.orders.request_edit(order.id)

    def test_request_on_draft_is_invalid(self, services, users, make_order):
        order = make_order()

        with services.auth.acting_as(users.booker):
            with pytest.raises(InvalidTransition):
                services.orders.request_edit(order.id)

        assert services.orders.get_order(order.id).status == OrderStatus.DRAFT

    def test_only_owner_requests_edit(self, services, users, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.other_booker):
            with pytest.raises(PermissionDenied):
                services.orders.request_edit(order.id)

    def test_booker_cannot_approve(self, services, users, make_submitted_order):
        order = make_submitted_order()
        with services.auth.acting_as(users.booker):
            services.orders.request_edit(order.id)

            with pytest.raises(PermissionDenied):
                services.orders.approve_edit(order.id)

    def test_reject_edit_needs_reason_and_rejects_order(self, services, users, make_submitted_order):
        order = make_submitted_order()
        with services.auth.acting_as(users.booker):
            services.orders.request_edit(order.id)

        with services.auth.acting_as(users.kpo):
            with pytest.raises(ValidationError):
                services.orders.reject_edit(order.id, "  ")
            rejected = services.orders.reject_edit(order.id, "prices are final")

        assert rejected.status == OrderStatus.REJECTED
        assert rejected.rejection_reason == "prices are final"

    def test_booker_cannot_edit_submitted_order_without_approval(self, services, users, line, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.booker):
            with pytest.raises(InvalidTransition):
                services.orders.update_order(order.id, items=[line(quantity=5)])

    def test_approved_edit_waits_for_resubmission(self, services, users, line, make_submitted_order):
        order = make_submitted_order([line(unit_price="1000", discount_percent="10")])
        with services.auth.acting_as(users.booker):
            services.orders.request_edit(order.id)
        with services.auth.acting_as(users.kpo):
            services.orders.approve_edit(order.id)

        with services.auth.acting_as(users.booker):
            edited = services.orders.update_order(order.id, items=[line(unit_price="1000", discount_percent="30")])

        assert edited.unauthorized_discount == Decimal("250")
        account = services.discounts.booker_account(users.booker.id)
        assert account.total_unauthorized_discount == Decimal("50")

    def test_privileged_direct_edit_reruns_accounting(self, services, users, line, make_submitted_order):
        order = make_submitted_order([line(unit_price="1000", discount_percent="10")])

        with services.auth.acting_as(users.kpo):
            edited = services.orders.update_order(order.id, items=[line(unit_price="1000", discount_percent="30")])

        assert edited.status == OrderStatus.SUBMITTED
        assert edited.recorded_unauthorized_discount == Decimal("250")
        account = services.discounts.booker_account(users.booker.id)
        assert account.monthly_unauthorized_discounts == {"2024-11": Decimal("250")}


class TestReview:
    def test_finalize(self, services, users, make_finalized_order):
        order = make_finalized_order()

        assert order.status == OrderStatus.FINALIZED
        assert services.store.get("orders", order.id)["finalizedBy"] == users.kpo.id

    def test_booker_cannot_finalize(self, services, users, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.booker):
            with pytest.raises(PermissionDenied):
                services.orders.finalize_order(order.id)

    def test_reject_requires_reason(self, services, users, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.kpo):
            with pytest.raises(ValidationError):
                services.orders.reject_order(order.id, "")

        assert services.orders.get_order(order.id).status == OrderStatus.SUBMITTED

    def test_rejected_order_cannot_be_finalized(self, services, users, make_submitted_order):
        order = make_submitted_order()

        with services.auth.acting_as(users.kpo):
            services.orders.reject_order(order.id, "shop closed")
            with pytest.raises(InvalidTransition) as exc_info:
                services.orders.finalize_order(order.id)

        assert exc_info.value.current == OrderStatus.REJECTED

    def test_transitions_are_logged(self, services, users, make_finalized_order):
        order = make_finalized_order()

        actions = [e["action"] for e in services.activity.for_entity("order", order.id)]

        assert actions == ["ORDER_CREATED", "ORDER_SUBMIT", "ORDER_FINALIZE"]


class TestDelivery:
    @pytest.fixture()
    def ready_order(self, services, users, make_finalized_order):
        order = make_finalized_order()
        with services.auth.acting_as(users.kpo):
            services.billing.bill_order(order.id)
            services.billing.generate_load_form(order.id)
        return services.orders.get_order(order.id)

    def test_assign_and_deliver(self, services, users, ready_order):
        with services.auth.acting_as(users.kpo):
            assigned = services.orders.assign_delivery(ready_order.id, users.salesman.id)
        with services.auth.acting_as(users.salesman):
            delivered = services.orders.mark_delivered(ready_order.id)

        assert assigned.status == OrderStatus.ASSIGNED
        assert assigned.salesman_id == users.salesman.id
        assert delivered.status == OrderStatus.DELIVERED
        assert delivered.is_terminal

    def test_assignment_reaches_bill_and_projection(self, services, users, ready_order):
        with services.auth.acting_as(users.kpo):
            services.orders.assign_delivery(ready_order.id, users.salesman.id)

        bill = services.billing.bill_for_order(ready_order.id)
        assert bill.salesman_id == users.salesman.id
        assert services.store.get("outstanding_payments", ready_order.id)["salesmanId"] == users.salesman.id

    def test_assignee_must_be_salesman(self, services, users, ready_order):
        with services.auth.acting_as(users.kpo):
            with pytest.raises(ValidationError):
                services.orders.assign_delivery(ready_order.id, users.booker.id)

    def test_other_salesman_cannot_deliver(self, services, users, ready_order):
        with services.auth.acting_as(users.kpo):
            services.orders.assign_delivery(ready_order.id, users.salesman.id)

        with services.auth.acting_as(users.other_salesman):
            with pytest.raises(PermissionDenied):
                services.orders.mark_delivered(ready_order.id)

    def test_delivered_order_cannot_be_rejected(self, services, users, ready_order):
        with services.auth.acting_as(users.kpo):
            services.orders.assign_delivery(ready_order.id, users.salesman.id)
        with services.auth.acting_as(users.salesman):
            services.orders.mark_delivered(ready_order.id)

        with services.auth.acting_as(users.kpo):
            with pytest.raises(InvalidTransition):
                services.orders.reject_order(ready_order.id, "too late")


class TestListOrders:
    def test_filters(self, services, users, make_order, make_submitted_order):
        make_order(shop_id="shop-1")
        submitted = make_submitted_order(shop_id="shop-2")

        assert [o.id for o in services.orders.list_orders(status="submitted")] == [submitted.id]
        assert [o.id for o in services.orders.list_orders(shop_id="shop-2")] == [submitted.id]
        assert len(services.orders.list_orders(booker_id=users.booker.id)) == 2
        assert services.orders.list_orders(status="draft", shop_id="shop-2") == []
