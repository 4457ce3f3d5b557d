# Overview: Bill and load-form derivation from finalized orders, plus the outstanding-payment projection.

"""
Billing

WHY: The Bill is the single authoritative record of what a shop owes for an
order and what has been paid against it. The OutstandingPayment document is a
read-only projection rebuilt from the Bill on every write; the order's own
cashAmount/creditAmount only describe the booking-time intent and are never
touched after billing.

RULES:
1. Exactly one Bill per order; billing an already-billed order returns it.
2. Bill.paidAmount starts at the cash collected at booking.
3. Billing appends a SALE ledger entry (and a PAYMENT entry for booking cash).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from flask import current_app

from ..models import (
    Bill,
    LoadForm,
    LoadFormItem,
    LoadStatus,
    Order,
    OrderStatus,
    OutstandingPayment,
    PaymentStatus,
    Role,
)
from ..permissions import Capability, PermissionDenied, has_capability
from ..time_utils import timestamp_key, to_utc_z, utcnow
from ..validation import ZERO, ValidationError, money_str
from .activity_service import ActivityLog
from .auth_service import AuthContext
from .document_service import next_bill_number, next_load_form_number
from .entity_store import EntityNotFound, EntityStore
from .ledger_service import CreditLedger
from .lifecycle_service import target_status
from .order_service import OrderService


class BillingError(ValueError):
    """Raised for billing / load form errors."""
    pass


class NotFinalized(BillingError):
    def __init__(self, order: Order):
        super().__init__(
            f"cannot bill an order that is not finalized (order {order.order_number} is {order.status.value})"
        )
        self.order_id = order.id
        self.current = order.status


def _require(actor, capability: str, action: str) -> None:
    if not has_capability(actor, capability):
        raise PermissionDenied(f"role {actor.role.value} cannot {action}")


class BillingService:
    def __init__(
        self,
        store: EntityStore,
        auth: AuthContext,
        orders: OrderService,
        ledger: CreditLedger,
        activity: ActivityLog,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.auth = auth
        self.orders = orders
        self.ledger = ledger
        self.activity = activity
        self.clock = clock

    # =========================================================================
    # BILLS
    # =========================================================================

    def get_bill(self, bill_id: str) -> Bill:
        return Bill.from_dict(self.store.require("bills", bill_id))

    def bill_for_order(self, order_id: str) -> Optional[Bill]:
        docs = self.store.query_where("bills", "orderId", "==", order_id)
        return Bill.from_dict(docs[0]) if docs else None

    def list_bills(self, *, shop_id: Optional[str] = None, payment_status: Optional[str] = None) -> list[Bill]:
        if shop_id:
            docs = self.store.query_where("bills", "shopId", "==", shop_id)
        else:
            docs = self.store.all("bills")
        bills = [Bill.from_dict(d) for d in docs]
        if payment_status:
            bills = [b for b in bills if b.payment_status.value == payment_status]
        return sorted(bills, key=lambda b: (timestamp_key(b.billed_at), b.bill_number))

    def save_bill(self, bill: Bill) -> Bill:
        """Authoritative bill write; the projection is refreshed separately."""
        bill.updated_at = to_utc_z(self.clock())
        return Bill.from_dict(self.store.update("bills", bill.id, bill.to_dict()))

    def sync_projection(self, bill: Bill) -> dict:
        projection = OutstandingPayment.from_bill(bill).to_dict()
        if self.store.get("outstanding_payments", projection["id"]) is None:
            return self.store.create("outstanding_payments", projection)
        return self.store.update("outstanding_payments", projection["id"], projection)

    def bill_order(self, order_id: str) -> Bill:
        """
        finalized -> billed. Derives the Bill, its projection and ledger entries.

        Idempotent: if a Bill already exists for the order it is returned and
        nothing is written.
        """
        actor = self.auth.current_actor()
        _require(actor, Capability.BILL_ORDER, "bill orders")
        order = self.orders.get_order(order_id)

        existing = self.bill_for_order(order.id)
        if existing is not None:
            current_app.logger.debug("Order %s already billed as %s", order.order_number, existing.bill_number)
            return existing

        if order.status != OrderStatus.FINALIZED:
            raise NotFinalized(order)
        target = target_status(order, "bill")

        now = self.clock()
        stamp = to_utc_z(now)
        bill = Bill(
            id=uuid.uuid4().hex,
            bill_number=next_bill_number(now),
            order_id=order.id,
            order_number=order.order_number,
            shop_id=order.shop_id,
            booker_id=order.booker_id,
            salesman_id=order.salesman_id,
            total_amount=order.grand_total,
            paid_amount=order.cash_amount,
            billed_at=stamp,
            notes=order.notes,
        )
        if bill.payment_status == PaymentStatus.PAID:
            bill.paid_at = stamp
        bill = Bill.from_dict(self.store.create("bills", bill.to_dict()))
        self.sync_projection(bill)

        refs = {"order_id": order.id, "bill_id": bill.id, "created_by": actor.id}
        if bill.total_amount > ZERO:
            self.ledger.record_sale(order.shop_id, bill.total_amount, notes=f"Bill {bill.bill_number}", **refs)
        if bill.paid_amount > ZERO:
            self.ledger.record_payment(
                order.shop_id, bill.paid_amount, notes=f"Cash collected at booking ({bill.bill_number})", **refs
            )

        self.orders.record_transition(
            order, "bill", target, actor,
            note=bill.bill_number,
            extra={"billId": bill.id, "billNumber": bill.bill_number},
        )
        self.activity.record(
            actor_id=actor.id,
            action="BILL_CREATED",
            entity_type="bill",
            entity_id=bill.id,
            payload={
                "billNumber": bill.bill_number,
                "orderId": order.id,
                "totalAmount": money_str(bill.total_amount),
                "paidAmount": money_str(bill.paid_amount),
            },
        )
        current_app.logger.info(
            "Billed order %s as %s (total %s, paid %s)",
            order.order_number, bill.bill_number, money_str(bill.total_amount), money_str(bill.paid_amount),
        )
        return bill

    # =========================================================================
    # LOAD FORMS
    # =========================================================================

    def load_form_for_order(self, order_id: str) -> Optional[LoadForm]:
        docs = self.store.query_where("load_forms", "orderId", "==", order_id)
        return LoadForm.from_dict(docs[0]) if docs else None

    def generate_load_form(self, order_id: str) -> LoadForm:
        """billed -> load_form_ready. Idempotent per order."""
        actor = self.auth.current_actor()
        _require(actor, Capability.MANAGE_LOAD_FORMS, "generate load forms")
        order = self.orders.get_order(order_id)

        existing = self.load_form_for_order(order.id)
        if existing is not None:
            return existing
        target = target_status(order, "generate_load_form")

        now = self.clock()
        load_form = LoadForm(
            id=uuid.uuid4().hex,
            load_form_number=next_load_form_number(now),
            order_id=order.id,
            order_number=order.order_number,
            shop_id=order.shop_id,
            items=[
                LoadFormItem(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    confirmed_quantity=item.quantity,
                )
                for item in order.items
            ],
            status=LoadStatus.PENDING,
        )
        load_form = LoadForm.from_dict(self.store.create("load_forms", load_form.to_dict()))

        self.orders.record_transition(
            order, "generate_load_form", target, actor,
            note=load_form.load_form_number,
            extra={"loadFormId": load_form.id},
        )
        self.activity.record(
            actor_id=actor.id,
            action="LOAD_FORM_CREATED",
            entity_type="load_form",
            entity_id=load_form.id,
            payload={"loadFormNumber": load_form.load_form_number, "orderId": order.id},
        )
        return load_form

    def confirm_load_form(
        self,
        order_id: str,
        confirmed_quantities: Optional[dict[str, Any]] = None,
        *,
        notes: str = "",
    ) -> LoadForm:
        """Salesman confirms what was actually loaded (0 <= confirmed <= ordered)."""
        actor = self.auth.current_actor()
        _require(actor, Capability.CONFIRM_LOAD_FORM, "confirm load forms")

        load_form = self.load_form_for_order(order_id)
        if load_form is None:
            raise EntityNotFound("load_forms", order_id)
        if load_form.status != LoadStatus.PENDING:
            raise BillingError(f"load form {load_form.load_form_number} is already {load_form.status.value}")
        if actor.role == Role.SALESMAN:
            order = self.orders.get_order(order_id)
            if order.salesman_id and order.salesman_id != actor.id:
                raise PermissionDenied("order is assigned to another salesman")

        quantities = dict(confirmed_quantities or {})
        by_product = {item.product_id: item for item in load_form.items}
        unknown = set(quantities) - set(by_product)
        if unknown:
            raise ValidationError(f"unknown products on load form: {', '.join(sorted(unknown))}")

        for product_id, raw in quantities.items():
            item = by_product[product_id]
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise ValidationError(f"confirmed quantity for {product_id} must be an integer")
            if raw < 0 or raw > item.quantity:
                raise ValidationError(
                    f"confirmed quantity for {product_id} must be between 0 and {item.quantity}"
                )
            item.confirmed_quantity = raw

        load_form.status = LoadStatus.CONFIRMED
        load_form.confirmed_by = actor.id
        load_form.confirmed_at = to_utc_z(self.clock())
        load_form.load_notes = str(notes or "").strip()
        updated = LoadForm.from_dict(self.store.update("load_forms", load_form.id, load_form.to_dict()))

        self.activity.record(
            actor_id=actor.id,
            action="LOAD_FORM_CONFIRMED",
            entity_type="load_form",
            entity_id=load_form.id,
            note=load_form.load_notes or None,
        )
        return updated
