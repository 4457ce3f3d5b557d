# Overview: Order booking, submission and approval transitions with discount accounting.

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

from flask import current_app

from ..models import Actor, Order, OrderItem, OrderStatus, PaymentMode, Role
from ..permissions import (
    Capability,
    PermissionDenied,
    can_edit_order,
    can_finalize,
    can_reject,
    can_request_edit,
    can_review_edit,
    can_submit_order,
    has_capability,
    is_privileged,
)
from ..time_utils import timestamp_key, to_utc_z, utcnow
from ..validation import ValidationError, require_text, validate_item_payload
from .activity_service import ActivityLog
from .auth_service import AuthContext
from .discount_service import DiscountBreakdown, DiscountService, settle_payment
from .document_service import next_order_number
from .entity_store import EntityNotFound, EntityStore, StoreWriteError
from .lifecycle_service import ensure_editable, target_status


COLLECTION = "orders"

# action -> prefix of the <prefix>By / <prefix>At audit fields on the order
AUDIT_PREFIX = {
    "submit": "submitted",
    "resubmit": "resubmitted",
    "request_edit": "editRequested",
    "approve_edit": "editApproved",
    "reject_edit": "editRejected",
    "finalize": "finalized",
    "bill": "billed",
    "generate_load_form": "loadFormGenerated",
    "assign": "assigned",
    "deliver": "delivered",
    "reject": "rejected",
}


def parse_items(payload: Any) -> list[OrderItem]:
    if not isinstance(payload, list):
        raise ValidationError("items must be a list")
    items = []
    for raw in payload:
        data = validate_item_payload(raw)
        items.append(OrderItem(
            product_id=data["productId"],
            product_name=data["productName"],
            quantity=data["quantity"],
            unit_price=data["unitPrice"],
            discount_percent=data["discountPercent"],
        ))
    return items


def parse_payment_mode(value: Any) -> PaymentMode:
    try:
        return PaymentMode(value)
    except ValueError:
        raise ValidationError(
            f"paymentMode must be one of: {', '.join(m.value for m in PaymentMode)}"
        )


def _apply_breakdown(order: Order, breakdown: DiscountBreakdown) -> None:
    order.items = breakdown.items
    order.subtotal = breakdown.subtotal
    order.total_discount = breakdown.total_discount
    order.allowed_discount = breakdown.allowed_discount
    order.unauthorized_discount = breakdown.unauthorized_discount
    order.grand_total = breakdown.grand_total


class OrderService:
    """
    Order state machine entry points.

    Each call reads the latest cached order, runs permission and lifecycle
    guards, and only then writes. A guard failure leaves every entity as it was.
    """

    def __init__(
        self,
        store: EntityStore,
        auth: AuthContext,
        discounts: DiscountService,
        activity: ActivityLog,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.auth = auth
        self.discounts = discounts
        self.activity = activity
        self.clock = clock

    # =========================================================================
    # READS
    # =========================================================================

    def get_order(self, order_id: str) -> Order:
        return Order.from_dict(self.store.require(COLLECTION, order_id))

    def list_orders(
        self,
        *,
        status: Optional[str] = None,
        shop_id: Optional[str] = None,
        booker_id: Optional[str] = None,
    ) -> list[Order]:
        filters = [(f, v) for f, v in (("status", status), ("shopId", shop_id), ("bookerId", booker_id)) if v]
        if filters:
            field, value = filters[0]
            docs = self.store.query_where(COLLECTION, field, "==", value)
        else:
            docs = self.store.all(COLLECTION)
        docs = [d for d in docs if all(d.get(f) == v for f, v in filters)]
        docs.sort(key=lambda d: timestamp_key(d.get("createdAt")), reverse=True)
        return [Order.from_dict(d) for d in docs]

    # =========================================================================
    # TRANSITION RECORDING
    # =========================================================================

    def record_transition(
        self,
        order: Order,
        action: str,
        target: OrderStatus,
        actor: Actor,
        *,
        note: Optional[str] = None,
        extra: Optional[dict] = None,
    ) -> Order:
        """
        Persist a transition whose guard has already passed.

        Stamps <prefix>By/<prefix>At, appends to the order history and the
        activity log.
        """
        previous = order.status
        stamp = to_utc_z(self.clock())
        order.status = target
        order.history.append({
            "action": action,
            "from": previous.value,
            "to": target.value,
            "by": actor.id,
            "at": stamp,
            "note": note,
        })

        fields = order.to_dict()
        prefix = AUDIT_PREFIX[action]
        fields[f"{prefix}By"] = actor.id
        fields[f"{prefix}At"] = stamp
        if extra:
            fields.update(extra)
        doc = self.store.update(COLLECTION, order.id, fields)

        self.activity.record(
            actor_id=actor.id,
            action=f"ORDER_{action.upper()}",
            entity_type="order",
            entity_id=order.id,
            note=note,
            payload={"from": previous.value, "to": target.value, "orderNumber": order.order_number},
        )
        current_app.logger.info(
            "Order %s %s: %s -> %s by %s",
            order.order_number, action, previous.value, target.value, actor.id,
        )
        return Order.from_dict(doc)

    def transition(self, order: Order, action: str, actor: Actor, **kwargs) -> Order:
        target = target_status(order, action)
        return self.record_transition(order, action, target, actor, **kwargs)

    # =========================================================================
    # BOOKING
    # =========================================================================

    def create_order(
        self,
        shop_id: str,
        *,
        items: Any = None,
        notes: str = "",
        payment_mode: Any = PaymentMode.CASH.value,
        cash_amount: Any = None,
        booker_id: Optional[str] = None,
    ) -> Order:
        actor = self.auth.current_actor()
        if not has_capability(actor, Capability.CREATE_ORDER):
            raise PermissionDenied(f"role {actor.role.value} cannot create orders")

        shop_id = require_text(shop_id, "shopId")
        if actor.role == Role.BOOKER or not booker_id:
            booker_id = actor.id
        account = self.discounts.booker_account(booker_id)

        now = self.clock()
        order = Order(
            id="",
            order_number=next_order_number(now),
            shop_id=shop_id,
            booker_id=account.id,
            booker_name=account.name,
            items=parse_items(items) if items is not None else [],
            notes=str(notes or "").strip(),
            payment_mode=parse_payment_mode(payment_mode),
        )
        _apply_breakdown(order, self.discounts.breakdown_for(order, account))
        order.cash_amount, order.credit_amount = settle_payment(
            order.payment_mode, order.grand_total, cash_amount
        )
        order.history.append({
            "action": "create",
            "from": None,
            "to": OrderStatus.DRAFT.value,
            "by": actor.id,
            "at": to_utc_z(now),
            "note": None,
        })

        doc = order.to_dict()
        del doc["id"]
        doc["createdBy"] = actor.id
        created = Order.from_dict(self.store.create(COLLECTION, doc))

        self.activity.record(
            actor_id=actor.id,
            action="ORDER_CREATED",
            entity_type="order",
            entity_id=created.id,
            payload={"orderNumber": created.order_number, "shopId": shop_id},
        )
        current_app.logger.info("Order %s created for shop %s by %s", created.order_number, shop_id, actor.id)
        return created

    def update_order(
        self,
        order_id: str,
        *,
        items: Any = None,
        notes: Optional[str] = None,
        payment_mode: Any = None,
        cash_amount: Any = None,
    ) -> Order:
        """
        Edit items/notes/payment mode in place.

        A privileged edit of a submitted order without an approved edit request
        counts as edit+approve: discount accounting is re-run immediately.
        Otherwise it waits for (re)submission.
        """
        actor = self.auth.current_actor()
        order = self.get_order(order_id)
        can_edit_order(actor, order).enforce()
        ensure_editable(order, privileged=is_privileged(actor))

        if items is not None:
            order.items = parse_items(items)
        if notes is not None:
            order.notes = str(notes).strip()
        if payment_mode is not None:
            order.payment_mode = parse_payment_mode(payment_mode)
        if cash_amount is None:
            cash_amount = order.cash_amount

        account = self.discounts.booker_account(order.booker_id)
        _apply_breakdown(order, self.discounts.breakdown_for(order, account))
        order.cash_amount, order.credit_amount = settle_payment(
            order.payment_mode, order.grand_total, cash_amount
        )

        direct_edit = order.status == OrderStatus.SUBMITTED and not order.edit_approved
        if direct_edit:
            if not order.items:
                raise ValidationError("a submitted order must keep at least one item")
            snapshot = account.accumulator_fields()
            recorded = self.discounts.apply_submission(account, order, self.clock())
            order.recorded_unauthorized_discount = recorded["recorded_unauthorized_discount"]
            order.recorded_discount_period = recorded["recorded_discount_period"]
            order.settled_unauthorized_discount = recorded["settled_unauthorized_discount"]
            self.discounts.save_accumulator(account)

        fields = order.to_dict()
        fields["editedBy"] = actor.id
        fields["editedAt"] = to_utc_z(self.clock())
        try:
            doc = self.store.update(COLLECTION, order.id, fields)
        except StoreWriteError:
            if direct_edit:
                self.store.update("users", account.id, snapshot)
            raise

        self.activity.record(
            actor_id=actor.id,
            action="ORDER_EDITED",
            entity_type="order",
            entity_id=order.id,
            payload={"orderNumber": order.order_number, "status": order.status.value},
        )
        return Order.from_dict(doc)

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def submit_order(self, order_id: str, *, payment_mode: Any = None, cash_amount: Any = None) -> Order:
        """
        draft -> submitted, or resubmit after an approved edit.

        Runs the discount computation, settles the booking-time cash/credit
        split and updates the booker's accumulator. The accumulator is written
        first; if the order write then fails it is restored, so the caller
        still sees the order in its previous state.
        """
        actor = self.auth.current_actor()
        order = self.get_order(order_id)
        can_submit_order(actor, order).enforce()

        action = "resubmit" if order.status == OrderStatus.SUBMITTED else "submit"
        target = target_status(order, action)
        if not order.items:
            raise ValidationError("cannot submit an order with no items")

        mode = parse_payment_mode(payment_mode) if payment_mode is not None else order.payment_mode
        if cash_amount is None:
            cash_amount = order.cash_amount

        account = self.discounts.booker_account(order.booker_id)
        snapshot = account.accumulator_fields()
        breakdown = self.discounts.breakdown_for(order, account)
        cash, credit = settle_payment(mode, breakdown.grand_total, cash_amount)

        _apply_breakdown(order, breakdown)
        order.payment_mode = mode
        order.cash_amount, order.credit_amount = cash, credit

        recorded = self.discounts.apply_submission(account, order, self.clock())
        order.recorded_unauthorized_discount = recorded["recorded_unauthorized_discount"]
        order.recorded_discount_period = recorded["recorded_discount_period"]
        order.settled_unauthorized_discount = recorded["settled_unauthorized_discount"]
        order.edit_approved = False

        self.discounts.save_accumulator(account)
        try:
            return self.record_transition(order, action, target, actor)
        except StoreWriteError:
            self.store.update("users", account.id, snapshot)
            raise

    # =========================================================================
    # EDIT REQUESTS
    # =========================================================================

    def request_edit(self, order_id: str, *, note: Optional[str] = None) -> Order:
        actor = self.auth.current_actor()
        order = self.get_order(order_id)
        can_request_edit(actor, order).enforce()
        return self.transition(order, "request_edit", actor, note=note)

    def approve_edit(self, order_id: str) -> Order:
        # Accounting is not recomputed here; it happens on resubmission.
        actor = self.auth.current_actor()
        order = self.get_order(order_id)
        can_review_edit(actor, order).enforce()
        target = target_status(order, "approve_edit")
        order.edit_approved = True
        return self.record_transition(order, "approve_edit", target, actor)

    def reject_edit(self, order_id: str, reason: str) -> Order:
        actor = self.auth.current_actor()
        order = self.get_order(order_id)
        can_review_edit(actor, order).enforce()
        target = target_status(order, "reject_edit")
        reason = require_text(reason, "reason")
        order.rejection_reason = reason
        return self.record_transition(order, "reject_edit", target, actor, note=reason)

    # =========================================================================
    # APPROVAL / REJECTION
    # =========================================================================

    def finalize_order(self, order_id: str) -> Order:
        actor = self.auth.current_actor()
        order = self.get_order(order_id)
        can_finalize(actor, order).enforce()
        return self.transition(order, "finalize", actor)

    def reject_order(self, order_id: str, reason: str) -> Order:
        actor = self.auth.current_actor()
        order = self.get_order(order_id)
        can_reject(actor, order).enforce()
        target = target_status(order, "reject")
        reason = require_text(reason, "reason")
        order.rejection_reason = reason
        return self.record_transition(order, "reject", target, actor, note=reason)

    # =========================================================================
    # DELIVERY
    # =========================================================================

    def assign_delivery(self, order_id: str, salesman_id: str) -> Order:
        """load_form_ready -> assigned; the salesman becomes the bill's cash handler."""
        actor = self.auth.current_actor()
        if not has_capability(actor, Capability.ASSIGN_DELIVERY):
            raise PermissionDenied(f"role {actor.role.value} cannot assign deliveries")
        order = self.get_order(order_id)
        target = target_status(order, "assign")

        salesman_id = require_text(salesman_id, "salesmanId")
        salesman = self.store.get("users", salesman_id)
        if salesman is None:
            raise EntityNotFound("users", salesman_id)
        if salesman.get("role") != Role.SALESMAN.value:
            raise ValidationError(f"user {salesman_id} is not a salesman")

        order.salesman_id = salesman_id
        updated = self.record_transition(order, "assign", target, actor, note=f"Assigned to {salesman_id}")

        for bill in self.store.query_where("bills", "orderId", "==", order.id):
            self.store.update("bills", bill["id"], {"salesmanId": salesman_id})
        if self.store.get("outstanding_payments", order.id) is not None:
            self.store.update("outstanding_payments", order.id, {"salesmanId": salesman_id})
        return updated

    def mark_delivered(self, order_id: str) -> Order:
        actor = self.auth.current_actor()
        if not has_capability(actor, Capability.DELIVER_ORDER):
            raise PermissionDenied(f"role {actor.role.value} cannot complete deliveries")
        order = self.get_order(order_id)
        if actor.role == Role.SALESMAN and order.salesman_id != actor.id:
            raise PermissionDenied("order is assigned to another salesman")
        return self.transition(order, "deliver", actor)
