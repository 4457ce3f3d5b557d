from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from ..validation import ZERO, money_str, to_money


class OrderStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    EDIT_REQUESTED = "edit_requested"
    FINALIZED = "finalized"
    BILLED = "billed"
    LOAD_FORM_READY = "load_form_ready"
    ASSIGNED = "assigned"
    DELIVERED = "delivered"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.REJECTED})


class PaymentMode(str, Enum):
    CASH = "cash"
    CREDIT = "credit"
    PARTIAL = "partial"


@dataclass
class OrderItem:
    """One order line. Derived amounts are filled in by the discount module."""
    product_id: str
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = ZERO
    product_name: str = ""
    line_total: Decimal = ZERO
    discount_amount: Decimal = ZERO
    final_amount: Decimal = ZERO
    max_allowed_discount: Decimal = ZERO
    is_unauthorized_discount: bool = False
    unauthorized_amount: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "unitPrice": money_str(self.unit_price),
            "discountPercent": money_str(self.discount_percent),
            "lineTotal": money_str(self.line_total),
            "discountAmount": money_str(self.discount_amount),
            "finalAmount": money_str(self.final_amount),
            "maxAllowedDiscount": money_str(self.max_allowed_discount),
            "isUnauthorizedDiscount": self.is_unauthorized_discount,
            "unauthorizedAmount": money_str(self.unauthorized_amount),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItem":
        return cls(
            product_id=data["productId"],
            product_name=data.get("productName") or "",
            quantity=int(data["quantity"]),
            unit_price=to_money(data.get("unitPrice")),
            discount_percent=to_money(data.get("discountPercent")),
            line_total=to_money(data.get("lineTotal")),
            discount_amount=to_money(data.get("discountAmount")),
            final_amount=to_money(data.get("finalAmount")),
            max_allowed_discount=to_money(data.get("maxAllowedDiscount")),
            is_unauthorized_discount=bool(data.get("isUnauthorizedDiscount", False)),
            unauthorized_amount=to_money(data.get("unauthorizedAmount")),
        )


@dataclass
class Order:
    """
    Order document.

    Invariants once submitted:
    - grand_total == subtotal - total_discount
    - cash_amount + credit_amount == grand_total
    - unauthorized_discount <= total_discount

    `history` holds one entry per transition (action, from, to, by, at, note).
    """
    id: str
    order_number: str
    shop_id: str
    booker_id: str
    status: OrderStatus = OrderStatus.DRAFT
    booker_name: str = ""
    items: list[OrderItem] = field(default_factory=list)
    subtotal: Decimal = ZERO
    total_discount: Decimal = ZERO
    allowed_discount: Decimal = ZERO
    unauthorized_discount: Decimal = ZERO
    grand_total: Decimal = ZERO
    payment_mode: PaymentMode = PaymentMode.CASH
    cash_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    notes: str = ""
    edit_approved: bool = False
    # Contribution last written to the booker's accumulator, for resubmission netting
    recorded_unauthorized_discount: Decimal = ZERO
    recorded_discount_period: str | None = None
    # Portion of this order already deducted from salary by a period reset
    settled_unauthorized_discount: Decimal = ZERO
    salesman_id: str | None = None
    rejection_reason: str | None = None
    history: list[dict] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "shopId": self.shop_id,
            "bookerId": self.booker_id,
            "bookerName": self.booker_name,
            "status": self.status.value,
            "items": [item.to_dict() for item in self.items],
            "subtotal": money_str(self.subtotal),
            "totalDiscount": money_str(self.total_discount),
            "allowedDiscount": money_str(self.allowed_discount),
            "unauthorizedDiscount": money_str(self.unauthorized_discount),
            "grandTotal": money_str(self.grand_total),
            "paymentMode": self.payment_mode.value,
            "cashAmount": money_str(self.cash_amount),
            "creditAmount": money_str(self.credit_amount),
            "notes": self.notes,
            "editApproved": self.edit_approved,
            "recordedUnauthorizedDiscount": money_str(self.recorded_unauthorized_discount),
            "recordedDiscountPeriod": self.recorded_discount_period,
            "settledUnauthorizedDiscount": money_str(self.settled_unauthorized_discount),
            "salesmanId": self.salesman_id,
            "rejectionReason": self.rejection_reason,
            "history": list(self.history),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            order_number=data.get("orderNumber") or "",
            shop_id=data["shopId"],
            booker_id=data["bookerId"],
            booker_name=data.get("bookerName") or "",
            status=OrderStatus(data.get("status", OrderStatus.DRAFT.value)),
            items=[OrderItem.from_dict(i) for i in data.get("items") or []],
            subtotal=to_money(data.get("subtotal")),
            total_discount=to_money(data.get("totalDiscount")),
            allowed_discount=to_money(data.get("allowedDiscount")),
            unauthorized_discount=to_money(data.get("unauthorizedDiscount")),
            grand_total=to_money(data.get("grandTotal")),
            payment_mode=PaymentMode(data.get("paymentMode") or PaymentMode.CASH.value),
            cash_amount=to_money(data.get("cashAmount")),
            credit_amount=to_money(data.get("creditAmount")),
            notes=data.get("notes") or "",
            edit_approved=bool(data.get("editApproved", False)),
            recorded_unauthorized_discount=to_money(data.get("recordedUnauthorizedDiscount")),
            recorded_discount_period=data.get("recordedDiscountPeriod"),
            settled_unauthorized_discount=to_money(data.get("settledUnauthorizedDiscount")),
            salesman_id=data.get("salesmanId"),
            rejection_reason=data.get("rejectionReason"),
            history=list(data.get("history") or []),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
