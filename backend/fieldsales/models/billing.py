from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from ..validation import ZERO, money_str, to_money


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class CreditStatus(str, Enum):
    FULL_CREDIT = "FULL_CREDIT"
    PARTIAL = "PARTIAL"
    NONE = "NONE"


class LoadStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    LOADED = "loaded"


def payment_status_for(paid: Decimal, total: Decimal) -> PaymentStatus:
    """Pure function of paid vs total."""
    if paid <= ZERO:
        return PaymentStatus.UNPAID
    if paid < total:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PAID


_CREDIT_STATUS = {
    PaymentStatus.UNPAID: CreditStatus.FULL_CREDIT,
    PaymentStatus.PARTIALLY_PAID: CreditStatus.PARTIAL,
    PaymentStatus.PAID: CreditStatus.NONE,
}


@dataclass
class Bill:
    """
    Billing record derived 1:1 from a finalized order.

    total_amount and paid_amount are authoritative; remaining credit and the
    status fields are always recomputed from them, never stored independently.
    paid_amount only ever grows.
    """
    id: str
    bill_number: str
    order_id: str
    order_number: str
    shop_id: str
    booker_id: str
    total_amount: Decimal
    paid_amount: Decimal = ZERO
    salesman_id: str | None = None
    billed_at: str | None = None
    paid_at: str | None = None
    notes: str = ""
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def remaining_credit(self) -> Decimal:
        return max(ZERO, self.total_amount - self.paid_amount)

    @property
    def payment_status(self) -> PaymentStatus:
        return payment_status_for(self.paid_amount, self.total_amount)

    @property
    def credit_status(self) -> CreditStatus:
        return _CREDIT_STATUS[self.payment_status]

    @property
    def display_paid_amount(self) -> Decimal:
        return min(self.paid_amount, self.total_amount)

    def apply_payment(self, amount: Decimal, at: str) -> None:
        if amount < ZERO:
            raise ValueError("paid amount cannot decrease")
        was_paid = self.payment_status == PaymentStatus.PAID
        self.paid_amount += amount
        if not was_paid and self.payment_status == PaymentStatus.PAID:
            self.paid_at = at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "billNumber": self.bill_number,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "shopId": self.shop_id,
            "bookerId": self.booker_id,
            "salesmanId": self.salesman_id,
            "totalAmount": money_str(self.total_amount),
            "paidAmount": money_str(self.paid_amount),
            "remainingCredit": money_str(self.remaining_credit),
            "paymentStatus": self.payment_status.value,
            "creditStatus": self.credit_status.value,
            "billedAt": self.billed_at,
            "paidAt": self.paid_at,
            "notes": self.notes,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bill":
        return cls(
            id=data["id"],
            bill_number=data.get("billNumber") or "",
            order_id=data["orderId"],
            order_number=data.get("orderNumber") or "",
            shop_id=data["shopId"],
            booker_id=data.get("bookerId") or "",
            salesman_id=data.get("salesmanId"),
            total_amount=to_money(data.get("totalAmount")),
            paid_amount=to_money(data.get("paidAmount")),
            billed_at=data.get("billedAt"),
            paid_at=data.get("paidAt"),
            notes=data.get("notes") or "",
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class OutstandingPayment:
    """Read-only reporting projection of a Bill, keyed by order id."""
    id: str
    order_id: str
    order_number: str
    bill_id: str
    shop_id: str
    booker_id: str
    salesman_id: str | None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    payment_status: PaymentStatus
    credit_status: CreditStatus

    @classmethod
    def from_bill(cls, bill: Bill) -> "OutstandingPayment":
        return cls(
            id=bill.order_id,
            order_id=bill.order_id,
            order_number=bill.order_number,
            bill_id=bill.id,
            shop_id=bill.shop_id,
            booker_id=bill.booker_id,
            salesman_id=bill.salesman_id,
            total_amount=bill.total_amount,
            paid_amount=bill.paid_amount,
            remaining_balance=bill.remaining_credit,
            payment_status=bill.payment_status,
            credit_status=bill.credit_status,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "billId": self.bill_id,
            "shopId": self.shop_id,
            "bookerId": self.booker_id,
            "salesmanId": self.salesman_id,
            "totalAmount": money_str(self.total_amount),
            "paidAmount": money_str(self.paid_amount),
            "remainingBalance": money_str(self.remaining_balance),
            "paymentStatus": self.payment_status.value,
            "creditStatus": self.credit_status.value,
        }


@dataclass
class LoadFormItem:
    product_id: str
    quantity: int
    confirmed_quantity: int
    product_name: str = ""

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "confirmedQuantity": self.confirmed_quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LoadFormItem":
        return cls(
            product_id=data["productId"],
            product_name=data.get("productName") or "",
            quantity=int(data["quantity"]),
            confirmed_quantity=int(data.get("confirmedQuantity", data["quantity"])),
        )


@dataclass
class LoadForm:
    """Warehouse pick list derived from an order's items."""
    id: str
    load_form_number: str
    order_id: str
    order_number: str
    shop_id: str
    items: list[LoadFormItem] = field(default_factory=list)
    status: LoadStatus = LoadStatus.PENDING
    confirmed_by: str | None = None
    confirmed_at: str | None = None
    load_notes: str = ""
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "loadFormNumber": self.load_form_number,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "shopId": self.shop_id,
            "items": [item.to_dict() for item in self.items],
            "totalQuantity": self.total_quantity,
            "status": self.status.value,
            "confirmedBy": self.confirmed_by,
            "confirmedAt": self.confirmed_at,
            "loadNotes": self.load_notes,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LoadForm":
        return cls(
            id=data["id"],
            load_form_number=data.get("loadFormNumber") or "",
            order_id=data["orderId"],
            order_number=data.get("orderNumber") or "",
            shop_id=data["shopId"],
            items=[LoadFormItem.from_dict(i) for i in data.get("items") or []],
            status=LoadStatus(data.get("status") or LoadStatus.PENDING.value),
            confirmed_by=data.get("confirmedBy"),
            confirmed_at=data.get("confirmedAt"),
            load_notes=data.get("loadNotes") or "",
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
