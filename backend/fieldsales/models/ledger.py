from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ..validation import money_str, to_money


class TransactionType(str, Enum):
    SALE = "SALE"
    PAYMENT = "PAYMENT"
    RETURN = "RETURN"
    ADJUSTMENT = "ADJUSTMENT"


@dataclass(frozen=True)
class LedgerTransaction:
    """
    Immutable credit ledger entry.

    amount is signed: positive increases what the shop owes, negative reduces it.
    balance_after == balance_before + amount, and sequence gives the per-shop
    replay order.
    """
    id: str
    shop_id: str
    type: TransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    sequence: int
    date: str
    order_id: str | None = None
    bill_id: str | None = None
    notes: str = ""
    created_by: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shopId": self.shop_id,
            "type": self.type.value,
            "amount": money_str(self.amount),
            "balanceBefore": money_str(self.balance_before),
            "balanceAfter": money_str(self.balance_after),
            "sequence": self.sequence,
            "date": self.date,
            "orderId": self.order_id,
            "billId": self.bill_id,
            "notes": self.notes,
            "createdBy": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LedgerTransaction":
        return cls(
            id=data["id"],
            shop_id=data["shopId"],
            type=TransactionType(data["type"]),
            amount=to_money(data.get("amount")),
            balance_before=to_money(data.get("balanceBefore")),
            balance_after=to_money(data.get("balanceAfter")),
            sequence=int(data.get("sequence") or 0),
            date=data.get("date") or "",
            order_id=data.get("orderId"),
            bill_id=data.get("billId"),
            notes=data.get("notes") or "",
            created_by=data.get("createdBy"),
        )
