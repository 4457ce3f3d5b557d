from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from ..validation import ZERO, money_str, to_money


class Role(str, Enum):
    BOOKER = "booker"
    KPO = "kpo"
    SALESMAN = "salesman"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """Current actor identity supplied by the authentication collaborator."""
    id: str
    name: str
    role: Role

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role.value}


@dataclass
class BookerAccount:
    """
    User document as seen by the discount module.

    monthly_unauthorized_discounts maps "YYYY-MM" -> amount; the total is the
    sum of the periods not yet reset by a salary deduction.
    """
    id: str
    name: str
    role: Role
    max_discount_percent: Decimal | None = None
    max_discount_amount: Decimal = ZERO
    monthly_unauthorized_discounts: dict[str, Decimal] = field(default_factory=dict)
    monthly_unauthorized_discount_orders: dict[str, list[str]] = field(default_factory=dict)
    total_unauthorized_discount: Decimal = ZERO

    def accumulator_fields(self) -> dict:
        """Partial document carrying only the accumulator, for store.update()."""
        return {
            "monthlyUnauthorizedDiscounts": {
                period: money_str(amount)
                for period, amount in self.monthly_unauthorized_discounts.items()
            },
            "monthlyUnauthorizedDiscountOrders": {
                period: list(ids)
                for period, ids in self.monthly_unauthorized_discount_orders.items()
            },
            "totalUnauthorizedDiscount": money_str(self.total_unauthorized_discount),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BookerAccount":
        raw_percent = data.get("maxDiscountPercent")
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            role=Role(data.get("role") or Role.BOOKER.value),
            max_discount_percent=None if raw_percent in (None, "") else to_money(raw_percent),
            max_discount_amount=to_money(data.get("maxDiscountAmount")),
            monthly_unauthorized_discounts={
                period: to_money(amount)
                for period, amount in (data.get("monthlyUnauthorizedDiscounts") or {}).items()
            },
            monthly_unauthorized_discount_orders={
                period: list(ids)
                for period, ids in (data.get("monthlyUnauthorizedDiscountOrders") or {}).items()
            },
            total_unauthorized_discount=to_money(data.get("totalUnauthorizedDiscount")),
        )
