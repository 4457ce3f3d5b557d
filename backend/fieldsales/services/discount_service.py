# Overview: Authorized vs unauthorized discount computation and the booker accumulator.

"""
Discount Authorization

WHY: Any discount percent is accepted at entry. The part above a booker's
ceiling is not rejected; it is tracked per month for salary deduction.

DESIGN PRINCIPLES:
- Amounts are exact Decimals; nothing is rounded here.
- The accumulator lives on the user document and is only ever changed by
  submission (additive, netted on resubmit) or by an explicit reset.
- An order remembers what it last contributed (recordedUnauthorizedDiscount,
  recordedDiscountPeriod) and what was already deducted from salary
  (settledUnauthorizedDiscount), so a resubmission never double counts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable

from flask import current_app

from ..models import BookerAccount, Order, OrderItem, PaymentMode
from ..time_utils import period_key, utcnow
from ..validation import ZERO, ValidationError, money_str, to_money
from .activity_service import ActivityLog
from .entity_store import EntityStore, EntityNotFound


HUNDRED = Decimal("100")


class DiscountError(ValueError):
    """Raised for discount accounting errors."""
    pass


class PeriodNotFound(DiscountError):
    def __init__(self, booker_id: str, period: str):
        super().__init__(f"no unauthorized discount recorded for period {period} (booker {booker_id})")
        self.booker_id = booker_id
        self.period = period


# =============================================================================
# PURE COMPUTATION
# =============================================================================

@dataclass
class DiscountBreakdown:
    items: list[OrderItem]
    subtotal: Decimal
    total_discount: Decimal
    allowed_discount: Decimal
    unauthorized_discount: Decimal
    grand_total: Decimal


def compute_line(item: OrderItem, max_percent: Decimal) -> OrderItem:
    gross = item.unit_price * item.quantity
    discount_amount = gross * item.discount_percent / HUNDRED
    excess_percent = max(ZERO, item.discount_percent - max_percent)
    unauthorized = gross * excess_percent / HUNDRED
    return OrderItem(
        product_id=item.product_id,
        product_name=item.product_name,
        quantity=item.quantity,
        unit_price=item.unit_price,
        discount_percent=item.discount_percent,
        line_total=gross,
        discount_amount=discount_amount,
        final_amount=gross - discount_amount,
        max_allowed_discount=max_percent,
        is_unauthorized_discount=excess_percent > ZERO,
        unauthorized_amount=unauthorized,
    )


def compute_order_discounts(
    items: Iterable[OrderItem],
    max_percent: Decimal,
    *,
    max_amount: Decimal = ZERO,
) -> DiscountBreakdown:
    """
    Per-line and order-level discount split.

    max_amount, when > 0, is a per-order ceiling on the total discount; any
    discount above it counts as unauthorized even if every line is within
    its percent ceiling.
    """
    lines = [compute_line(item, max_percent) for item in items]
    subtotal = sum((line.line_total for line in lines), ZERO)
    total_discount = sum((line.discount_amount for line in lines), ZERO)
    unauthorized = sum((line.unauthorized_amount for line in lines), ZERO)

    if max_amount > ZERO and total_discount > max_amount:
        unauthorized = max(unauthorized, total_discount - max_amount)
    unauthorized = min(unauthorized, total_discount)

    return DiscountBreakdown(
        items=lines,
        subtotal=subtotal,
        total_discount=total_discount,
        allowed_discount=total_discount - unauthorized,
        unauthorized_discount=unauthorized,
        grand_total=subtotal - total_discount,
    )


def settle_payment(mode: PaymentMode, grand_total: Decimal, cash_amount=None) -> tuple[Decimal, Decimal]:
    """Booking-time split of grand_total into (cash, credit)."""
    if mode == PaymentMode.CASH:
        return grand_total, ZERO
    if mode == PaymentMode.CREDIT:
        return ZERO, grand_total

    cash = to_money(cash_amount, "cashAmount")
    if cash < ZERO:
        raise ValidationError("cashAmount cannot be negative")
    if cash > grand_total:
        raise ValidationError("cashAmount cannot exceed the order total")
    return cash, grand_total - cash


# =============================================================================
# ACCUMULATOR
# =============================================================================

class DiscountService:
    def __init__(
        self,
        store: EntityStore,
        activity: ActivityLog,
        *,
        default_max_percent: Decimal = Decimal("5"),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.activity = activity
        self.default_max_percent = default_max_percent
        self.clock = clock

    def booker_account(self, booker_id: str) -> BookerAccount:
        user = self.store.get("users", booker_id)
        if user is None:
            raise EntityNotFound("users", booker_id)
        return BookerAccount.from_dict(user)

    def max_percent_for(self, account: BookerAccount) -> Decimal:
        if account.max_discount_percent is None:
            return self.default_max_percent
        return account.max_discount_percent

    def breakdown_for(self, order: Order, account: BookerAccount | None = None) -> DiscountBreakdown:
        account = account or self.booker_account(order.booker_id)
        return compute_order_discounts(
            order.items,
            self.max_percent_for(account),
            max_amount=account.max_discount_amount,
        )

    def apply_submission(self, account: BookerAccount, order: Order, at: datetime) -> dict:
        """
        Net the order's previous contribution out of the accumulator and add
        the new one. Mutates `account` in place; returns the order fields that
        record the contribution. Nothing is persisted here.
        """
        monthly = account.monthly_unauthorized_discounts
        orders_by_period = account.monthly_unauthorized_discount_orders
        settled = order.settled_unauthorized_discount
        previous = order.recorded_unauthorized_discount
        previous_period = order.recorded_discount_period

        if previous > ZERO and previous_period:
            if order.id in orders_by_period.get(previous_period, []):
                remaining = max(ZERO, monthly.get(previous_period, ZERO) - previous)
                account.total_unauthorized_discount = max(ZERO, account.total_unauthorized_discount - previous)
                ids = [i for i in orders_by_period.get(previous_period, []) if i != order.id]
                if remaining == ZERO and not ids:
                    monthly.pop(previous_period, None)
                    orders_by_period.pop(previous_period, None)
                else:
                    monthly[previous_period] = remaining
                    orders_by_period[previous_period] = ids
            else:
                # Deducted from salary already, even if the period key was recreated since
                settled += previous

        charge = max(ZERO, order.unauthorized_discount - settled)
        period = period_key(at)
        if charge > ZERO:
            monthly[period] = monthly.get(period, ZERO) + charge
            account.total_unauthorized_discount += charge
            ids = orders_by_period.setdefault(period, [])
            if order.id not in ids:
                ids.append(order.id)

        return {
            "recorded_unauthorized_discount": charge,
            "recorded_discount_period": period if charge > ZERO else None,
            "settled_unauthorized_discount": settled,
        }

    def save_accumulator(self, account: BookerAccount) -> dict:
        return self.store.update("users", account.id, account.accumulator_fields())

    def reset_unauthorized_discount(self, booker_id: str, period: str, *, actor_id: str | None = None) -> BookerAccount:
        """
        Salary deduction applied: remove exactly one period from the accumulator.

        Only the targeted key is touched; the total is floored at zero.
        """
        account = self.booker_account(booker_id)
        if period not in account.monthly_unauthorized_discounts:
            raise PeriodNotFound(booker_id, period)

        amount = account.monthly_unauthorized_discounts.pop(period)
        account.monthly_unauthorized_discount_orders.pop(period, None)
        account.total_unauthorized_discount = max(ZERO, account.total_unauthorized_discount - amount)
        self.save_accumulator(account)

        self.activity.record(
            actor_id=actor_id,
            action="UNAUTHORIZED_DISCOUNT_RESET",
            entity_type="user",
            entity_id=booker_id,
            note=f"Salary deduction of {money_str(amount)} applied for {period}",
            payload={"period": period, "amount": money_str(amount)},
        )
        current_app.logger.info(
            "Reset unauthorized discount for booker %s period %s (amount %s)",
            booker_id, period, money_str(amount),
        )
        return account

    def booker_discount_summary(self, booker_id: str, period: str | None = None) -> dict:
        account = self.booker_account(booker_id)
        period = period or period_key(self.clock())
        return {
            "bookerId": account.id,
            "bookerName": account.name,
            "maxDiscountPercent": money_str(self.max_percent_for(account)),
            "maxDiscountAmount": money_str(account.max_discount_amount),
            "period": period,
            "currentPeriodAmount": money_str(account.monthly_unauthorized_discounts.get(period, ZERO)),
            "periods": {
                key: money_str(value)
                for key, value in sorted(account.monthly_unauthorized_discounts.items())
            },
            "totalUnauthorizedDiscount": money_str(account.total_unauthorized_discount),
            "orderIds": list(account.monthly_unauthorized_discount_orders.get(period, [])),
        }
