# Overview: Allocates collected cash against a shop's outstanding bills and records ledger payments.

"""
Payment Allocation

WHY: Collections arrive per shop (or per bill) and must be spread across the
shop's bills so that the bills, their projections and the credit ledger agree.

DESIGN PRINCIPLES:
- Targeted mode applies the whole amount to one bill; any excess stays on
  that bill as an advance and is never redistributed.
- Shop-wide mode pays oldest bills first (billedAt, then bill number) and
  reports whatever is left as unapplied.
- Per bill the write order is fixed: bill, projection, ledger. A ledger entry
  is only ever the record of a bill update that already persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from flask import current_app

from ..models import Actor, Bill, LedgerTransaction, PaymentStatus
from ..permissions import can_collect_payment
from ..time_utils import timestamp_key, to_utc_z, utcnow
from ..validation import ZERO, ValidationError, money_str, parse_positive_amount
from .activity_service import ActivityLog
from .auth_service import AuthContext
from .billing_service import BillingService
from .ledger_service import CreditLedger


class PaymentError(ValueError):
    """Raised for payment operation errors."""
    pass


class NoOutstandingBills(PaymentError):
    def __init__(self, shop_id: str):
        super().__init__(f"cannot collect payment: shop {shop_id} has no outstanding bills")
        self.shop_id = shop_id


@dataclass
class AppliedPayment:
    bill: Bill
    amount: Decimal
    ledger_entry: LedgerTransaction

    def to_dict(self) -> dict:
        return {
            "bill": self.bill.to_dict(),
            "amountApplied": money_str(self.amount),
            "ledgerTransactionId": self.ledger_entry.id,
        }


@dataclass
class AllocationResult:
    applied: list[AppliedPayment] = field(default_factory=list)
    unapplied_amount: Decimal = ZERO
    advance_amount: Decimal = ZERO
    warnings: list[str] = field(default_factory=list)

    @property
    def applied_bills(self) -> list[Bill]:
        return [a.bill for a in self.applied]

    @property
    def total_applied(self) -> Decimal:
        return sum((a.amount for a in self.applied), ZERO)

    def to_dict(self) -> dict:
        return {
            "appliedBills": [a.to_dict() for a in self.applied],
            "totalApplied": money_str(self.total_applied),
            "unappliedAmount": money_str(self.unapplied_amount),
            "advanceAmount": money_str(self.advance_amount),
            "warnings": list(self.warnings),
        }


def allocation_order(bills: list[Bill]) -> list[Bill]:
    """Eligible bills, oldest first."""
    eligible = [
        b for b in bills
        if b.payment_status != PaymentStatus.PAID and b.remaining_credit > ZERO
    ]
    return sorted(eligible, key=lambda b: (timestamp_key(b.billed_at), b.bill_number))


class PaymentService:
    def __init__(
        self,
        auth: AuthContext,
        billing: BillingService,
        ledger: CreditLedger,
        activity: ActivityLog,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.auth = auth
        self.billing = billing
        self.ledger = ledger
        self.activity = activity
        self.clock = clock

    def outstanding_bills(self, shop_id: str) -> list[Bill]:
        return allocation_order(self.billing.list_bills(shop_id=shop_id))

    def _apply(self, bill: Bill, amount: Decimal, actor: Actor, notes: str) -> AppliedPayment:
        bill.apply_payment(amount, to_utc_z(self.clock()))
        # Raises on a local write failure, before any ledger entry exists
        saved = self.billing.save_bill(bill)
        self.billing.sync_projection(saved)
        entry = self.ledger.record_payment(
            saved.shop_id,
            amount,
            order_id=saved.order_id,
            bill_id=saved.id,
            notes=notes or f"Payment against {saved.bill_number}",
            created_by=actor.id,
        )
        return AppliedPayment(bill=saved, amount=amount, ledger_entry=entry)

    def collect_payment(
        self,
        amount,
        *,
        shop_id: Optional[str] = None,
        bill_id: Optional[str] = None,
        notes: str = "",
    ) -> AllocationResult:
        """
        Apply a collected amount to one bill (bill_id) or across a shop (shop_id).

        Exactly one of shop_id / bill_id must be given.
        """
        collected = parse_positive_amount(amount)
        if bool(shop_id) == bool(bill_id):
            raise ValidationError("provide exactly one of shopId or billId")
        notes = str(notes or "").strip()
        actor = self.auth.current_actor()
        result = AllocationResult()

        if bill_id:
            bill = self.billing.get_bill(bill_id)
            can_collect_payment(actor, bill).enforce()
            shop_id = bill.shop_id
            excess = max(ZERO, collected - bill.remaining_credit)
            result.applied.append(self._apply(bill, collected, actor, notes))
            if excess > ZERO:
                result.advance_amount = excess
                result.warnings.append(
                    f"{money_str(excess)} exceeds the remaining credit on {bill.bill_number} "
                    f"and is kept on that bill as an advance"
                )
        else:
            can_collect_payment(actor).enforce()
            bills = self.outstanding_bills(shop_id)
            if not bills:
                raise NoOutstandingBills(shop_id)

            remaining = collected
            for bill in bills:
                if remaining <= ZERO:
                    break
                applied = min(remaining, bill.remaining_credit)
                result.applied.append(self._apply(bill, applied, actor, notes))
                remaining -= applied

            result.unapplied_amount = remaining
            if remaining > ZERO:
                result.warnings.append(
                    f"{money_str(remaining)} could not be applied: all bills for shop {shop_id} are paid"
                )

        self.activity.record(
            actor_id=actor.id,
            action="PAYMENT_COLLECTED",
            entity_type="shop",
            entity_id=shop_id,
            note=notes or None,
            payload={
                "amount": money_str(collected),
                "billIds": [a.bill.id for a in result.applied],
                "unappliedAmount": money_str(result.unapplied_amount),
                "advanceAmount": money_str(result.advance_amount),
            },
        )
        current_app.logger.info(
            "Collected %s for shop %s: applied %s to %d bill(s), unapplied %s, advance %s",
            money_str(collected), shop_id, money_str(result.total_applied), len(result.applied),
            money_str(result.unapplied_amount), money_str(result.advance_amount),
        )
        return result
