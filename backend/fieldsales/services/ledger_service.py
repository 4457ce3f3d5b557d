# Overview: Per-shop credit ledger; append-only entries and balances derived by replay.

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from flask import current_app

from ..models import LedgerTransaction, TransactionType
from ..time_utils import to_utc_z, utcnow
from ..validation import ZERO, ValidationError, money_str, parse_positive_amount, require_text, to_money
from .entity_store import EntityStore
"""
Credit Ledger Invariants (authoritative)

- Append-only: no entry is ever updated or deleted; corrections are new
  offsetting entries (RETURN / ADJUSTMENT).
- amount is signed: positive raises what the shop owes, negative lowers it.
- balanceAfter == balanceBefore + amount, and balanceBefore of entry n+1 equals
  balanceAfter of entry n when replayed in `sequence` order.
- The shop balance is always a fold over the entries; it is never cached.
"""

COLLECTION = "ledger_transactions"


def fold_balance(entries: list[LedgerTransaction]) -> Decimal:
    return sum((e.amount for e in entries), ZERO)


class CreditLedger:
    def __init__(self, store: EntityStore, *, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    # =========================================================================
    # READS
    # =========================================================================

    def transactions(self, shop_id: str) -> list[LedgerTransaction]:
        """Entries for a shop in replay order."""
        docs = self.store.query_where(COLLECTION, "shopId", "==", shop_id)
        entries = [LedgerTransaction.from_dict(d) for d in docs]
        return sorted(entries, key=lambda e: (e.sequence, e.date, e.id))

    def shop_balance(self, shop_id: str) -> Decimal:
        return fold_balance(self.transactions(shop_id))

    def verify_shop_ledger(self, shop_id: str) -> list[dict]:
        """
        Replay a shop's entries from zero and report every stored balance that
        disagrees with the replay. An empty list means the ledger is consistent.
        """
        problems: list[dict] = []
        running = ZERO
        for entry in self.transactions(shop_id):
            if entry.balance_before != running:
                problems.append({
                    "transactionId": entry.id,
                    "sequence": entry.sequence,
                    "field": "balanceBefore",
                    "expected": money_str(running),
                    "actual": money_str(entry.balance_before),
                })
            running += entry.amount
            if entry.balance_after != running:
                problems.append({
                    "transactionId": entry.id,
                    "sequence": entry.sequence,
                    "field": "balanceAfter",
                    "expected": money_str(running),
                    "actual": money_str(entry.balance_after),
                })
        return problems

    def shop_summary(self, shop_id: str) -> dict:
        entries = self.transactions(shop_id)
        totals = {t: ZERO for t in TransactionType}
        for entry in entries:
            totals[entry.type] += entry.amount
        return {
            "shopId": shop_id,
            "totalSales": money_str(totals[TransactionType.SALE]),
            # Payments and returns are stored negative; report magnitudes
            "totalPayments": money_str(-totals[TransactionType.PAYMENT]),
            "totalReturns": money_str(-totals[TransactionType.RETURN]),
            "totalAdjustments": money_str(totals[TransactionType.ADJUSTMENT]),
            "balance": money_str(fold_balance(entries)),
            "transactionCount": len(entries),
            "lastTransactionDate": entries[-1].date if entries else None,
        }

    # =========================================================================
    # APPENDS
    # =========================================================================

    def _append(
        self,
        *,
        shop_id: str,
        txn_type: TransactionType,
        amount: Decimal,
        order_id: Optional[str] = None,
        bill_id: Optional[str] = None,
        notes: str = "",
        created_by: Optional[str] = None,
    ) -> LedgerTransaction:
        shop_id = require_text(shop_id, "shopId")
        existing = self.transactions(shop_id)
        before = fold_balance(existing)
        sequence = (existing[-1].sequence + 1) if existing else 1

        entry = LedgerTransaction(
            id=uuid.uuid4().hex,
            shop_id=shop_id,
            type=txn_type,
            amount=amount,
            balance_before=before,
            balance_after=before + amount,
            sequence=sequence,
            date=to_utc_z(self.clock()),
            order_id=order_id,
            bill_id=bill_id,
            notes=notes or "",
            created_by=created_by,
        )
        self.store.create(COLLECTION, entry.to_dict())
        current_app.logger.info(
            "Ledger %s for shop %s: %s (balance %s -> %s)",
            txn_type.value, shop_id, money_str(amount), money_str(before), money_str(entry.balance_after),
        )
        return entry

    def record_sale(self, shop_id: str, amount, **refs) -> LedgerTransaction:
        value = parse_positive_amount(amount)
        return self._append(shop_id=shop_id, txn_type=TransactionType.SALE, amount=value, **refs)

    def record_payment(self, shop_id: str, amount, **refs) -> LedgerTransaction:
        value = parse_positive_amount(amount)
        return self._append(shop_id=shop_id, txn_type=TransactionType.PAYMENT, amount=-value, **refs)

    def record_return(self, shop_id: str, value, **refs) -> LedgerTransaction:
        """Credit note for returned goods: lowers what the shop owes."""
        returned = parse_positive_amount(value, "value")
        return self._append(shop_id=shop_id, txn_type=TransactionType.RETURN, amount=-returned, **refs)

    def record_adjustment(self, shop_id: str, amount, *, notes: str, **refs) -> LedgerTransaction:
        """Signed manual correction; a reason is mandatory."""
        value = to_money(amount)
        if value == ZERO:
            raise ValidationError("adjustment amount cannot be zero")
        notes = require_text(notes, "notes")
        return self._append(
            shop_id=shop_id,
            txn_type=TransactionType.ADJUSTMENT,
            amount=value,
            notes=notes,
            **refs,
        )
