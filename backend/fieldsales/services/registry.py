# Overview: Builds the service objects once per app and exposes them to routes and CLI commands.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from flask import Flask, current_app

from ..time_utils import utcnow
from .activity_service import ActivityLog
from .auth_service import AuthContext
from .billing_service import BillingService
from .discount_service import DiscountService
from .entity_store import EntityStore, LocalCache, SqlDocumentStore
from .ledger_service import CreditLedger
from .order_service import OrderService
from .payment_service import PaymentService


EXTENSION_KEY = "fieldsales"


@dataclass
class Services:
    store: EntityStore
    auth: AuthContext
    activity: ActivityLog
    discounts: DiscountService
    orders: OrderService
    ledger: CreditLedger
    billing: BillingService
    payments: PaymentService


def build_services(
    *,
    store: EntityStore,
    default_max_discount_percent: Decimal = Decimal("5"),
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    auth = AuthContext(store)
    activity = ActivityLog(store, clock=clock)
    discounts = DiscountService(
        store, activity, default_max_percent=default_max_discount_percent, clock=clock
    )
    orders = OrderService(store, auth, discounts, activity, clock=clock)
    ledger = CreditLedger(store, clock=clock)
    billing = BillingService(store, auth, orders, ledger, activity, clock=clock)
    payments = PaymentService(auth, billing, ledger, activity, clock=clock)
    return Services(
        store=store,
        auth=auth,
        activity=activity,
        discounts=discounts,
        orders=orders,
        ledger=ledger,
        billing=billing,
        payments=payments,
    )


def init_services(app: Flask) -> Services:
    store = EntityStore(
        LocalCache(),
        SqlDocumentStore(),
        max_attempts=app.config["SYNC_MAX_ATTEMPTS"],
    )
    services = build_services(
        store=store,
        default_max_discount_percent=Decimal(str(app.config["DEFAULT_MAX_DISCOUNT_PERCENT"])),
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
