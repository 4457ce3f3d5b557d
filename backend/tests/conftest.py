"""
Pytest fixtures for fieldsales backend tests.

Provides an app on in-memory SQLite (both binds), service objects wired to a
controllable clock and a remote store that can be switched into failure mode,
seeded users, and helpers that drive orders to a given lifecycle state.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from fieldsales import create_app
from fieldsales.config import TestingConfig
from fieldsales.extensions import db
from fieldsales.models import Actor, Role
from fieldsales.services.entity_store import EntityStore, LocalCache, SqlDocumentStore, SyncFailure
from fieldsales.services.registry import build_services


class FrozenClock:
    """Deterministic clock; every read advances one second so timestamps stay ordered."""

    def __init__(self, start: datetime = datetime(2024, 11, 15, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current

    def set(self, moment: datetime) -> None:
        self.now = moment


class FlakyDocumentStore(SqlDocumentStore):
    """Remote store double: behaves normally until `fail` is switched on."""

    def __init__(self):
        self.fail = False
        self.writes = 0

    def _maybe_fail(self, collection, document_id=None):
        if self.fail:
            raise SyncFailure("remote store unavailable", collection=collection, document_id=document_id)

    def get(self, collection, document_id):
        self._maybe_fail(collection, document_id)
        return super().get(collection, document_id)

    def put(self, collection, document_id, data):
        self._maybe_fail(collection, document_id)
        self.writes += 1
        return super().put(collection, document_id, data)

    def delete(self, collection, document_id):
        self._maybe_fail(collection, document_id)
        return super().delete(collection, document_id)

    def query(self, collection, field, op, value):
        self._maybe_fail(collection)
        return super().query(collection, field, op, value)


@pytest.fixture()
def app():
    """Create application for testing (fresh in-memory databases per test)."""
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def remote(app):
    return FlakyDocumentStore()


@pytest.fixture()
def store(app, remote, clock):
    return EntityStore(LocalCache(), remote, max_attempts=3, clock=clock)


@pytest.fixture()
def services(store, clock):
    return build_services(store=store, default_max_discount_percent=Decimal("5"), clock=clock)


def _seed_user(store, user_id, name, role, **extra) -> Actor:
    store.create("users", {"id": user_id, "name": name, "role": role.value, "isActive": True, **extra})
    return Actor(id=user_id, name=name, role=role)


@pytest.fixture()
def users(store):
    """booker (5% ceiling), second booker, KPO, two salesmen and an admin."""
    return SimpleNamespace(
        booker=_seed_user(store, "booker-1", "Bilal Booker", Role.BOOKER, maxDiscountPercent="5"),
        other_booker=_seed_user(store, "booker-2", "Sana Booker", Role.BOOKER, maxDiscountPercent="10"),
        kpo=_seed_user(store, "kpo-1", "Kamran KPO", Role.KPO),
        salesman=_seed_user(store, "salesman-1", "Saad Salesman", Role.SALESMAN),
        other_salesman=_seed_user(store, "salesman-2", "Omar Salesman", Role.SALESMAN),
        admin=_seed_user(store, "admin-1", "Ayesha Admin", Role.ADMIN),
    )


def _line(product_id="p1", quantity=1, unit_price="100", discount_percent="0", name=""):
    return {
        "productId": product_id,
        "productName": name or product_id,
        "quantity": quantity,
        "unitPrice": unit_price,
        "discountPercent": discount_percent,
    }


@pytest.fixture()
def line():
    """Order line payload factory."""
    return _line


@pytest.fixture()
def make_order(services, users):
    """Create a draft order as the booker."""
    def _make(items=None, *, shop_id="shop-1", payment_mode="credit", cash_amount=None, booker=None):
        with services.auth.acting_as(booker or users.booker):
            return services.orders.create_order(
                shop_id,
                items=[_line()] if items is None else items,
                payment_mode=payment_mode,
                cash_amount=cash_amount,
            )
    return _make


@pytest.fixture()
def make_submitted_order(services, users, make_order):
    def _make(items=None, **kwargs):
        booker = kwargs.get("booker") or users.booker
        order = make_order(items, **kwargs)
        with services.auth.acting_as(booker):
            return services.orders.submit_order(order.id)
    return _make


@pytest.fixture()
def make_finalized_order(services, users, make_submitted_order):
    def _make(items=None, **kwargs):
        order = make_submitted_order(items, **kwargs)
        with services.auth.acting_as(users.kpo):
            return services.orders.finalize_order(order.id)
    return _make


@pytest.fixture()
def make_bill(services, users, make_finalized_order):
    """Bill an order worth `total` (single line, no discount), with optional booking cash."""
    def _make(total="500", *, cash="0", shop_id="shop-1"):
        mode = "partial" if Decimal(cash) > 0 else "credit"
        order = make_finalized_order(
            [_line(unit_price=total)], shop_id=shop_id, payment_mode=mode, cash_amount=cash
        )
        with services.auth.acting_as(users.kpo):
            return services.billing.bill_order(order.id)
    return _make


@pytest.fixture()
def as_actor(services):
    """Bind an actor for the rest of the test (outside any `with` block)."""
    def _bind(actor):
        services.auth.bind(actor)
        return actor
    return _bind
