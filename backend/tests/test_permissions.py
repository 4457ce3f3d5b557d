"""
Role capabilities and object-level checks.
"""

from decimal import Decimal

import pytest

from fieldsales.models import Actor, Bill, Order, OrderStatus, Role
from fieldsales.permissions import (
    ALL_CAPABILITIES,
    Capability,
    PermissionDenied,
    can_collect_payment,
    can_edit_order,
    can_finalize,
    can_reject,
    can_request_edit,
    can_reset_discount,
    can_review_edit,
    can_submit_order,
    capabilities_for,
    has_capability,
    is_privileged,
)


BOOKER = Actor("booker-1", "Booker", Role.BOOKER)
OTHER_BOOKER = Actor("booker-2", "Other", Role.BOOKER)
KPO = Actor("kpo-1", "KPO", Role.KPO)
SALESMAN = Actor("salesman-1", "Salesman", Role.SALESMAN)
ADMIN = Actor("admin-1", "Admin", Role.ADMIN)


def _order(booker_id="booker-1"):
    return Order(id="o-1", order_number="ORD-2024-0001", shop_id="shop-1", booker_id=booker_id,
                 status=OrderStatus.SUBMITTED)


def _bill(salesman_id=None):
    return Bill(id="b-1", bill_number="BILL-20241115-0001", order_id="o-1", order_number="ORD-2024-0001",
                shop_id="shop-1", booker_id="booker-1", total_amount=Decimal("500"), salesman_id=salesman_id)


class TestRoleCapabilities:
    def test_admin_has_everything(self):
        assert set(capabilities_for(ADMIN)) == ALL_CAPABILITIES

    @pytest.mark.parametrize(
        "actor,capability,expected",
        [
            (BOOKER, Capability.CREATE_ORDER, True),
            (BOOKER, Capability.FINALIZE_ORDER, False),
            (BOOKER, Capability.COLLECT_PAYMENT, False),
            (KPO, Capability.BILL_ORDER, True),
            (KPO, Capability.CONFIRM_LOAD_FORM, False),
            (SALESMAN, Capability.COLLECT_PAYMENT, True),
            (SALESMAN, Capability.CREATE_ORDER, False),
            (SALESMAN, Capability.RESET_DISCOUNT, False),
        ],
    )
    def test_matrix(self, actor, capability, expected):
        assert has_capability(actor, capability) is expected

    def test_privileged_roles(self):
        assert is_privileged(KPO)
        assert is_privileged(ADMIN)
        assert not is_privileged(BOOKER)
        assert not is_privileged(SALESMAN)


class TestOrderChecks:
    def test_bookers_act_on_their_own_orders(self):
        assert can_submit_order(BOOKER, _order())
        assert not can_submit_order(OTHER_BOOKER, _order())
        assert can_edit_order(BOOKER, _order())
        assert not can_edit_order(OTHER_BOOKER, _order())

    def test_kpo_acts_on_any_order(self):
        assert can_submit_order(KPO, _order())
        assert can_edit_order(KPO, _order("booker-2"))

    def test_edit_request_by_owner_or_admin(self):
        assert can_request_edit(BOOKER, _order())
        assert can_request_edit(ADMIN, _order())
        assert not can_request_edit(OTHER_BOOKER, _order())
        assert not can_request_edit(KPO, _order())

    def test_review_and_finalize(self):
        assert can_review_edit(KPO, _order())
        assert not can_review_edit(BOOKER, _order())
        assert can_finalize(ADMIN, _order())
        assert not can_finalize(SALESMAN, _order())

    @pytest.mark.parametrize(
        "check,actor",
        [
            (can_submit_order, SALESMAN),
            (can_edit_order, SALESMAN),
            (can_request_edit, KPO),
            (can_review_edit, BOOKER),
            (can_finalize, BOOKER),
            (can_reject, SALESMAN),
        ],
    )
    def test_missing_role_capability_denies(self, check, actor):
        decision = check(actor, _order())

        assert decision.allowed is False
        assert decision.reason.startswith(f"role {actor.role.value} cannot")

    def test_enforce_raises_with_reason(self):
        decision = can_submit_order(OTHER_BOOKER, _order())

        with pytest.raises(PermissionDenied, match="their own orders"):
            decision.enforce()
        assert decision.reason


class TestPaymentChecks:
    def test_salesman_limited_to_assigned_bill(self):
        assert can_collect_payment(SALESMAN, _bill("salesman-1"))
        assert can_collect_payment(SALESMAN, _bill())
        assert not can_collect_payment(SALESMAN, _bill("salesman-2"))

    def test_kpo_collects_any_bill(self):
        assert can_collect_payment(KPO, _bill("salesman-2"))

    def test_booker_cannot_collect(self):
        assert not can_collect_payment(BOOKER)


class TestDiscountReset:
    def test_kpo_resets_booker(self):
        assert can_reset_discount(KPO, "booker-1")

    def test_no_self_reset(self):
        assert not can_reset_discount(KPO, KPO.id)

    def test_booker_cannot_reset(self):
        assert not can_reset_discount(BOOKER, BOOKER.id)
