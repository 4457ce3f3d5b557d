"""
Role capabilities and object-level checks.

WHY: Role branching happens once, here, at the service boundary. Routes use
the capability codes for coarse gating; services call the can_* checks,
which also look at the object (ownership, assignment).

Checks return a Decision instead of raising so callers can show the reason.
Lifecycle state rules are not repeated here; the state machine owns them.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import Actor, Bill, Order, Role


class PermissionDenied(Exception):
    """Raised when a capability check fails."""
    pass


# =============================================================================
# CAPABILITIES
# =============================================================================

class Capability:
    CREATE_ORDER = "CREATE_ORDER"
    SUBMIT_ORDER = "SUBMIT_ORDER"
    EDIT_ORDER = "EDIT_ORDER"
    REQUEST_EDIT = "REQUEST_EDIT"
    REVIEW_EDIT = "REVIEW_EDIT"
    FINALIZE_ORDER = "FINALIZE_ORDER"
    REJECT_ORDER = "REJECT_ORDER"
    BILL_ORDER = "BILL_ORDER"
    MANAGE_LOAD_FORMS = "MANAGE_LOAD_FORMS"
    CONFIRM_LOAD_FORM = "CONFIRM_LOAD_FORM"
    ASSIGN_DELIVERY = "ASSIGN_DELIVERY"
    DELIVER_ORDER = "DELIVER_ORDER"
    COLLECT_PAYMENT = "COLLECT_PAYMENT"
    VIEW_LEDGER = "VIEW_LEDGER"
    ADJUST_LEDGER = "ADJUST_LEDGER"
    VIEW_DISCOUNTS = "VIEW_DISCOUNTS"
    RESET_DISCOUNT = "RESET_DISCOUNT"
    RUN_SYNC = "RUN_SYNC"


ROLE_CAPABILITIES: dict[Role, frozenset[str]] = {
    Role.BOOKER: frozenset({
        Capability.CREATE_ORDER,
        Capability.SUBMIT_ORDER,
        Capability.EDIT_ORDER,
        Capability.REQUEST_EDIT,
        Capability.VIEW_DISCOUNTS,
        Capability.RUN_SYNC,
    }),
    Role.KPO: frozenset({
        Capability.CREATE_ORDER,
        Capability.SUBMIT_ORDER,
        Capability.EDIT_ORDER,
        Capability.REVIEW_EDIT,
        Capability.FINALIZE_ORDER,
        Capability.REJECT_ORDER,
        Capability.BILL_ORDER,
        Capability.MANAGE_LOAD_FORMS,
        Capability.ASSIGN_DELIVERY,
        Capability.COLLECT_PAYMENT,
        Capability.VIEW_LEDGER,
        Capability.ADJUST_LEDGER,
        Capability.VIEW_DISCOUNTS,
        Capability.RESET_DISCOUNT,
        Capability.RUN_SYNC,
    }),
    Role.SALESMAN: frozenset({
        Capability.CONFIRM_LOAD_FORM,
        Capability.DELIVER_ORDER,
        Capability.COLLECT_PAYMENT,
        Capability.VIEW_LEDGER,
        Capability.RUN_SYNC,
    }),
}

ALL_CAPABILITIES = frozenset(
    value for name, value in vars(Capability).items() if not name.startswith("_")
)
ROLE_CAPABILITIES[Role.ADMIN] = ALL_CAPABILITIES

# Roles allowed to edit a submitted order without an approved edit request
PRIVILEGED_ROLES = frozenset({Role.KPO, Role.ADMIN})


def has_capability(actor: Actor, capability: str) -> bool:
    return capability in ROLE_CAPABILITIES.get(actor.role, frozenset())


def is_privileged(actor: Actor) -> bool:
    return actor.role in PRIVILEGED_ROLES


# =============================================================================
# OBJECT-LEVEL CHECKS
# =============================================================================

@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed

    def enforce(self) -> None:
        if not self.allowed:
            raise PermissionDenied(self.reason)


ALLOW = Decision(True)


def _deny(reason: str) -> Decision:
    return Decision(False, reason)


def _role_check(actor: Actor, capability: str, action: str) -> Decision | None:
    if not has_capability(actor, capability):
        return _deny(f"role {actor.role.value} cannot {action}")
    return None


def _owns(actor: Actor, order: Order) -> bool:
    return order.booker_id == actor.id


def can_submit_order(actor: Actor, order: Order) -> Decision:
    denied = _role_check(actor, Capability.SUBMIT_ORDER, "submit orders")
    if denied is not None:
        return denied
    if actor.role == Role.BOOKER and not _owns(actor, order):
        return _deny("bookers can only submit their own orders")
    return ALLOW


def can_edit_order(actor: Actor, order: Order) -> Decision:
    denied = _role_check(actor, Capability.EDIT_ORDER, "edit orders")
    if denied is not None:
        return denied
    if actor.role == Role.BOOKER and not _owns(actor, order):
        return _deny("bookers can only edit their own orders")
    return ALLOW


def can_request_edit(actor: Actor, order: Order) -> Decision:
    if actor.role == Role.ADMIN:
        return ALLOW
    denied = _role_check(actor, Capability.REQUEST_EDIT, "request edits")
    if denied is not None:
        return denied
    if not _owns(actor, order):
        return _deny("only the booking booker can request an edit")
    return ALLOW


def can_review_edit(actor: Actor, order: Order) -> Decision:
    denied = _role_check(actor, Capability.REVIEW_EDIT, "review edit requests")
    return denied if denied is not None else ALLOW


def can_finalize(actor: Actor, order: Order) -> Decision:
    denied = _role_check(actor, Capability.FINALIZE_ORDER, "finalize orders")
    return denied if denied is not None else ALLOW


def can_reject(actor: Actor, order: Order) -> Decision:
    denied = _role_check(actor, Capability.REJECT_ORDER, "reject orders")
    return denied if denied is not None else ALLOW


def can_collect_payment(actor: Actor, bill: Bill | None = None) -> Decision:
    denied = _role_check(actor, Capability.COLLECT_PAYMENT, "collect payments")
    if denied is not None:
        return denied
    if (
        actor.role == Role.SALESMAN
        and bill is not None
        and bill.salesman_id
        and bill.salesman_id != actor.id
    ):
        return _deny("bill is assigned to another salesman")
    return ALLOW


def can_reset_discount(actor: Actor, booker_id: str) -> Decision:
    denied = _role_check(actor, Capability.RESET_DISCOUNT, "apply salary deductions")
    if denied is not None:
        return denied
    if actor.id == booker_id:
        return _deny("cannot reset your own unauthorized discount")
    return ALLOW


def capabilities_for(actor: Actor) -> list[str]:
    return sorted(ROLE_CAPABILITIES.get(actor.role, frozenset()))
