# Overview: Order state machine: transition table, guards and lifecycle errors.

"""
Order Lifecycle

================================================================================
STATE MACHINE:
    draft -> submitted -> finalized -> billed -> load_form_ready -> assigned -> delivered
                 |  ^
                 v  | (approve_edit, editApproved=true)
            edit_requested -> rejected (reject_edit)

    Any non-terminal state -> rejected (reject, reason required)

RULES:
1. Every action has exactly one source state set and one target state.
2. delivered and rejected are terminal.
3. Nothing transitions into "approved"; it is only read from older documents.
4. A failed guard raises before anything is written.
================================================================================
"""

from __future__ import annotations

from ..models import Order, OrderStatus, TERMINAL_STATUSES


class LifecycleError(ValueError):
    """
    Raised when a lifecycle rule is violated.

    This is a domain error, not a technical error.
    """
    pass


class InvalidTransition(LifecycleError):
    def __init__(self, operation: str, current: OrderStatus | str, requested: OrderStatus | str | None, detail: str = ""):
        self.operation = operation
        self.current = OrderStatus(current)
        self.requested = OrderStatus(requested) if requested else None
        message = f"cannot {operation.replace('_', ' ')} an order that is {self.current.value}"
        if self.requested is not None:
            message += f" (requested {self.requested.value})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class EditRequestPending(InvalidTransition):
    """An edit request is already pending for this order."""

    def __init__(self, current: OrderStatus | str = OrderStatus.EDIT_REQUESTED):
        super().__init__("request_edit", current, OrderStatus.EDIT_REQUESTED, "request already pending")


NON_TERMINAL_STATUSES = frozenset(OrderStatus) - TERMINAL_STATUSES

# action -> (allowed source states, target state)
TRANSITIONS: dict[str, tuple[frozenset[OrderStatus], OrderStatus]] = {
    "submit": (frozenset({OrderStatus.DRAFT}), OrderStatus.SUBMITTED),
    "resubmit": (frozenset({OrderStatus.SUBMITTED}), OrderStatus.SUBMITTED),
    "request_edit": (frozenset({OrderStatus.SUBMITTED}), OrderStatus.EDIT_REQUESTED),
    "approve_edit": (frozenset({OrderStatus.EDIT_REQUESTED}), OrderStatus.SUBMITTED),
    "reject_edit": (frozenset({OrderStatus.EDIT_REQUESTED}), OrderStatus.REJECTED),
    "finalize": (frozenset({OrderStatus.SUBMITTED}), OrderStatus.FINALIZED),
    "bill": (frozenset({OrderStatus.FINALIZED}), OrderStatus.BILLED),
    "generate_load_form": (frozenset({OrderStatus.BILLED}), OrderStatus.LOAD_FORM_READY),
    "assign": (frozenset({OrderStatus.LOAD_FORM_READY}), OrderStatus.ASSIGNED),
    "deliver": (frozenset({OrderStatus.ASSIGNED}), OrderStatus.DELIVERED),
    "reject": (NON_TERMINAL_STATUSES, OrderStatus.REJECTED),
}


def can_transition(from_status: OrderStatus | str, to_status: OrderStatus | str) -> bool:
    """True when some action moves from_status to to_status."""
    source, target = OrderStatus(from_status), OrderStatus(to_status)
    return any(
        source in sources and target == dest
        for sources, dest in TRANSITIONS.values()
    )


def target_status(order: Order, action: str) -> OrderStatus:
    """
    Validate `action` against the order's current status and return the new status.

    Raises InvalidTransition (or EditRequestPending) without touching the order.
    """
    if action not in TRANSITIONS:
        raise LifecycleError(f"Unknown order action '{action}'")
    sources, target = TRANSITIONS[action]
    current = order.status

    if action == "request_edit":
        if current == OrderStatus.EDIT_REQUESTED:
            raise EditRequestPending(current)
        if current == OrderStatus.SUBMITTED and order.edit_approved:
            raise InvalidTransition(action, current, target, "edit already approved, resubmit first")
    if action == "resubmit" and current == OrderStatus.SUBMITTED and not order.edit_approved:
        raise InvalidTransition(action, current, target, "no approved edit to resubmit")

    if current not in sources:
        raise InvalidTransition(action, current, target)
    return target


def ensure_editable(order: Order, *, privileged: bool) -> None:
    """
    Items may change on drafts, on submitted orders with an approved edit,
    and on submitted orders for privileged roles.
    """
    if order.status == OrderStatus.DRAFT:
        return
    if order.status == OrderStatus.SUBMITTED and (order.edit_approved or privileged):
        return
    detail = "edit not approved" if order.status == OrderStatus.SUBMITTED else ""
    raise InvalidTransition("edit", order.status, None, detail)
