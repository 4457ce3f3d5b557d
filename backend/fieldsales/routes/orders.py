# Overview: Flask API routes for order booking and lifecycle transitions; parses input and returns JSON responses.

"""
Order API Routes

DESIGN:
- Booking: create, edit and submit orders (bookers)
- Review: edit requests, finalize and reject (KPO)
- Delivery: assign and deliver (KPO / salesman)
- Every transition returns the updated order document

ERRORS:
- 400 bad input or guard violation, 409 invalid transition,
  403 capability check failed, 404 unknown order
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor, require_capability
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..permissions import Capability
from ..services.registry import get_services


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _body() -> dict:
    return request.get_json(silent=True) or {}


# =============================================================================
# BOOKING
# =============================================================================

@orders_bp.post("/")
@require_actor
@require_capability(Capability.CREATE_ORDER)
def create_order_route():
    """
    Create a draft order.

    Request body:
    {
        "shopId": "shop-1",
        "items": [{"productId": "p1", "quantity": 2, "unitPrice": "150", "discountPercent": 5}],
        "paymentMode": "cash" | "credit" | "partial",
        "cashAmount": "100",   (partial only)
        "notes": "...",
        "bookerId": "..."      (KPO/admin booking on behalf of a booker)
    }
    """
    try:
        data = _body()
        order = get_services().orders.create_order(
            data.get("shopId"),
            items=data.get("items"),
            notes=data.get("notes") or "",
            payment_mode=data.get("paymentMode") or "cash",
            cash_amount=data.get("cashAmount"),
            booker_id=data.get("bookerId"),
        )
        return jsonify({"order": order.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@require_actor
def list_orders_route():
    try:
        orders = get_services().orders.list_orders(
            status=request.args.get("status"),
            shop_id=request.args.get("shop_id"),
            booker_id=request.args.get("booker_id"),
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<order_id>")
@require_actor
def get_order_route(order_id: str):
    try:
        services = get_services()
        order = services.orders.get_order(order_id)
        sync_status = services.store.sync_status("orders", order_id)
        return jsonify({
            "order": order.to_dict(),
            "sync_status": sync_status.value if sync_status else None,
        }), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<order_id>")
@require_actor
@require_capability(Capability.EDIT_ORDER)
def update_order_route(order_id: str):
    """Edit items / notes / payment mode of a draft or edit-approved order."""
    try:
        data = _body()
        order = get_services().orders.update_order(
            order_id,
            items=data.get("items"),
            notes=data.get("notes"),
            payment_mode=data.get("paymentMode"),
            cash_amount=data.get("cashAmount"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/submit")
@require_actor
@require_capability(Capability.SUBMIT_ORDER)
def submit_order_route(order_id: str):
    try:
        data = _body()
        order = get_services().orders.submit_order(
            order_id,
            payment_mode=data.get("paymentMode"),
            cash_amount=data.get("cashAmount"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to submit order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# EDIT REQUESTS
# =============================================================================

@orders_bp.post("/<order_id>/request-edit")
@require_actor
@require_capability(Capability.REQUEST_EDIT)
def request_edit_route(order_id: str):
    try:
        order = get_services().orders.request_edit(order_id, note=_body().get("note"))
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request order edit")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/approve-edit")
@require_actor
@require_capability(Capability.REVIEW_EDIT)
def approve_edit_route(order_id: str):
    try:
        order = get_services().orders.approve_edit(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve order edit")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/reject-edit")
@require_actor
@require_capability(Capability.REVIEW_EDIT)
def reject_edit_route(order_id: str):
    try:
        order = get_services().orders.reject_edit(order_id, _body().get("reason"))
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject order edit")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REVIEW
# =============================================================================

@orders_bp.post("/<order_id>/finalize")
@require_actor
@require_capability(Capability.FINALIZE_ORDER)
def finalize_order_route(order_id: str):
    try:
        order = get_services().orders.finalize_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to finalize order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/reject")
@require_actor
@require_capability(Capability.REJECT_ORDER)
def reject_order_route(order_id: str):
    try:
        order = get_services().orders.reject_order(order_id, _body().get("reason"))
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DELIVERY
# =============================================================================

@orders_bp.post("/<order_id>/assign")
@require_actor
@require_capability(Capability.ASSIGN_DELIVERY)
def assign_delivery_route(order_id: str):
    try:
        order = get_services().orders.assign_delivery(order_id, _body().get("salesmanId"))
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign delivery")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/deliver")
@require_actor
@require_capability(Capability.DELIVER_ORDER)
def deliver_order_route(order_id: str):
    try:
        order = get_services().orders.mark_delivered(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark order delivered")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<order_id>/activity")
@require_actor
def order_activity_route(order_id: str):
    services = get_services()
    return jsonify({"events": services.activity.for_entity("order", order_id)}), 200
