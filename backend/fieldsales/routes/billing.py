# Overview: Flask API routes for bills, outstanding payments and load forms.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor, require_capability
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..permissions import Capability
from ..services.registry import get_services


billing_bp = Blueprint("billing", __name__, url_prefix="/api")


# =============================================================================
# BILLS
# =============================================================================

@billing_bp.post("/orders/<order_id>/bill")
@require_actor
@require_capability(Capability.BILL_ORDER)
def bill_order_route(order_id: str):
    """
    Derive the Bill for a finalized order.

    Returns 201 when the bill is created, 200 when the order was already billed.
    """
    try:
        billing = get_services().billing
        already_billed = billing.bill_for_order(order_id) is not None
        bill = billing.bill_order(order_id)
        return jsonify({"bill": bill.to_dict()}), 200 if already_billed else 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bill order")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.get("/bills")
@require_actor
def list_bills_route():
    try:
        bills = get_services().billing.list_bills(
            shop_id=request.args.get("shop_id"),
            payment_status=request.args.get("payment_status"),
        )
        return jsonify({"bills": [b.to_dict() for b in bills]}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list bills")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.get("/bills/<bill_id>")
@require_actor
def get_bill_route(bill_id: str):
    try:
        bill = get_services().billing.get_bill(bill_id)
        return jsonify({"bill": bill.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@billing_bp.get("/outstanding-payments")
@require_actor
def list_outstanding_route():
    """Read-only projection rows; filter with ?shop_id=."""
    store = get_services().store
    shop_id = request.args.get("shop_id")
    if shop_id:
        rows = store.query_where("outstanding_payments", "shopId", "==", shop_id)
    else:
        rows = store.all("outstanding_payments")
    return jsonify({"outstanding_payments": rows}), 200


# =============================================================================
# LOAD FORMS
# =============================================================================

@billing_bp.post("/orders/<order_id>/load-form")
@require_actor
@require_capability(Capability.MANAGE_LOAD_FORMS)
def generate_load_form_route(order_id: str):
    try:
        load_form = get_services().billing.generate_load_form(order_id)
        return jsonify({"load_form": load_form.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to generate load form")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.get("/orders/<order_id>/load-form")
@require_actor
def get_load_form_route(order_id: str):
    load_form = get_services().billing.load_form_for_order(order_id)
    if load_form is None:
        return jsonify({"error": "Load form not found"}), 404
    return jsonify({"load_form": load_form.to_dict()}), 200


@billing_bp.post("/orders/<order_id>/load-form/confirm")
@require_actor
@require_capability(Capability.CONFIRM_LOAD_FORM)
def confirm_load_form_route(order_id: str):
    """
    Request body:
    {
        "confirmedQuantities": {"<productId>": 3, ...},
        "notes": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        load_form = get_services().billing.confirm_load_form(
            order_id,
            data.get("confirmedQuantities") or {},
            notes=data.get("notes") or "",
        )
        return jsonify({"load_form": load_form.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm load form")
        return jsonify({"error": "Internal server error"}), 500
