# Overview: Flask API routes for the per-shop credit ledger.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_actor, require_capability
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..permissions import Capability
from ..services.registry import get_services
from ..services.ledger_service import fold_balance
from ..validation import money_str


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/shops/<shop_id>")
@require_actor
@require_capability(Capability.VIEW_LEDGER)
def shop_ledger_route(shop_id: str):
    """Entries in replay order plus the balance folded from them."""
    ledger = get_services().ledger
    entries = ledger.transactions(shop_id)
    return jsonify({
        "shop_id": shop_id,
        "transactions": [e.to_dict() for e in entries],
        "balance": money_str(fold_balance(entries)),
    }), 200


@ledger_bp.get("/shops/<shop_id>/summary")
@require_actor
@require_capability(Capability.VIEW_LEDGER)
def shop_summary_route(shop_id: str):
    return jsonify(get_services().ledger.shop_summary(shop_id)), 200


@ledger_bp.get("/shops/<shop_id>/verify")
@require_actor
@require_capability(Capability.VIEW_LEDGER)
def verify_ledger_route(shop_id: str):
    problems = get_services().ledger.verify_shop_ledger(shop_id)
    return jsonify({"shop_id": shop_id, "consistent": not problems, "discrepancies": problems}), 200


@ledger_bp.post("/shops/<shop_id>/returns")
@require_actor
@require_capability(Capability.ADJUST_LEDGER)
def record_return_route(shop_id: str):
    """Credit note: { "value": "250", "orderId": "...", "notes": "..." }"""
    try:
        data = request.get_json(silent=True) or {}
        entry = get_services().ledger.record_return(
            shop_id,
            data.get("value"),
            order_id=data.get("orderId"),
            bill_id=data.get("billId"),
            notes=data.get("notes") or "",
            created_by=g.current_actor.id,
        )
        return jsonify({"transaction": entry.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record return")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/shops/<shop_id>/adjustments")
@require_actor
@require_capability(Capability.ADJUST_LEDGER)
def record_adjustment_route(shop_id: str):
    """Signed correction: { "amount": "-50", "notes": "required reason" }"""
    try:
        data = request.get_json(silent=True) or {}
        entry = get_services().ledger.record_adjustment(
            shop_id,
            data.get("amount"),
            notes=data.get("notes"),
            created_by=g.current_actor.id,
        )
        return jsonify({"transaction": entry.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record adjustment")
        return jsonify({"error": "Internal server error"}), 500
