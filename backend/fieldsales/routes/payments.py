# Overview: Flask API routes for payment collection; parses input and returns JSON responses.

"""
Payment Collection API Routes

DESIGN:
- POST with billId applies the whole amount to that bill (excess is an advance)
- POST with shopId allocates oldest bill first and reports the unapplied rest
- Amounts are decimal strings or numbers

SECURITY:
- COLLECT_PAYMENT capability required (salesman, KPO, admin)
- Salesmen may not collect against bills assigned to another salesman
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor, require_capability
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..permissions import Capability
from ..services.registry import get_services


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/")
@require_actor
@require_capability(Capability.COLLECT_PAYMENT)
def collect_payment_route():
    """
    Request body:
    {
        "amount": "600",
        "shopId": "shop-1",   (shop-wide)
        "billId": "...",      (targeted; exactly one of shopId / billId)
        "notes": "..."
    }

    Returns:
        200: allocation result (applied bills, unapplied amount, advance, warnings)
        400: invalid input or no outstanding bills
    """
    try:
        data = request.get_json(silent=True) or {}
        result = get_services().payments.collect_payment(
            data.get("amount"),
            shop_id=data.get("shopId"),
            bill_id=data.get("billId"),
            notes=data.get("notes") or "",
        )
        return jsonify(result.to_dict()), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to collect payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/shops/<shop_id>/outstanding")
@require_actor
def outstanding_bills_route(shop_id: str):
    """Bills a shop-wide collection would pay, in allocation order."""
    bills = get_services().payments.outstanding_bills(shop_id)
    return jsonify({"shop_id": shop_id, "bills": [b.to_dict() for b in bills]}), 200
