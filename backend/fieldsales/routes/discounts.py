# Overview: Flask API routes for unauthorized-discount summaries and salary-deduction resets.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_actor, require_capability
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..models import Role
from ..permissions import Capability, can_reset_discount
from ..services.registry import get_services
from ..validation import require_text


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.get("/bookers/<booker_id>")
@require_actor
@require_capability(Capability.VIEW_DISCOUNTS)
def booker_summary_route(booker_id: str):
    """Accumulator for one booker; ?period=YYYY-MM selects the period shown."""
    if g.current_actor.role == Role.BOOKER and g.current_actor.id != booker_id:
        return jsonify({"error": "Bookers can only view their own discounts"}), 403
    try:
        summary = get_services().discounts.booker_discount_summary(
            booker_id, request.args.get("period")
        )
        return jsonify(summary), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@discounts_bp.post("/bookers/<booker_id>/reset")
@require_actor
@require_capability(Capability.RESET_DISCOUNT)
def reset_discount_route(booker_id: str):
    """
    Salary deduction applied for one period.

    Request body: { "period": "2024-11" }
    """
    try:
        actor = g.current_actor
        can_reset_discount(actor, booker_id).enforce()
        period = require_text((request.get_json(silent=True) or {}).get("period"), "period")
        discounts = get_services().discounts
        discounts.reset_unauthorized_discount(booker_id, period, actor_id=actor.id)
        return jsonify(discounts.booker_discount_summary(booker_id)), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reset unauthorized discount")
        return jsonify({"error": "Internal server error"}), 500
