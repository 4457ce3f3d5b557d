# Overview: Flask API routes exposing the sync-status indicator and the reconciliation pass.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor, require_capability
from ..permissions import Capability
from ..services.registry import get_services


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@require_actor
def sync_status_route():
    """Row counts per sync status (synced / pending / failed)."""
    return jsonify(get_services().store.sync_summary()), 200


@sync_bp.get("/status/<collection>/<document_id>")
@require_actor
def entity_sync_status_route(collection: str, document_id: str):
    try:
        status = get_services().store.sync_status(collection, document_id)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if status is None:
        return jsonify({"error": "Not cached locally"}), 404
    return jsonify({"collection": collection, "id": document_id, "sync_status": status.value}), 200


@sync_bp.post("/run")
@require_actor
@require_capability(Capability.RUN_SYNC)
def run_sync_route():
    """
    Push pending rows to the remote store.

    ?include_failed=true also retries rows that exhausted their attempts.
    """
    try:
        include_failed = request.args.get("include_failed", "false").lower() == "true"
        counts = get_services().store.sync_pending(include_failed=include_failed)
        return jsonify(counts), 200
    except Exception:
        current_app.logger.exception("Sync pass failed")
        return jsonify({"error": "Internal server error"}), 500
