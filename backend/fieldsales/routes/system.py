# backend/fieldsales/routes/system.py
"""
System health and identity endpoints.

Health covers both databases: the local cache (default bind) and the remote
document store ("remote" bind), plus the sync backlog.
"""

import time
from flask import Blueprint, current_app, jsonify, g
from ..decorators import require_actor
from ..extensions import db
from ..models import CacheEntry, RemoteDocument
from ..permissions import capabilities_for
from ..services.registry import get_services
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _check(label: str, probe) -> dict:
    start_time = time.time()
    try:
        details = probe()
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("%s health check failed", label)
        db.session.rollback()
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": f"{label} error"}


def check_local_cache_health() -> dict:
    return _check("Local cache", lambda: {"cached_documents": db.session.query(CacheEntry).count()})


def check_remote_store_health() -> dict:
    return _check("Remote store", lambda: {"documents": db.session.query(RemoteDocument).count()})


@system_bp.get("/health")
def health():
    """
    Overall status is "healthy" only when the local cache answers. An
    unreachable remote store degrades the service but writes still land
    locally and stay pending.
    """
    local = check_local_cache_health()
    remote = check_remote_store_health()
    sync = get_services().store.sync_summary() if local["status"] == "healthy" else {}

    if local["status"] != "healthy":
        overall = "unhealthy"
    elif remote["status"] != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return jsonify({
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"local_cache": local, "remote_store": remote},
        "sync": sync,
    }), 200 if overall != "unhealthy" else 503


@system_bp.get("/me")
@require_actor
def me():
    actor = g.current_actor
    return jsonify({"actor": actor.to_dict(), "capabilities": capabilities_for(actor)}), 200
