"""
Main routes (liveness, health).
"""

from flask import Blueprint, current_app

main_bp = Blueprint("main", __name__)


@main_bp.route("/", methods=["GET"])
def index():
    """Liveness check."""
    return "Smart Printer Backend Running"


@main_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    gateway = current_app.config.get("MESSAGE_BUS")
    if gateway and gateway.is_connected:
        health_status["checks"]["message_bus"] = "connected"
    else:
        health_status["checks"]["message_bus"] = "disconnected"
        health_status["status"] = "degraded"

    for key, name in (("DISPATCHER", "dispatcher"), ("LEDGER", "ledger"), ("UPLOAD_STORE", "uploads")):
        if current_app.config.get(key):
            health_status["checks"][name] = "ok"
        else:
            health_status["checks"][name] = "not_available"
            health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
