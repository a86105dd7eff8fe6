"""Health check endpoints."""
from flask import Blueprint, current_app

from app.api.decorators import get_runtime

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Basic health check endpoint."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Readiness check: the database must answer."""
    if not get_runtime().db.ping():
        current_app.logger.warning("Readiness check failed: database unreachable")
        return ("database unavailable", 503, {"Content-Type": "text/plain"})
    return ("ready", 200, {"Content-Type": "text/plain"})
