"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, middleware, and configuration.
"""
from __future__ import annotations
import hmac
import logging
import os
from datetime import timedelta
from tempfile import gettempdir
from typing import Optional

from flask import Flask, abort, request, session
from flask_session import Session

from app.config import AppConfig, load_settings, setup_logging
from app.core.bootstrap import build_runtime
from app.core.gate import OperationRuntime

logger = logging.getLogger(__name__)

RUNTIME_EXTENSION_KEY = "admin_starter"
STATE_CHANGING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, runtime: Optional[OperationRuntime] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Settings; loaded from the environment when omitted
        runtime: Prebuilt operation runtime (tests inject one with fake collaborators)
    """
    cfg = cfg or load_settings()
    setup_logging(cfg.log_level, cfg.log_format)

    app = Flask(__name__)

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg

    # Flask session configuration
    app.config["SECRET_KEY"] = cfg.secret_key
    if cfg.secret_key_fallbacks:
        app.config["SECRET_KEY_FALLBACKS"] = cfg.secret_key_fallbacks
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = cfg.session_cookie_secure
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=cfg.session_lifetime_hours)

    if cfg.session_type != "cookie":
        app.config["SESSION_TYPE"] = cfg.session_type
        if cfg.session_type == "filesystem":
            session_dir = cfg.session_dir or os.path.join(gettempdir(), "admin_starter_flask_session")
            os.makedirs(session_dir, exist_ok=True)
            app.config["SESSION_FILE_DIR"] = session_dir
        Session(app)

    app.extensions[RUNTIME_EXTENSION_KEY] = runtime or build_runtime(cfg)

    # Register blueprints
    from app.api import auth, errors, health, rbac, users

    app.register_blueprint(auth.bp, url_prefix="/auth")
    app.register_blueprint(health.bp)
    app.register_blueprint(rbac.bp, url_prefix="/api/rbac")
    app.register_blueprint(users.bp, url_prefix="/api/users")

    # Register error handlers
    errors.register_error_handlers(app)

    # Register middleware/before_request handlers
    _register_middleware(app, cfg)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    logger.info("Mode=%s realm=%s session=%s", mode_label, cfg.keycloak_realm, cfg.session_type)
    if cfg.demo_mode:
        logger.warning("Demo mode active - do not deploy with demo credentials")

    return app


def _register_middleware(app: Flask, cfg: AppConfig):
    """Register before_request middleware."""
    from app.api.decorators import bearer_token, get_runtime
    from app.api.helpers.session import CSRF_SESSION_KEY, refresh_session_token

    @app.before_request
    def enforce_csrf() -> None:
        """Validate CSRF token for state-changing requests.

        Note: bearer-token requests carry no ambient credentials and skip CSRF.
        """
        if request.method not in STATE_CHANGING_METHODS:
            return
        if bearer_token():
            return

        submitted_token = request.headers.get("X-CSRF-Token", "")
        session_token = session.get(CSRF_SESSION_KEY, "")

        if not session_token or not submitted_token or not hmac.compare_digest(session_token, submitted_token):
            abort(400, description="CSRF validation failed")

    @app.before_request
    def ensure_fresh_token() -> None:
        """Refresh the session access token if expiring soon."""
        endpoint = (request.endpoint or "").rsplit(".", 1)[-1]
        skip_endpoints = {"sign_in", "sign_out", "csrf", "health_check", "readiness_check", "static"}
        if endpoint in skip_endpoints or bearer_token():
            return
        refresh_session_token(get_runtime().identity_provider, cfg.session_refresh_leeway)
