"""Error handlers for the application. Every response is JSON."""
import requests
from flask import jsonify
from werkzeug.exceptions import HTTPException

from app.core.errors import AppError, DependencyError
from app.core.identity.exceptions import IdentityProviderError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(AppError)
    def application_error(error):
        """Authentication, authorization and validation failures raised by operations."""
        if error.http_status >= 500:
            app.logger.error("Operation failed: %s", error)
        else:
            app.logger.info("Request rejected (%s): %s", error.code, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(IdentityProviderError)
    @app.errorhandler(requests.RequestException)
    def identity_provider_unavailable(error):
        app.logger.error("Identity provider call failed: %s", error)
        return jsonify(DependencyError().to_dict()), 502

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        return jsonify({"error": "bad_request", "message": error.description or "Bad Request"}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({"error": "not_authenticated", "message": "Authentication required"}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({"error": "forbidden", "message": "Insufficient permissions"}), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "not_found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "method_not_allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error

        # ALWAYS log the full error (even in production) - logs are secure
        app.logger.error("Unhandled exception: %s", error, exc_info=True)
        return jsonify({"error": "internal_error", "message": "An unexpected error occurred"}), 500
