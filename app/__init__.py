"""Admin Starter Flask Application Package.

To build the Flask app:
    from app.flask_app import create_app

To call operations without HTTP (scripts, tests):
    from app.core.bootstrap import build_runtime
    from app.core.operations import list_users
"""
# Note: We don't import flask_app by default to avoid the Flask dependency
# for CLI scripts that only use app.core
