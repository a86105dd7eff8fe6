import dataclasses
from datetime import timedelta

from app.core.gate import OperationRuntime
from app.flask_app import RUNTIME_EXTENSION_KEY, create_app
from tests.conftest import authenticate_as


def test_session_cookie_flags(app):
    assert app.config["SESSION_COOKIE_HTTPONLY"] is True
    assert app.config["SESSION_COOKIE_SAMESITE"] == "Lax"
    assert app.config["SESSION_COOKIE_SECURE"] is False
    assert app.config["PERMANENT_SESSION_LIFETIME"] == timedelta(hours=8)


def test_injected_runtime_is_used(app, runtime):
    assert app.extensions[RUNTIME_EXTENSION_KEY] is runtime
    assert app.config["APP_CONFIG"].keycloak_realm == "demo"


def test_cookie_session_skips_server_side_store(app):
    assert "SESSION_TYPE" not in app.config


def test_filesystem_session_creates_directory(app_config, runtime, tmp_path):
    session_dir = tmp_path / "sessions"
    cfg = dataclasses.replace(app_config, session_type="filesystem", session_dir=str(session_dir))

    app = create_app(cfg=cfg, runtime=runtime)

    assert app.config["SESSION_TYPE"] == "filesystem"
    assert app.config["SESSION_FILE_DIR"] == str(session_dir)
    assert session_dir.is_dir()


def test_secret_key_fallbacks(app_config, runtime):
    cfg = dataclasses.replace(app_config, secret_key_fallbacks=["old-secret"])
    app = create_app(cfg=cfg, runtime=runtime)
    assert app.config["SECRET_KEY_FALLBACKS"] == ["old-secret"]


def test_runtime_built_from_config_when_not_injected(app_config):
    app = create_app(cfg=app_config)

    runtime = app.extensions[RUNTIME_EXTENSION_KEY]
    assert isinstance(runtime, OperationRuntime)
    assert runtime.identity_provider.realm == "demo"
    assert runtime.db.ping() is True


# ─────────────────────────────────────────────────────────────────────────────
# Session token refresh
# ─────────────────────────────────────────────────────────────────────────────
def test_expiring_session_is_refreshed(client, admin, identity_provider):
    session = identity_provider.authenticate(admin.email, admin.password)
    authenticate_as(client, admin.identity, expires_in=5, refresh_token=session.refresh_token)

    client.get("/api/users/me")

    with client.session_transaction() as stored:
        assert stored["identity_session"]["access_token"] == "access-refreshed"


def test_revoked_refresh_token_drops_session(client, admin):
    authenticate_as(client, admin.identity, expires_in=5, refresh_token="revoked")

    response = client.get("/api/users/me")

    assert response.status_code == 401
    with client.session_transaction() as stored:
        assert "identity_session" not in stored


def test_identity_provider_outage_keeps_session(client, admin, identity_provider, mocker):
    from app.core.identity.exceptions import IdentityAPIError

    mocker.patch.object(
        identity_provider, "refresh_session", side_effect=IdentityAPIError(503, "down", "/token")
    )
    authenticate_as(client, admin.identity, expires_in=5)

    response = client.get("/api/users/me")

    assert response.status_code == 200
    with client.session_transaction() as stored:
        assert stored["identity_session"]["access_token"] == "stub-access"


def test_fresh_session_is_not_refreshed(client, admin, identity_provider, mocker):
    refresh = mocker.spy(identity_provider, "refresh_session")
    authenticate_as(client, admin.identity)

    client.get("/api/users/me")

    refresh.assert_not_called()
