import time

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.exceptions import ExpiredSignatureError

from app.api import decorators
from tests.conftest import send_json

ISSUER = "http://keycloak.test/realms/demo"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


class DummySigningKey:
    def __init__(self, key):
        self.key = key


class DummyJWKS:
    def __init__(self, key):
        self.key = key

    def get_signing_key_from_jwt(self, token):
        return DummySigningKey(self.key)


@pytest.fixture()
def jwks(app, rsa_key):
    app.extensions[decorators.JWKS_EXTENSION_KEY] = DummyJWKS(rsa_key.public_key())


def make_token(rsa_key, **overrides):
    now = int(time.time())
    claims = {
        "sub": "kc-1",
        "email": "Admin@Example.com",
        "name": "Ada Admin",
        "iss": ISSUER,
        "iat": now,
        "exp": now + 300,
    }
    claims.update(overrides)
    claims = {key: value for key, value in claims.items() if value is not None}
    return jwt.encode(claims, rsa_key, algorithm="RS256")


def test_validate_jwt_token_success(app, jwks, rsa_key):
    with app.app_context():
        claims = decorators.validate_jwt_token(make_token(rsa_key))
    assert claims["sub"] == "kc-1"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"exp": int(time.time()) - 60}, "Token expired"),
        ({"iss": "http://evil.test/realms/demo"}, "Invalid issuer"),
        ({"sub": None}, "Token validation failed"),
    ],
)
def test_validate_jwt_token_rejections(app, jwks, rsa_key, overrides, message):
    with app.app_context():
        with pytest.raises(decorators.TokenValidationError, match=message):
            decorators.validate_jwt_token(make_token(rsa_key, **overrides))


def test_validate_jwt_token_wrong_key(app, jwks):
    other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with app.app_context():
        with pytest.raises(decorators.TokenValidationError, match="Invalid signature"):
            decorators.validate_jwt_token(make_token(other))


def test_validate_jwt_token_malformed(app, jwks):
    with app.app_context():
        with pytest.raises(decorators.TokenValidationError):
            decorators.validate_jwt_token("header.payload.signature")


def test_validate_jwt_token_expired_from_decode(app, monkeypatch):
    monkeypatch.setattr(decorators, "get_jwks_client", lambda: DummyJWKS("secret"))

    def raise_expired(*args, **kwargs):
        raise ExpiredSignatureError("expired")

    monkeypatch.setattr(decorators.jwt, "decode", raise_expired)

    with app.app_context():
        with pytest.raises(decorators.TokenValidationError, match="Token expired"):
            decorators.validate_jwt_token("header.payload.signature")


def test_jwks_client_is_cached_per_app(app):
    app.extensions.pop(decorators.JWKS_EXTENSION_KEY, None)
    with app.app_context():
        first = decorators.get_jwks_client()
        assert decorators.get_jwks_client() is first
    assert first.uri == f"{ISSUER}/protocol/openid-connect/certs"


# ─────────────────────────────────────────────────────────────────────────────
# Bearer callers
# ─────────────────────────────────────────────────────────────────────────────
def test_bearer_identity_reaches_operations(client, jwks, rsa_key, admin):
    token = make_token(rsa_key, sub=admin.identity.id)

    response = client.get("/api/rbac/roles", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200


def test_bearer_email_is_lowercased(app, jwks, rsa_key):
    token = make_token(rsa_key)
    with app.test_request_context(headers={"Authorization": f"Bearer {token}"}):
        identity = decorators.current_identity()
    assert identity.email == "admin@example.com"
    assert identity.display_name == "Ada Admin"


def test_invalid_bearer_is_401(client, jwks, rsa_key, admin):
    token = make_token(rsa_key, sub=admin.identity.id, iss="http://evil.test/realms/demo")

    response = client.get("/api/rbac/roles", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.get_json()["message"] == "Invalid bearer token"


def test_bearer_requests_skip_csrf(client, jwks, rsa_key, admin, roles, make_account):
    member = make_account("member@example.com")
    token = make_token(rsa_key, sub=admin.identity.id)

    response = client.put(
        f"/api/rbac/users/{member.account_id}/roles/{roles['user']}",
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 200


def test_bearer_takes_precedence_over_session(client, jwks, rsa_key, admin, make_account):
    member = make_account("member@example.com")
    send_json(client, "POST", "/auth/sign-in", {"email": member.email, "password": member.password})
    token = make_token(rsa_key, sub=admin.identity.id)

    response = client.get("/api/rbac/roles", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200


def test_tagged_response_status(app):
    with app.app_context():
        assert decorators.tagged_response({"success": True}, success_status=201)[1] == 201
        assert decorators.tagged_response({"success": False, "code": "conflict"})[1] == 409
        assert decorators.tagged_response({"success": False, "code": "dependency_error"})[1] == 502
        assert decorators.tagged_response({"success": False, "code": "unknown"})[1] == 400
