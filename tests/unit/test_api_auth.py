import smtplib

from app.api.auth import RESET_REQUESTED_MESSAGE
from app.api.helpers.session import SESSION_KEY
from app.core.models import AccountStatus
from tests.conftest import authenticate_as, extract_token, get_csrf_token, send_json


def test_csrf_token_is_stable_per_session(client):
    first = get_csrf_token(client)
    assert first
    assert get_csrf_token(client) == first


def test_post_without_csrf_token_is_rejected(client, admin):
    response = client.post("/auth/sign-in", json={"email": admin.email, "password": admin.password})
    assert response.status_code == 400
    assert response.get_json()["message"] == "CSRF validation failed"


def test_post_with_wrong_csrf_token_is_rejected(client, admin):
    get_csrf_token(client)
    response = client.post(
        "/auth/sign-in",
        json={"email": admin.email, "password": admin.password},
        headers={"X-CSRF-Token": "forged"},
    )
    assert response.status_code == 400


# ─────────────────────────────────────────────────────────────────────────────
# Sign-in / sign-out
# ─────────────────────────────────────────────────────────────────────────────
def test_sign_in_stores_session(client, admin):
    response = send_json(client, "POST", "/auth/sign-in", {"email": "ADMIN@example.com", "password": admin.password})

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["identity"]["id"] == admin.identity.id
    assert body["csrfToken"]
    with client.session_transaction() as session:
        assert session[SESSION_KEY]["identity"]["id"] == admin.identity.id


def test_sign_in_rotates_csrf_token(client, admin):
    before = get_csrf_token(client)
    response = send_json(client, "POST", "/auth/sign-in", {"email": admin.email, "password": admin.password})
    assert response.get_json()["csrfToken"] != before


def test_sign_in_wrong_password(client, admin):
    response = send_json(client, "POST", "/auth/sign-in", {"email": admin.email, "password": "wrong"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_credentials"


def test_sign_in_missing_fields(client):
    response = send_json(client, "POST", "/auth/sign-in", {"email": ""})

    assert response.status_code == 400
    assert response.get_json()["error"] == "validation_error"


def test_sign_in_non_object_body(client):
    response = send_json(client, "POST", "/auth/sign-in", ["not", "an", "object"])
    assert response.status_code == 400


def test_sign_in_blocked_account(client, make_account, identity_provider):
    blocked = make_account("blocked@example.com", status=AccountStatus.BLOCKED)

    response = send_json(client, "POST", "/auth/sign-in", {"email": blocked.email, "password": blocked.password})

    assert response.status_code == 403
    assert response.get_json()["error"] == "blocked"
    assert identity_provider.authenticate_calls == []


def test_sign_out_clears_session_and_ends_provider_session(client, admin, identity_provider):
    send_json(client, "POST", "/auth/sign-in", {"email": admin.email, "password": admin.password})
    assert identity_provider.live_sessions(admin.identity.id) == 1

    response = send_json(client, "POST", "/auth/sign-out")

    assert response.status_code == 200
    assert identity_provider.live_sessions(admin.identity.id) == 0
    with client.session_transaction() as session:
        assert SESSION_KEY not in session


# ─────────────────────────────────────────────────────────────────────────────
# Password reset
# ─────────────────────────────────────────────────────────────────────────────
def test_reset_request_sends_email(client, admin, mailer):
    response = send_json(client, "POST", "/auth/reset-password", {"email": admin.email})

    assert response.status_code == 202
    assert response.get_json()["message"] == RESET_REQUESTED_MESSAGE
    assert [message.to for message in mailer.sent] == [admin.email]


def test_reset_request_for_unknown_email_looks_the_same(client, mailer):
    response = send_json(client, "POST", "/auth/reset-password", {"email": "ghost@example.com"})

    assert response.status_code == 202
    assert response.get_json()["message"] == RESET_REQUESTED_MESSAGE
    assert mailer.sent == []


def test_reset_request_for_blocked_account(client, make_account, mailer):
    blocked = make_account("blocked@example.com", status=AccountStatus.BLOCKED)

    response = send_json(client, "POST", "/auth/reset-password", {"email": blocked.email})

    assert response.status_code == 403
    assert response.get_json()["error"] == "blocked"
    assert mailer.sent == []


def test_reset_request_invalid_email(client):
    response = send_json(client, "POST", "/auth/reset-password", {"email": "not-an-email"})
    assert response.status_code == 400


def test_reset_request_mail_failure(client, admin, mailer):
    mailer.error = smtplib.SMTPServerDisconnected("relay down")

    response = send_json(client, "POST", "/auth/reset-password", {"email": admin.email})

    assert response.status_code == 502
    assert response.get_json()["error"] == "dependency_error"


def test_reset_confirm_sets_password_and_revokes_sessions(client, admin, mailer, identity_provider):
    identity_provider.authenticate(admin.email, admin.password)
    send_json(client, "POST", "/auth/reset-password", {"email": admin.email})
    token = extract_token(mailer.sent[0].html)

    response = send_json(
        client, "POST", "/auth/reset-password/confirm", {"token": token, "password": "BrandNew123!"}
    )

    assert response.status_code == 200
    assert identity_provider.live_sessions(admin.identity.id) == 0
    assert identity_provider.identities[admin.identity.id]["password"] == "BrandNew123!"


def test_reset_confirm_token_from_query_string(client, admin, mailer, identity_provider):
    send_json(client, "POST", "/auth/reset-password", {"email": admin.email})
    token = extract_token(mailer.sent[0].html)

    response = send_json(client, "POST", f"/auth/reset-password/confirm?token={token}", {"password": "BrandNew123!"})

    assert response.status_code == 200


def test_reset_confirm_rejects_reused_token(client, admin, mailer):
    send_json(client, "POST", "/auth/reset-password", {"email": admin.email})
    token = extract_token(mailer.sent[0].html)
    send_json(client, "POST", "/auth/reset-password/confirm", {"token": token, "password": "BrandNew123!"})

    response = send_json(client, "POST", "/auth/reset-password/confirm", {"token": token, "password": "Another123!"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "validation_error"


def test_reset_confirm_requires_token_and_valid_password(client):
    assert send_json(client, "POST", "/auth/reset-password/confirm", {"password": "BrandNew123!"}).status_code == 400
    assert send_json(client, "POST", "/auth/reset-password/confirm", {"token": "x", "password": "short"}).status_code == 400


# ─────────────────────────────────────────────────────────────────────────────
# Password change
# ─────────────────────────────────────────────────────────────────────────────
def test_change_password_requires_identity(client):
    response = send_json(client, "POST", "/auth/change-password", {"currentPassword": "a", "newPassword": "b"})

    assert response.status_code == 401
    assert response.get_json()["error"] == "not_authenticated"


def test_change_password_success(client, admin, identity_provider):
    authenticate_as(client, admin.identity)

    response = send_json(
        client,
        "POST",
        "/auth/change-password",
        {"currentPassword": admin.password, "newPassword": "Changed1234!"},
    )

    assert response.status_code == 200
    assert response.get_json() == {"success": True}
    assert identity_provider.identities[admin.identity.id]["password"] == "Changed1234!"


def test_change_password_wrong_current(client, admin):
    authenticate_as(client, admin.identity)

    response = send_json(
        client,
        "POST",
        "/auth/change-password",
        {"currentPassword": "wrong", "newPassword": "Changed1234!"},
    )

    assert response.status_code == 400
    assert response.get_json()["code"] == "validation_error"
