"""Tests for health check endpoints."""


def test_health_check(client):
    """Liveness answers without touching the database."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.data == b"ok"
    assert response.content_type.startswith("text/plain")


def test_readiness_check(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.data == b"ready"


def test_readiness_check_database_down(client, db, mocker):
    mocker.patch.object(db, "ping", return_value=False)

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.data == b"database unavailable"


def test_unknown_route_is_json(client):
    response = client.get("/does-not-exist")
    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_wrong_method_is_json(client):
    response = client.get("/auth/sign-out")
    assert response.status_code == 405
    assert response.get_json()["error"] == "method_not_allowed"
