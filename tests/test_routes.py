import json

import app
from notifier.channels import MemoryChannel

from helpers import ISSUE_CONTEXT, FailingChannel, make_engine


def install_engine(monkeypatch, channel=None, **settings):
    engine = make_engine(channel if channel is not None else MemoryChannel(), **settings)
    monkeypatch.setattr(app, "get_engine", lambda: engine)
    return engine


def post_json(client, path, payload=None):
    return client.post(path, data=json.dumps(payload or {}), content_type="application/json")


def test_health(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        response = client.get("/health")
    data = response.get_json()
    assert response.status_code == 200
    assert data["status"] == "healthy"
    assert data["service"] == "email-notifications"
    assert data["version"] == "1.0.0"
    assert data["smtp_configured"] is False


def test_send_success(monkeypatch):
    engine = install_engine(monkeypatch)
    with app.app.test_client() as client:
        response = post_json(client, "/send", {"to": "user@example.com", "subject": "Test Subject", "body": "Test Body"})
    data = response.get_json()
    assert response.status_code == 200
    assert data["success"] is True
    assert data["subject"] == "Test Subject"
    assert engine.channel.deliveries[0].body == "Test Body"


def test_send_passes_tenant_headers(monkeypatch):
    engine = install_engine(monkeypatch)
    seen = {}
    real_send = engine.send

    def spy(payload, context):
        seen["tenant"] = context.tenant_id
        seen["user"] = context.user_id
        return real_send(payload, context)

    monkeypatch.setattr(engine, "send", spy)
    with app.app.test_client() as client:
        client.post(
            "/send",
            data=json.dumps({"to": "user@example.com", "subject": "S", "body": "B"}),
            content_type="application/json",
            headers={"X-Tenant-Id": "org-1", "X-User-Id": "user-9"},
        )
    assert seen == {"tenant": "org-1", "user": "user-9"}


def test_send_template(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        response = post_json(client, "/send", {"to": "user@example.com", "template": "issue_created", "context": ISSUE_CONTEXT})
    assert response.get_json()["subject"] == "New issue: Bug in login"


def test_policy_errors_are_400(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        missing = post_json(client, "/send", {"subject": "Test", "body": "Body"})
        invalid = post_json(client, "/send", {"to": "invalid-email", "subject": "Test", "body": "Body"})
        unknown = post_json(client, "/send", {"to": "user@example.com", "template": "unknown_template"})
    assert missing.status_code == 400
    assert "Recipient" in missing.get_json()["error"]
    assert invalid.status_code == 400
    assert "Invalid email" in invalid.get_json()["error"]
    assert unknown.status_code == 400
    assert "not found" in unknown.get_json()["error"]


def test_invalid_json(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        response = client.post("/send", data="invalid json", content_type="application/json")
    assert response.status_code == 400
    assert "Invalid JSON" in response.get_json()["error"]


def test_rate_limit_over_http(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        for i in range(21):
            response = post_json(client, "/send", {"to": f"user{i}@example.com", "subject": "Test", "body": "Body"})
    assert response.status_code == 400
    assert "Rate limit exceeded" in response.get_json()["error"]


def test_delivery_error_is_502(monkeypatch):
    install_engine(monkeypatch, FailingChannel())
    with app.app.test_client() as client:
        response = post_json(client, "/send", {"to": "user@example.com", "subject": "S", "body": "B"})
    assert response.status_code == 502
    assert response.get_json()["error"].startswith("Email delivery error")


def test_suppression_over_http(monkeypatch):
    engine = install_engine(monkeypatch)
    with app.app.test_client() as client:
        post_json(client, "/preferences/update", {"email": "suppressed@example.com", "suppressed": True})
        response = post_json(client, "/send", {"to": "suppressed@example.com", "subject": "Test", "body": "Body"})
    data = response.get_json()
    assert response.status_code == 200
    assert data["suppressed"] is True
    assert engine.channel.deliveries == []


def test_digest_queue_and_send(monkeypatch):
    engine = install_engine(monkeypatch)
    with app.app.test_client() as client:
        for title, address in (("Bug 1", "user1@example.com"), ("Bug 2", "user1@example.com"), ("Bug 3", "user2@example.com")):
            queued = post_json(client, "/digest/queue", {"to": address, "template": "issue_created", "context": {"issue": {"title": title}}})
        assert queued.get_json()["queued_count"] == 1

        response = client.post("/digest/send")
        data = response.get_json()
        assert response.status_code == 200
        assert data["digests_sent"] == 2

        user1 = next(m for m in engine.channel.deliveries if m.to == "user1@example.com")
        assert "2 updates" in user1.subject

        engine.channel.clear()
        client.post("/digest/send")
        assert engine.channel.deliveries == []


def test_preferences_round_trip(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        updated = post_json(client, "/preferences/update", {"email": " User@Example.COM ", "suppressed": True, "frequency": "weekly"})
        checked = post_json(client, "/preferences/check", {"email": "user@example.com"})
        missing = post_json(client, "/preferences/update", {"suppressed": True})
    assert updated.get_json()["email"] == "user@example.com"
    assert checked.get_json()["preferences"]["frequency"] == "weekly"
    assert missing.status_code == 400
    assert "required" in missing.get_json()["error"]


def test_template_validate(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        good = post_json(client, "/template/validate", {"template": "Hello {{ name }}"})
        bad = post_json(client, "/template/validate", {"template": "Hello {{ name"})
    assert good.status_code == 200
    assert good.get_json()["valid"] is True
    assert bad.status_code == 400
    assert bad.get_json()["valid"] is False


def test_truncated_json_is_rejected(monkeypatch):
    engine = install_engine(monkeypatch)
    with app.app.test_client() as client:
        response = client.post("/digest/queue", data='{"to": "a@b.com"', content_type="application/json")
    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": "Invalid JSON in request body"}
    assert engine.digest_queue.drain() == {}


def test_empty_body_is_an_empty_payload(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        response = client.post("/send", data="", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["error_kind"] == "MissingRecipient"


def test_non_string_recipient_over_http(monkeypatch):
    install_engine(monkeypatch)
    with app.app.test_client() as client:
        response = post_json(client, "/digest/queue", {"to": ["a@b.com"], "subject": "S", "body": "B"})
    assert response.status_code == 400
    assert response.get_json()["error_kind"] == "InvalidAddress"
