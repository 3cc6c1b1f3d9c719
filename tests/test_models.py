from datetime import datetime, timezone

from notifier.models import DispatchResult, NotificationRequest, normalize_context


def test_from_payload_accepts_aliases():
    request = NotificationRequest.from_payload({
        "to": "user@example.com",
        "from": "ops@example.com",
        "replyTo": "reply@example.com",
        "subject": "S",
        "body": "B",
    })
    assert request.from_address == "ops@example.com"
    assert request.reply_to == "reply@example.com"
    assert request.context == {}


def test_normalize_context_stringifies_keys_and_scalars():
    stamp = datetime(2025, 11, 10, 12, 0, tzinfo=timezone.utc)
    data = normalize_context({1: ("a", 2), "when": stamp, "nested": {"flag": True, "obj": object}})
    assert data["1"] == ["a", 2]
    assert data["when"] == "2025-11-10T12:00:00+00:00"
    assert data["nested"]["flag"] is True
    assert isinstance(data["nested"]["obj"], str)


def test_dispatch_result_shape():
    ok = DispatchResult.ok(to="a@b.com")
    assert ok.to_dict() == {"success": True, "to": "a@b.com"}
    assert "error" not in ok.to_dict()

    failed = DispatchResult.failure("boom", "DeliveryError", downstream=True)
    assert failed["success"] is False
    assert failed["error"] == "boom"
    assert failed["error_kind"] == "DeliveryError"
    assert failed.downstream
