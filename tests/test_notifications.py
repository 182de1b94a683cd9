import json

import pytest
import requests

from apps.accounts.models import VerificationCode
from apps.notifications import tasks
from apps.notifications.api import deliver_now, enqueue
from apps.notifications.models import Notification, Template
from apps.notifications.tasks import DeliveryError, render_template, send_notification


class DummyResponse:
    def __init__(self, status_code, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.headers = headers or {}
        self.text = json.dumps(self._payload)

    def json(self):
        return self._payload


@pytest.fixture
def live_providers(settings, monkeypatch):
    settings.NOTIF_DEV_MODE = False
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "tok")
    monkeypatch.setenv("TWILIO_SMS_FROM", "+15005550006")
    calls = []

    def _post(url, **kw):
        calls.append((url, kw))
        return _post.response

    _post.response = DummyResponse(201, {"sid": "SM1"})
    monkeypatch.setattr(tasks.requests, "post", _post)
    return _post, calls


@pytest.mark.django_db
def test_default_templates_render_and_can_be_overridden():
    out = render_template("order_status", "email", {"order_id": "ORD-1", "status": "Ready", "canteen": "Main"})
    assert out["subject"] == "Order ORD-1: Ready"
    assert "is now Ready" in out["text"]

    Template.objects.create(code="order_status", channel="sms", body_txt="{{ order_id }} -> {{ status }}")
    assert render_template("order_status", "sms", {"order_id": "ORD-1", "status": "Ready"}) == {"text": "ORD-1 -> Ready"}


@pytest.mark.django_db
def test_enqueue_is_idempotent():
    a = enqueue(type="email", to="a@campus.edu", template_code="order_status", payload={}, idempotency_key="k1")
    b = enqueue(type="email", to="a@campus.edu", template_code="order_status", payload={}, idempotency_key="k1")
    assert a.pk == b.pk
    assert Notification.objects.count() == 1


@pytest.mark.django_db
def test_task_delivers_in_dev_mode():
    n = Notification.objects.create(type="sms", to="+919876543210", template_code="order_status", payload_json={})
    send_notification.apply(args=[str(n.id)])
    n.refresh_from_db()
    assert n.status == "sent"
    assert n.provider == "dev"
    assert n.attempts == 1
    assert n.attempts_log.get().result == "ok"


@pytest.mark.django_db
def test_twilio_send_records_message_id(live_providers):
    post, calls = live_providers
    n = deliver_now(type="sms", to="+919876543210", template_code="otp_login", payload={"code": "4242", "ttl_min": 5})
    assert n.provider == "twilio"
    assert n.provider_message_id == "SM1"
    assert "4242" in calls[0][1]["data"]["Body"]
    n.refresh_from_db()
    assert n.payload_json["code"] == "******"
    assert n.recipient is None


@pytest.mark.django_db
def test_provider_outage_surfaces_as_delivery_error(live_providers):
    post, _ = live_providers
    post.response = DummyResponse(503)
    with pytest.raises(DeliveryError):
        deliver_now(type="sms", to="+919876543210", template_code="otp_login", payload={"code": "1"})
    assert Notification.objects.get().status == "failed"


@pytest.mark.django_db
def test_otp_delivery_failure_in_production(api, live_providers, settings):
    post, _ = live_providers
    post.response = DummyResponse(400, {"message": "bad number"})
    settings.IS_PRODUCTION = True
    r = api.post("/api/otp/send", {"phone": "9876543210"})
    assert r.status_code == 500
    assert r.json()["code"] == "DELIVERY_FAILED"
    assert VerificationCode.objects.get().superseded_at is not None


@pytest.mark.django_db
def test_otp_delivery_failure_outside_production_falls_back(api, live_providers, monkeypatch):
    monkeypatch.setattr(tasks.requests, "post", _raise_connection_error)
    r = api.post("/api/otp/send", {"phone": "9876543210"})
    assert r.status_code == 200
    assert VerificationCode.objects.get().superseded_at is None


def _raise_connection_error(*args, **kwargs):
    raise requests.ConnectionError("offline")


@pytest.mark.django_db
def test_twilio_status_callback_marks_delivered(client):
    n = Notification.objects.create(
        type="sms", to="+919876543210", template_code="otp_login", provider="twilio", provider_message_id="SM9", status="sent"
    )
    r = client.post("/api/webhooks/twilio/sms-status", {"MessageSid": "SM9", "MessageStatus": "delivered"})
    assert r.status_code == 200
    n.refresh_from_db()
    assert n.status == "delivered"
    assert n.delivered_at is not None


@pytest.mark.django_db
def test_unsigned_callbacks_rejected_in_production(client, settings):
    settings.IS_PRODUCTION = True
    r = client.post("/api/webhooks/twilio/sms-status", {"MessageSid": "SM9", "MessageStatus": "delivered"})
    assert r.status_code == 403


@pytest.mark.django_db
def test_sendgrid_bounce_event(client):
    n = Notification.objects.create(
        type="email", to="a@campus.edu", template_code="order_status", provider="sendgrid", provider_message_id="abc", status="sent"
    )
    events = [{"sg_message_id": "abc.filter001", "event": "bounce", "reason": "mailbox full"}]
    r = client.post("/api/webhooks/sendgrid/email-events", json.dumps(events), content_type="application/json")
    assert r.status_code == 200
    n.refresh_from_db()
    assert n.status == "bounced"
    assert n.error_message == "mailbox full"
