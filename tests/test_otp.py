from datetime import timedelta

import pytest
from django.utils import timezone

from apps.accounts.models import User, VerificationCode
from apps.notifications.models import Notification


@pytest.fixture
def fixed_code(monkeypatch):
    monkeypatch.setattr(VerificationCode, "generate_code", classmethod(lambda cls: "123456"))
    return "123456"


def _send(api, phone="9876543210", purpose="registration"):
    return api.post("/api/otp/send", {"phone": phone, "purpose": purpose})


def _verify(api, code, phone="9876543210", purpose="registration"):
    return api.post("/api/otp/verify", {"phone": phone, "code": code, "purpose": purpose})


@pytest.mark.django_db
def test_send_stores_hash_and_masks_contact(api, fixed_code):
    r = _send(api)
    assert r.status_code == 200, r.content
    data = r.json()["data"]
    assert data["contact"] == "987****210"
    assert data["expires_in_minutes"] == 5
    assert data["otp"] == fixed_code

    record = VerificationCode.objects.get(contact="+919876543210")
    assert record.code_hash != fixed_code
    assert len(record.code_hash) == 64
    # the delivered message no longer carries the code
    n = Notification.objects.get(template_code="otp_registration")
    assert n.payload_json["code"] == "******"
    assert n.status == "sent"


@pytest.mark.django_db
def test_code_is_hidden_from_response_in_production(api, fixed_code, settings):
    settings.IS_PRODUCTION = True
    r = _send(api)
    assert r.status_code == 200
    assert "otp" not in r.json()["data"]


@pytest.mark.django_db
def test_verify_marks_phone_verified(api, user, fixed_code):
    _send(api)
    r = _verify(api, fixed_code)
    assert r.status_code == 200, r.content
    assert r.json()["data"]["user"]["is_phone_verified"] is True
    assert "access_token" in r.json()["data"]["tokens"]
    user.refresh_from_db()
    assert user.phone_verified_at is not None


@pytest.mark.django_db
def test_code_expires_after_five_minutes(api, fixed_code, monkeypatch):
    _send(api)
    later = timezone.now() + timedelta(seconds=301)
    monkeypatch.setattr(timezone, "now", lambda: later)
    r = _verify(api, fixed_code)
    assert r.status_code == 400
    assert r.json()["code"] == "OTP_EXPIRED"


@pytest.mark.django_db
def test_five_wrong_codes_burn_the_code(api, fixed_code):
    _send(api)
    for remaining in [4, 3, 2, 1]:
        r = _verify(api, "000000")
        assert r.json()["code"] == "OTP_INVALID"
        assert r.json()["attempts_remaining"] == remaining

    fifth = _verify(api, "000000")
    assert fifth.json()["code"] == "OTP_ATTEMPTS_EXCEEDED"

    sixth = _verify(api, fixed_code)
    assert sixth.status_code == 400
    assert sixth.json()["code"] == "OTP_ATTEMPTS_EXCEEDED"
    assert sixth.json()["attempts_remaining"] == 0
    assert VerificationCode.objects.get().attempts == 5


@pytest.mark.django_db
def test_resend_respects_cooldown_and_limit(api, fixed_code, monkeypatch, settings):
    _send(api)
    r = api.post("/api/otp/resend", {"phone": "9876543210"})
    assert r.status_code == 429
    assert 0 < r.json()["wait_seconds"] <= 60

    settings.OTP_MAX_RESENDS = 1
    later = timezone.now() + timedelta(seconds=61)
    monkeypatch.setattr(timezone, "now", lambda: later)
    ok = api.post("/api/otp/resend", {"phone": "9876543210"})
    assert ok.status_code == 200
    assert ok.json()["data"]["resend_count"] == 1

    even_later = later + timedelta(seconds=61)
    monkeypatch.setattr(timezone, "now", lambda: even_later)
    blocked = api.post("/api/otp/resend", {"phone": "9876543210"})
    assert blocked.status_code == 429
    assert blocked.json()["code"] == "OTP_RESEND_LIMIT"


@pytest.mark.django_db
def test_resend_without_a_session(api):
    r = api.post("/api/otp/resend", {"phone": "9876543210"})
    assert r.status_code == 400
    assert r.json()["code"] == "OTP_NOT_FOUND"


@pytest.mark.django_db
def test_send_again_during_cooldown_is_rate_limited(api, fixed_code):
    _send(api)
    r = _send(api)
    assert r.status_code == 429
    assert r.json()["code"] == "RATE_LIMITED"


@pytest.mark.django_db
def test_login_code_requires_existing_account(api):
    r = _send(api, phone="9123456780", purpose="login")
    assert r.status_code == 404


@pytest.mark.django_db
def test_invalid_phone_is_a_validation_error(api):
    r = _send(api, phone="12")
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_password_reset_via_code(api, user, fixed_code):
    assert _send(api, purpose="password_reset").status_code == 200
    r = _verify(api, fixed_code, purpose="password_reset")
    assert r.status_code == 200
    token = r.json()["data"]["reset_token"]

    r2 = api.post("/api/auth/password-reset", {"reset_token": token, "new_password": "brand-new-pass"})
    assert r2.status_code == 200
    login = api.post("/api/auth/login", {"email": user.email, "password": "brand-new-pass"})
    assert login.status_code == 200


@pytest.mark.django_db
def test_verified_phone_cannot_be_claimed_again(api, user, fixed_code):
    User.objects.filter(pk=user.pk).update(phone_verified_at=timezone.now())
    r = _send(api)
    assert r.status_code == 409


@pytest.mark.django_db
def test_verification_status(api, user):
    r = api.as_user(user).get("/api/otp/status")
    assert r.status_code == 200
    assert r.json()["data"]["phone"] == "987****210"
    assert r.json()["data"]["is_verified"] is False
