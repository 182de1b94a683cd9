from datetime import timedelta

import jwt
import pytest
from django.conf import settings as django_settings
from django.utils import timezone

from apps.accounts.models import RefreshToken, User
from apps.canteens.models import Canteen


def _register(api, **overrides):
    body = {"name": "Asha Rao", "email": "asha@campus.edu", "password": "secret123"}
    body.update(overrides)
    return api.post("/api/auth/register", body)


@pytest.mark.django_db
def test_register_student_returns_tokens(api):
    r = _register(api, email="Asha@Campus.edu", phone="98765 43210")
    assert r.status_code == 201, r.content
    data = r.json()["data"]
    assert data["user"]["email"] == "asha@campus.edu"
    assert data["user"]["role"] == "student"
    assert data["user"]["phone"] == "+919876543210"
    assert data["tokens"]["token_type"] == "Bearer"
    assert data["tokens"]["expires_in"] == 3600

    me = api.get("/api/auth/me", headers={"Authorization": f"Bearer {data['tokens']['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["id"] == data["user"]["id"]


@pytest.mark.django_db
def test_register_partner_creates_closed_unapproved_canteen(api):
    r = _register(api, role="partner", canteen_name="Night Canteen")
    assert r.status_code == 201
    user = User.objects.get(email="asha@campus.edu")
    assert user.is_approved is False
    canteen = Canteen.objects.get(owner=user)
    assert canteen.name == "Night Canteen"
    assert canteen.is_open is False
    assert canteen.is_approved is False
    assert r.json()["data"]["user"]["canteen_id"] == str(canteen.id)


@pytest.mark.django_db
def test_duplicate_email_conflicts(api):
    _register(api)
    r = _register(api, email="ASHA@campus.edu")
    assert r.status_code == 409


@pytest.mark.django_db
def test_register_validates_body(api):
    r = _register(api, password="123", email="not-an-email")
    assert r.status_code == 400
    fields = {d["field"] for d in r.json()["details"]}
    assert fields == {"password", "email"}


@pytest.mark.django_db
def test_login_errors(api, user):
    bad = api.post("/api/auth/login", {"email": user.email, "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json()["code"] == "INVALID_CREDENTIALS"

    user.is_active = False
    user.save()
    inactive = api.post("/api/auth/login", {"email": user.email, "password": "secret123"})
    assert inactive.status_code == 403
    assert inactive.json()["code"] == "ACCOUNT_DEACTIVATED"


@pytest.mark.django_db
def test_refresh_rotates_and_rejects_reuse(api, user):
    tokens = api.post("/api/auth/login", {"email": user.email, "password": "secret123"}).json()["data"]["tokens"]
    r = api.post("/api/auth/refresh", {"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200
    assert r.json()["data"]["tokens"]["refresh_token"] != tokens["refresh_token"]

    reused = api.post("/api/auth/refresh", {"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401
    assert reused.json()["code"] == "TOKEN_REVOKED"


@pytest.mark.django_db
def test_expired_and_garbage_access_tokens(api, user):
    past = timezone.now() - timedelta(hours=2)
    expired = jwt.encode(
        {"sub": str(user.id), "type": "access", "iat": past, "exp": past + timedelta(hours=1)},
        django_settings.JWT_SECRET,
        algorithm="HS256",
    )
    r = api.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_EXPIRED"

    r2 = api.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert r2.json()["code"] == "INVALID_TOKEN"


@pytest.mark.django_db
def test_deactivated_user_token_is_refused(api, user):
    api.as_user(user)
    User.objects.filter(pk=user.pk).update(is_active=False)
    r = api.get("/api/auth/me")
    assert r.status_code == 403
    assert r.json()["code"] == "USER_INACTIVE"


@pytest.mark.django_db
def test_logout_everywhere_revokes_all_refresh_tokens(api, user):
    for _ in range(2):
        api.post("/api/auth/login", {"email": user.email, "password": "secret123"})
    r = api.as_user(user).post("/api/auth/logout", {"logout_all": True})
    assert r.status_code == 200
    assert r.json()["revoked_all"] is True
    assert not RefreshToken.objects.filter(user=user, revoked_at__isnull=True).exists()


@pytest.mark.django_db
def test_profile_phone_change_resets_verification(api, user):
    User.objects.filter(pk=user.pk).update(phone_verified_at=timezone.now())
    r = api.as_user(user).put("/api/auth/profile", {"phone": "+91 91234 56780", "name": "Asha R"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["phone"] == "+919123456780"
    assert data["name"] == "Asha R"
    assert data["is_phone_verified"] is False


@pytest.mark.django_db
def test_password_change_revokes_sessions(api, user):
    old = api.post("/api/auth/login", {"email": user.email, "password": "secret123"}).json()["data"]["tokens"]
    r = api.as_user(user).put("/api/auth/password", {"current_password": "secret123", "new_password": "another-one"})
    assert r.status_code == 200
    assert api.post("/api/auth/refresh", {"refresh_token": old["refresh_token"]}).status_code == 401


@pytest.mark.django_db
def test_admin_setup_only_once(api):
    body = {"name": "Root Admin", "email": "root@campus.edu", "password": "supersecret"}
    wrong = api.post("/api/auth/admin-setup", body, headers={"X-Admin-Setup-Key": "nope"})
    assert wrong.status_code == 403

    r = api.post("/api/auth/admin-setup", body, headers={"X-Admin-Setup-Key": "test-setup-key"})
    assert r.status_code == 201
    assert r.json()["data"]["user"]["role"] == "admin"

    again = api.post(
        "/api/auth/admin-setup", {**body, "email": "second@campus.edu"}, headers={"X-Admin-Setup-Key": "test-setup-key"}
    )
    assert again.status_code == 409
    assert again.json()["code"] == "ADMIN_EXISTS"


@pytest.mark.django_db
def test_malformed_json_is_a_validation_error(api):
    r = api.post("/api/auth/login", "{not json")
    assert r.status_code == 400
    assert r.json()["details"] == [{"field": "body", "message": "Invalid JSON"}]
