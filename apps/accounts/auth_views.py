from __future__ import annotations

import hmac
import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.http import HttpRequest
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.canteens.models import Canteen
from apps.common.errors import ApiError, AuthenticationFailed, Conflict, PermissionDenied
from apps.common.http import client_ip, ok, parse_json, validate
from apps.common.policy import guard
from apps.common.rate_limit import enforce

from .forms import (
    AdminSetupForm,
    LoginForm,
    LogoutForm,
    PasswordChangeForm,
    PasswordResetForm,
    ProfileForm,
    RefreshForm,
    RegisterForm,
)
from .models import RefreshToken, User
from .otp import user_from_reset_token
from .serializers import serialize_user
from .tokens import issue_token_pair, revoke_refresh_token, rotate_refresh_token

log = logging.getLogger(__name__)


def _auth_response(request: HttpRequest, user: User, *, status: int = 200):
    pair = issue_token_pair(user, request=request)
    return ok({"user": serialize_user(user), "tokens": pair.as_dict()}, status=status)


@csrf_exempt
@require_POST
def register(request: HttpRequest):
    enforce("register", client_ip(request), limit=10, window_seconds=3600, message="Too many sign-ups")
    form = validate(RegisterForm, parse_json(request))
    data = form.cleaned_data
    if User.objects.filter(email__iexact=data["email"]).exists():
        raise Conflict("Email already registered")
    is_partner = data["role"] == User.ROLE_PARTNER
    try:
        with transaction.atomic():
            user = User.objects.create_user(
                username=data["email"],
                email=data["email"],
                password=data["password"],
                name=data["name"],
                phone=data.get("phone"),
                role=data["role"],
                is_approved=not is_partner,
            )
            if is_partner:
                Canteen.objects.create(
                    owner=user,
                    name=data.get("canteen_name") or f"{data['name']}'s Canteen",
                    is_open=False,
                    is_approved=False,
                )
    except IntegrityError:
        raise Conflict("Email or phone already registered")
    log.info("[auth] registered user=%s role=%s", user.id, user.role)
    return _auth_response(request, user, status=201)


@csrf_exempt
@require_POST
def login(request: HttpRequest):
    enforce("login", client_ip(request), limit=20, window_seconds=60, message="Too many login attempts")
    form = validate(LoginForm, parse_json(request))
    email = form.cleaned_data["email"]
    user = User.objects.filter(email__iexact=email).first()
    if user is None or not user.check_password(form.cleaned_data["password"]):
        log.info("[auth] failed login for %s", email)
        raise AuthenticationFailed("Invalid email or password", code="INVALID_CREDENTIALS")
    if not user.is_active:
        raise PermissionDenied("Account is deactivated", code="ACCOUNT_DEACTIVATED")
    user.last_login = timezone.now()
    user.save(update_fields=["last_login", "updated_at"])
    return _auth_response(request, user)


@csrf_exempt
@require_POST
def refresh(request: HttpRequest):
    form = validate(RefreshForm, parse_json(request))
    user, pair = rotate_refresh_token(form.cleaned_data["refresh_token"], request=request)
    return ok({"user": serialize_user(user), "tokens": pair.as_dict()})


@csrf_exempt
@require_POST
@guard("auth.logout", optional=True)
def logout(request: HttpRequest):
    form = validate(LogoutForm, parse_json(request))
    token = form.cleaned_data.get("refresh_token")
    owner = revoke_refresh_token(token) if token else None
    target = request.user if request.user.is_authenticated else owner
    revoked_all = False
    if form.cleaned_data.get("logout_all") and target is not None:
        RefreshToken.revoke_all_for(target)
        revoked_all = True
        log.info("[auth] logout everywhere for user=%s", target.id)
    return ok(message="Logged out", revoked_all=revoked_all)


@require_GET
@guard("auth.me")
def me(request: HttpRequest):
    return ok(serialize_user(request.user))


@csrf_exempt
@require_http_methods(["PUT", "PATCH"])
@guard("auth.profile")
def update_profile(request: HttpRequest):
    user = request.user
    form = validate(ProfileForm, parse_json(request), user=user)
    fields = []
    if form.cleaned_data.get("name"):
        user.name = form.cleaned_data["name"]
        fields.append("name")
    if "phone" in form.data:
        new_phone = form.cleaned_data.get("phone")
        if new_phone != user.phone:
            user.phone = new_phone
            user.phone_verified_at = None
            fields += ["phone", "phone_verified_at"]
    if fields:
        user.save(update_fields=[*fields, "updated_at"])
    return ok(serialize_user(user))


@csrf_exempt
@require_http_methods(["PUT", "POST"])
@guard("auth.password")
def change_password(request: HttpRequest):
    form = validate(PasswordChangeForm, parse_json(request))
    user = request.user
    if not user.check_password(form.cleaned_data["current_password"]):
        raise AuthenticationFailed("Current password is incorrect", code="INVALID_CREDENTIALS")
    user.set_password(form.cleaned_data["new_password"])
    user.save(update_fields=["password", "updated_at"])
    RefreshToken.revoke_all_for(user)
    log.info("[auth] password changed for user=%s", user.id)
    return _auth_response(request, user)


@csrf_exempt
@require_POST
def reset_password(request: HttpRequest):
    form = validate(PasswordResetForm, parse_json(request))
    user = user_from_reset_token(form.cleaned_data["reset_token"])
    user.set_password(form.cleaned_data["new_password"])
    user.save(update_fields=["password", "updated_at"])
    RefreshToken.revoke_all_for(user)
    log.info("[auth] password reset for user=%s", user.id)
    return ok(message="Password updated")


@csrf_exempt
@require_POST
def admin_setup(request: HttpRequest):
    """Create the first admin. Needs ``X-Admin-Setup-Key`` and no existing admin."""
    expected = getattr(settings, "ADMIN_SETUP_KEY", "")
    provided = request.headers.get("X-Admin-Setup-Key", "")
    if not expected or not hmac.compare_digest(provided, expected):
        log.warning("[auth] admin setup attempted with invalid key from %s", client_ip(request))
        raise PermissionDenied("Invalid setup key")
    if User.objects.filter(role=User.ROLE_ADMIN).exists():
        raise ApiError("Admin already exists", status=409, code="ADMIN_EXISTS")
    form = validate(AdminSetupForm, parse_json(request))
    data = form.cleaned_data
    if User.objects.filter(email__iexact=data["email"]).exists():
        raise Conflict("Email already registered")
    user = User.objects.create_user(
        username=data["email"],
        email=data["email"],
        password=data["password"],
        name=data["name"],
        role=User.ROLE_ADMIN,
        is_staff=True,
        is_superuser=True,
    )
    log.info("[auth] bootstrap admin created user=%s", user.id)
    return _auth_response(request, user, status=201)
