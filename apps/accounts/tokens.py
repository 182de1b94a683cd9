from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta

import jwt
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.common.errors import AuthenticationFailed, PermissionDenied
from apps.common.http import client_ip

from .models import RefreshToken, User

log = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int

    def as_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "expires_in": self.expires_in,
        }


def _algorithm() -> str:
    return getattr(settings, "JWT_ALGORITHM", "HS256")


def _access_ttl() -> int:
    return int(getattr(settings, "JWT_ACCESS_TTL_SECONDS", 3600))


def _canteen_id(user) -> str | None:
    canteen = getattr(user, "canteen", None)
    return str(canteen.id) if canteen is not None else None


def issue_access_token(user: User) -> str:
    now = timezone.now()
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "email": user.email,
        "canteen_id": _canteen_id(user),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_access_ttl()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=_algorithm())


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[_algorithm()])
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Token expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationFailed("Invalid token", code="INVALID_TOKEN")
    if payload.get("type") != "access":
        raise AuthenticationFailed("Invalid token", code="INVALID_TOKEN")
    return payload


def _load_user(sub) -> User | None:
    try:
        pk = uuid.UUID(str(sub))
    except ValueError:
        return None
    return User.objects.filter(pk=pk).first()


def user_from_access_token(token: str) -> User:
    payload = decode_access_token(token)
    user = _load_user(payload.get("sub"))
    if user is None:
        raise AuthenticationFailed("Invalid token", code="INVALID_TOKEN")
    if not user.is_active:
        raise PermissionDenied("Account is deactivated", code="USER_INACTIVE")
    return user


def issue_token_pair(user: User, *, request=None) -> TokenPair:
    now = timezone.now()
    expires_at = now + timedelta(days=int(getattr(settings, "JWT_REFRESH_TTL_DAYS", 7)))
    jti = secrets.token_hex(16)
    RefreshToken.objects.create(
        user=user,
        jti=jti,
        expires_at=expires_at,
        ip_address=client_ip(request) if request is not None else "",
        user_agent=(request.headers.get("User-Agent", "") if request is not None else "")[:255],
    )
    refresh = jwt.encode(
        {"sub": str(user.id), "jti": jti, "type": "refresh", "iat": now, "exp": expires_at},
        settings.JWT_REFRESH_SECRET,
        algorithm=_algorithm(),
    )
    return TokenPair(access_token=issue_access_token(user), refresh_token=refresh, expires_in=_access_ttl())


def _decode_refresh(token: str, *, verify_exp: bool = True) -> dict:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_REFRESH_SECRET,
            algorithms=[_algorithm()],
            options={"verify_exp": verify_exp},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Refresh token expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise AuthenticationFailed("Invalid refresh token", code="INVALID_REFRESH_TOKEN")
    if payload.get("type") != "refresh" or not payload.get("jti"):
        raise AuthenticationFailed("Invalid refresh token", code="INVALID_REFRESH_TOKEN")
    return payload


def rotate_refresh_token(token: str, *, request=None) -> tuple[User, TokenPair]:
    """Exchange a live refresh token for a new pair, revoking the old one."""
    payload = _decode_refresh(token)
    with transaction.atomic():
        record = (
            RefreshToken.objects.select_for_update()
            .select_related("user")
            .filter(jti=payload["jti"])
            .first()
        )
        if record is None:
            raise AuthenticationFailed("Invalid refresh token", code="INVALID_REFRESH_TOKEN")
        if record.revoked_at is not None:
            log.warning("[auth] revoked refresh token presented for user=%s", record.user_id)
            raise AuthenticationFailed("Refresh token has been revoked", code="TOKEN_REVOKED")
        user = record.user
        if not user.is_active:
            raise PermissionDenied("Account is deactivated", code="USER_INACTIVE")
        record.revoked_at = timezone.now()
        record.save(update_fields=["revoked_at", "updated_at"])
        pair = issue_token_pair(user, request=request)
    return user, pair


def revoke_refresh_token(token: str) -> User | None:
    """Revoke one refresh token; returns its owner, or None if it was unknown."""
    try:
        payload = _decode_refresh(token, verify_exp=False)
    except AuthenticationFailed:
        return None
    record = RefreshToken.objects.select_related("user").filter(jti=payload["jti"]).first()
    if record is None:
        return None
    if record.revoked_at is None:
        record.revoked_at = timezone.now()
        record.save(update_fields=["revoked_at", "updated_at"])
    return record.user
