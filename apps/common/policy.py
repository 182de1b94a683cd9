from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps

from django.contrib.auth.models import AnonymousUser

from .errors import AuthenticationFailed, PermissionDenied

log = logging.getLogger(__name__)

STUDENT = "student"
PARTNER = "partner"
ADMIN = "admin"
ANY_ROLE = frozenset({STUDENT, PARTNER, ADMIN})


@dataclass(frozen=True)
class Rule:
    roles: frozenset
    approved_only: bool = False


POLICY: dict[str, Rule] = {
    # account
    "auth.me": Rule(ANY_ROLE),
    "auth.profile": Rule(ANY_ROLE),
    "auth.password": Rule(ANY_ROLE),
    "auth.logout": Rule(ANY_ROLE),
    "otp.send": Rule(ANY_ROLE),
    "otp.status": Rule(ANY_ROLE),
    # customer ordering
    "order.create": Rule(ANY_ROLE),
    "order.pay": Rule(ANY_ROLE),
    "order.list_own": Rule(ANY_ROLE),
    "order.view": Rule(ANY_ROLE),
    "order.cancel": Rule(ANY_ROLE),
    "review.create": Rule(ANY_ROLE),
    "review.view": Rule(ANY_ROLE),
    "canteen.menu": Rule(ANY_ROLE),
    # canteen operator
    "partner.canteen.view": Rule(frozenset({PARTNER})),
    "partner.canteen.update": Rule(frozenset({PARTNER})),
    "partner.canteen.toggle": Rule(frozenset({PARTNER}), approved_only=True),
    "partner.menu.view": Rule(frozenset({PARTNER})),
    "partner.menu.create": Rule(frozenset({PARTNER}), approved_only=True),
    "partner.menu.update": Rule(frozenset({PARTNER})),
    "partner.orders.view": Rule(frozenset({PARTNER}), approved_only=True),
    "partner.orders.update": Rule(frozenset({PARTNER}), approved_only=True),
    "partner.stats": Rule(frozenset({PARTNER})),
    # administration
    "admin.users": Rule(frozenset({ADMIN})),
    "admin.canteens": Rule(frozenset({ADMIN})),
    "admin.orders": Rule(frozenset({ADMIN})),
    "admin.audit": Rule(frozenset({ADMIN})),
}


def _bearer_token(request) -> str:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return ""


def authenticate_request(request, *, optional: bool = False):
    from apps.accounts.tokens import user_from_access_token

    token = _bearer_token(request)
    if not token:
        if optional:
            return None
        raise AuthenticationFailed("Authentication required")
    try:
        return user_from_access_token(token)
    except (AuthenticationFailed, PermissionDenied):
        if optional:
            return None
        raise


def authorize(user, action: str, request=None) -> None:
    rule = POLICY[action]
    if user.role not in rule.roles:
        log.warning(
            "[policy] denied %s for user=%s role=%s path=%s",
            action,
            user.pk,
            user.role,
            getattr(request, "path", ""),
        )
        raise PermissionDenied("You do not have permission to perform this action")
    if rule.approved_only and user.role == PARTNER and not user.is_approved:
        raise PermissionDenied("Your account is pending approval", code="NOT_APPROVED")


def guard(action: str, *, optional: bool = False):
    if action not in POLICY:
        raise KeyError(f"unknown policy action {action!r}")

    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            user = authenticate_request(request, optional=optional)
            if user is not None:
                authorize(user, action, request)
            request.user = user or AnonymousUser()
            return view(request, *args, **kwargs)

        return wrapper

    return decorator
