"""One-time codes, keyed by (contact, purpose)."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core import signing
from django.db import transaction
from django.utils import timezone

from apps.common.errors import (
    ApiError,
    BusinessRuleViolation,
    Conflict,
    NotFound,
    RateLimited,
    UpstreamFailure,
    ValidationFailed,
)
from apps.common.phone import mask_contact, to_e164
from apps.notifications.api import deliver_now
from apps.notifications.tasks import DeliveryError

from .models import User, VerificationCode

log = logging.getLogger(__name__)

PURPOSE_LABELS = {
    VerificationCode.PURPOSE_REGISTRATION: "verification",
    VerificationCode.PURPOSE_LOGIN: "login",
    VerificationCode.PURPOSE_PASSWORD_RESET: "password reset",
}
RESET_TOKEN_SALT = "accounts.password_reset"


@dataclass(frozen=True)
class Contact:
    channel: str  # sms | email
    value: str

    @property
    def masked(self) -> str:
        return mask_contact(self.value)


@dataclass
class SendResult:
    record: VerificationCode
    code: str

    def as_dict(self) -> dict:
        data = {
            "contact": mask_contact(self.record.contact),
            "channel": self.record.channel,
            "purpose": self.record.purpose,
            "expires_in_minutes": int(getattr(settings, "OTP_EXPIRY_MINUTES", 5)),
            "resend_count": self.record.resend_count,
        }
        if not getattr(settings, "IS_PRODUCTION", False):
            data["otp"] = self.code
        return data


@dataclass
class VerifyResult:
    record: VerificationCode
    user: Optional[User]


def _cooldown() -> int:
    return int(getattr(settings, "OTP_RESEND_COOLDOWN_SECONDS", 60))


def _max_resends() -> int:
    return int(getattr(settings, "OTP_MAX_RESENDS", 5))


def _max_attempts() -> int:
    return int(getattr(settings, "OTP_MAX_ATTEMPTS", 5))


def normalize_contact(*, phone: str = "", email: str = "") -> Contact:
    if phone:
        try:
            return Contact("sms", to_e164(phone))
        except ValueError as e:
            raise ValidationFailed([{"field": "phone", "message": str(e)}])
    if email:
        return Contact("email", email.strip().lower())
    raise ValidationFailed([{"field": "phone", "message": "Provide a phone number or an email address"}])


def user_for_contact(contact: Contact) -> Optional[User]:
    if contact.channel == "sms":
        return User.objects.filter(phone=contact.value).first()
    return User.objects.filter(email__iexact=contact.value).first()


def _pending(contact: Contact, purpose: str):
    return VerificationCode.objects.filter(
        contact=contact.value, purpose=purpose, verified_at__isnull=True, superseded_at__isnull=True
    )


def _latest_locked(contact: Contact, purpose: str):
    return _pending(contact, purpose).select_for_update().order_by("-created_at")


def _cooldown_wait(record: VerificationCode, now) -> int:
    last = record.last_sent_at or record.created_at
    remaining = _cooldown() - (now - last).total_seconds()
    return max(0, math.ceil(remaining))


def _check_send_allowed(contact: Contact, purpose: str, user: Optional[User]) -> None:
    owner = user_for_contact(contact)
    if purpose == VerificationCode.PURPOSE_REGISTRATION:
        if owner is not None and owner != user and contact.channel == "sms" and owner.is_phone_verified:
            raise Conflict("This phone number is already registered and verified")
        return
    if owner is None:
        raise NotFound("No account found for this contact")
    if not owner.is_active:
        raise ApiError("Account is deactivated", status=403, code="ACCOUNT_DEACTIVATED")


def _dispatch(record: VerificationCode, code: str, user: Optional[User]) -> None:
    payload = {
        "code": code,
        "ttl_min": int(getattr(settings, "OTP_EXPIRY_MINUTES", 5)),
        "purpose_label": PURPOSE_LABELS.get(record.purpose, "verification"),
        "name": getattr(user, "name", "") or "",
    }
    try:
        deliver_now(
            type=record.channel,
            to=record.contact,
            template_code=f"otp_{record.purpose}",
            payload=payload,
            recipient=user or record.user,
        )
    except DeliveryError as e:
        if getattr(settings, "IS_PRODUCTION", False):
            record.superseded_at = timezone.now()
            record.save(update_fields=["superseded_at", "updated_at"])
            log.error("[otp] delivery to %s failed: %s", mask_contact(record.contact), e)
            raise UpstreamFailure(
                "Failed to send verification code. Please try again.", status=500, code="DELIVERY_FAILED"
            )
        log.warning("[otp] delivery failed (%s); console fallback, code for %s is %s", e, record.contact, code)
    record.last_sent_at = timezone.now()
    record.save(update_fields=["last_sent_at", "updated_at"])
    log.info("[otp] %s code sent to %s via %s", record.purpose, mask_contact(record.contact), record.channel)


def send_code(contact: Contact, purpose: str, *, user: Optional[User] = None) -> SendResult:
    _check_send_allowed(contact, purpose, user)
    now = timezone.now()
    with transaction.atomic():
        active = _latest_locked(contact, purpose).filter(expires_at__gt=now).first()
        wait = _cooldown_wait(active, now) if active and not active.is_exhausted else 0
        if not wait:
            _pending(contact, purpose).update(superseded_at=now)
            code = VerificationCode.generate_code()
            record = VerificationCode.objects.create(
                user=user or user_for_contact(contact),
                channel=contact.channel,
                contact=contact.value,
                purpose=purpose,
                code_hash=VerificationCode._hash(code),
                max_attempts=_max_attempts(),
                expires_at=VerificationCode.expiry_from(now),
            )
    if wait:
        raise RateLimited(f"Please wait {wait} seconds before requesting another code", wait_seconds=wait)
    _dispatch(record, code, user)
    return SendResult(record, code)


def resend_code(contact: Contact, purpose: str, *, user: Optional[User] = None) -> SendResult:
    now = timezone.now()
    error: Optional[ApiError] = None
    with transaction.atomic():
        record = _latest_locked(contact, purpose).first()
        if record is None:
            error = BusinessRuleViolation("No verification in progress. Request a new code.", code="OTP_NOT_FOUND")
        elif record.resend_count >= _max_resends():
            error = ApiError(
                "Maximum resend attempts reached. Request a new code later.", status=429, code="OTP_RESEND_LIMIT"
            )
        else:
            wait = _cooldown_wait(record, now)
            if wait:
                error = RateLimited(f"Please wait {wait} seconds before requesting another code", wait_seconds=wait)
            else:
                code = VerificationCode.generate_code()
                record.code_hash = VerificationCode._hash(code)
                record.attempts = 0
                record.resend_count += 1
                record.expires_at = VerificationCode.expiry_from(now)
                record.save(update_fields=["code_hash", "attempts", "resend_count", "expires_at", "updated_at"])
    if error is not None:
        raise error
    _dispatch(record, code, user)
    return SendResult(record, code)


def _mark_contact_verified(record: VerificationCode, user: Optional[User]) -> Optional[User]:
    user = user or record.user or user_for_contact(Contact(record.channel, record.contact))
    if user is None:
        return None
    now = timezone.now()
    if record.channel == "sms":
        if user.phone != record.contact:
            if User.objects.filter(phone=record.contact).exclude(pk=user.pk).exists():
                raise Conflict("This phone number belongs to another account")
            user.phone = record.contact
        user.phone_verified_at = now
        user.save(update_fields=["phone", "phone_verified_at", "updated_at"])
    elif user.email == record.contact:
        user.email_verified_at = now
        user.save(update_fields=["email_verified_at", "updated_at"])
    return user


def verify_code(contact: Contact, code: str, purpose: str, *, user: Optional[User] = None) -> VerifyResult:
    """Check ``code``; failed attempts are committed before the error is raised."""
    now = timezone.now()
    error: Optional[ApiError] = None
    with transaction.atomic():
        record = _latest_locked(contact, purpose).first()
        if record is None:
            error = BusinessRuleViolation("No pending verification code. Request a new one.", code="OTP_NOT_FOUND")
        elif record.is_exhausted:
            error = BusinessRuleViolation(
                "Too many failed attempts. Request a new code.", code="OTP_ATTEMPTS_EXCEEDED", attempts_remaining=0
            )
        elif record.is_expired(now):
            error = BusinessRuleViolation("Code expired. Request a new one.", code="OTP_EXPIRED")
        elif not record.matches(code):
            record.attempts += 1
            record.save(update_fields=["attempts", "updated_at"])
            if record.is_exhausted:
                log.warning("[otp] attempts exhausted for %s (%s)", mask_contact(record.contact), purpose)
                error = BusinessRuleViolation(
                    "Too many failed attempts. Request a new code.", code="OTP_ATTEMPTS_EXCEEDED", attempts_remaining=0
                )
            else:
                error = BusinessRuleViolation(
                    "Invalid code", code="OTP_INVALID", attempts_remaining=record.attempts_remaining
                )
        else:
            record.verified_at = now
            record.save(update_fields=["verified_at", "updated_at"])
            verified_user = _mark_contact_verified(record, user)
    if error is not None:
        raise error
    return VerifyResult(record, verified_user)


def make_reset_token(user: User) -> str:
    return signing.dumps({"uid": str(user.id)}, salt=RESET_TOKEN_SALT)


def user_from_reset_token(token: str) -> User:
    max_age = int(getattr(settings, "PASSWORD_RESET_TOKEN_TTL_SECONDS", 900))
    try:
        data = signing.loads(token, salt=RESET_TOKEN_SALT, max_age=max_age)
    except signing.SignatureExpired:
        raise BusinessRuleViolation("Reset token expired", code="RESET_TOKEN_EXPIRED")
    except signing.BadSignature:
        raise BusinessRuleViolation("Invalid reset token", code="RESET_TOKEN_INVALID")
    user = User.objects.filter(pk=data.get("uid")).first()
    if user is None:
        raise BusinessRuleViolation("Invalid reset token", code="RESET_TOKEN_INVALID")
    return user


def verification_status(user: User) -> dict:
    return {
        "phone": mask_contact(user.phone) if user.phone else None,
        "has_phone": bool(user.phone),
        "is_verified": user.is_phone_verified,
        "verified_at": user.phone_verified_at.isoformat() if user.phone_verified_at else None,
        "email_verified": user.email_verified_at is not None,
        "requires_verification": user.requires_phone_verification,
        "is_grandfathered": user.is_grandfathered,
    }
