from __future__ import annotations

import logging

from django.http import HttpRequest
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from apps.common.errors import NotFound, PermissionDenied
from apps.common.http import client_ip, ok, parse_json, validate
from apps.common.policy import guard
from apps.common.rate_limit import enforce

from . import otp
from .forms import OtpSendForm, OtpVerifyForm
from .models import VerificationCode
from .serializers import serialize_user
from .tokens import issue_token_pair

log = logging.getLogger(__name__)


def _acting_user(request: HttpRequest):
    return request.user if request.user.is_authenticated else None


def _contact_from(form) -> otp.Contact:
    return otp.normalize_contact(phone=form.cleaned_data.get("phone") or "", email=form.cleaned_data.get("email") or "")


@csrf_exempt
@require_POST
@guard("otp.send", optional=True)
def send(request: HttpRequest):
    enforce("otp_send", client_ip(request), limit=10, window_seconds=600, message="Too many code requests")
    form = validate(OtpSendForm, parse_json(request))
    result = otp.send_code(_contact_from(form), form.cleaned_data["purpose"], user=_acting_user(request))
    return ok(result.as_dict(), message="Verification code sent")


@csrf_exempt
@require_POST
@guard("otp.send", optional=True)
def resend(request: HttpRequest):
    enforce("otp_send", client_ip(request), limit=10, window_seconds=600, message="Too many code requests")
    form = validate(OtpSendForm, parse_json(request))
    result = otp.resend_code(_contact_from(form), form.cleaned_data["purpose"], user=_acting_user(request))
    return ok(result.as_dict(), message="Verification code resent")


@csrf_exempt
@require_POST
@guard("otp.send", optional=True)
def verify(request: HttpRequest):
    form = validate(OtpVerifyForm, parse_json(request))
    contact = _contact_from(form)
    purpose = form.cleaned_data["purpose"]
    result = otp.verify_code(contact, form.cleaned_data["code"], purpose, user=_acting_user(request))
    user = result.user
    data = {"verified": True, "purpose": purpose, "contact": contact.masked}

    if purpose == VerificationCode.PURPOSE_PASSWORD_RESET:
        if user is None:
            raise NotFound("No account found for this contact")
        data["reset_token"] = otp.make_reset_token(user)
        return ok(data)

    if purpose == VerificationCode.PURPOSE_LOGIN and user is None:
        raise NotFound("No account found for this contact")
    if user is not None:
        if not user.is_active:
            raise PermissionDenied("Account is deactivated", code="ACCOUNT_DEACTIVATED")
        data["user"] = serialize_user(user)
        data["tokens"] = issue_token_pair(user, request=request).as_dict()
        log.info("[otp] %s completed for user=%s", purpose, user.id)
    return ok(data)


@require_GET
@guard("otp.status")
def status(request: HttpRequest):
    return ok(otp.verification_status(request.user))
