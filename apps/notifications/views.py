"""Provider delivery-status callbacks (Twilio SMS, SendGrid email)."""
import base64
import hashlib
import hmac
import json
import logging
import os

import nacl.exceptions
import nacl.signing
from django.conf import settings
from django.http import HttpResponse, HttpResponseBadRequest, HttpResponseForbidden
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from .models import Notification

log = logging.getLogger(__name__)


def _unsigned_allowed() -> bool:
    return not getattr(settings, "IS_PRODUCTION", False)


def _twilio_signature_ok(request) -> bool:
    token = os.getenv("TWILIO_AUTH_TOKEN", "")
    if not token:
        return False
    signature = request.headers.get("X-Twilio-Signature", "")
    # url + sorted form params, HMAC-SHA1, base64
    items = sorted(request.POST.items())
    s = request.build_absolute_uri() + "".join(k + v for k, v in items)
    expected = base64.b64encode(hmac.new(token.encode(), s.encode(), hashlib.sha1).digest()).decode()
    return hmac.compare_digest(signature, expected)


def _sendgrid_signature_ok(request) -> bool:
    pubkey = os.getenv("SENDGRID_WEBHOOK_PUBLIC_KEY", "")
    if not pubkey:
        return False
    sig = request.headers.get("X-Twilio-Email-Event-Webhook-Signature", "")
    ts = request.headers.get("X-Twilio-Email-Event-Webhook-Timestamp", "")
    try:
        verify_key = nacl.signing.VerifyKey(base64.b64decode(pubkey))
        verify_key.verify(ts.encode() + request.body, base64.b64decode(sig))
    except (nacl.exceptions.BadSignatureError, ValueError):
        return False
    return True


def _apply_status(n: Notification, status: str, **extra) -> None:
    fields = ["status", "updated_at", *extra.keys()]
    for k, v in extra.items():
        setattr(n, k, v)
    n.status = status
    n.save(update_fields=fields)


@csrf_exempt
@require_POST
def twilio_sms_status(request):
    if not _twilio_signature_ok(request) and not _unsigned_allowed():
        log.warning("Twilio callback with invalid signature")
        return HttpResponseForbidden("invalid signature")
    sid = request.POST.get("MessageSid") or request.POST.get("SmsSid")
    status = (request.POST.get("MessageStatus") or "").lower()
    n = Notification.objects.filter(provider="twilio", provider_message_id=sid).first()
    if not n:
        return HttpResponse("ok")
    if status == "delivered":
        _apply_status(n, "delivered", delivered_at=timezone.now())
    elif status in ("failed", "undelivered"):
        _apply_status(
            n,
            "failed",
            error_code=request.POST.get("ErrorCode"),
            error_message=request.POST.get("ErrorMessage") or "",
        )
    return HttpResponse("ok")


@csrf_exempt
@require_POST
def sendgrid_email_events(request):
    if not _sendgrid_signature_ok(request) and not _unsigned_allowed():
        log.warning("SendGrid event webhook with invalid signature")
        return HttpResponseForbidden("invalid signature")
    try:
        events = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return HttpResponseBadRequest("invalid json")
    for ev in events if isinstance(events, list) else []:
        msg_id = (ev.get("sg_message_id") or "").split(".")[0]
        event = (ev.get("event") or "").lower()
        n = Notification.objects.filter(provider="sendgrid", provider_message_id=msg_id).first()
        if not n:
            continue
        if event == "delivered":
            _apply_status(n, "delivered", delivered_at=timezone.now())
        elif event in ("bounce", "dropped"):
            _apply_status(n, "bounced", error_message=ev.get("reason") or "")
    return HttpResponse("ok")
