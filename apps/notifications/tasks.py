import json
import logging
import os

import requests
from celery import shared_task
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.template import Context, Template as DjTemplate
from django.utils import timezone

from apps.common.phone import to_e164

from .models import Notification, NotificationAttempt, Template

log = logging.getLogger(__name__)


class TransientError(Exception):
    pass


class DeliveryError(Exception):
    """Permanent delivery failure (bad destination, provider 4xx, ...)."""


def dev_mode() -> bool:
    return bool(getattr(settings, "NOTIF_DEV_MODE", True))


_OTP_SMS = "{{ code }} is your Canteen Connect {{ purpose_label }} code. It expires in {{ ttl_min }} min. Do not share it."
_OTP_EMAIL = {
    "subject": "Your Canteen Connect {{ purpose_label }} code",
    "body_txt": "Hi{% if name %} {{ name }}{% endif %}, your {{ purpose_label }} code is {{ code }}. It expires in {{ ttl_min }} minutes.",
    "body_html": "<p>Hi{% if name %} {{ name }}{% endif %},</p><p>Your {{ purpose_label }} code is <strong>{{ code }}</strong>.</p><p>It expires in {{ ttl_min }} minutes.</p>",
}

DEFAULT_TEMPLATES = {
    ("sms", "otp_registration"): {"body_txt": _OTP_SMS},
    ("sms", "otp_login"): {"body_txt": _OTP_SMS},
    ("sms", "otp_password_reset"): {"body_txt": _OTP_SMS},
    ("email", "otp_registration"): _OTP_EMAIL,
    ("email", "otp_login"): _OTP_EMAIL,
    ("email", "otp_password_reset"): _OTP_EMAIL,
    ("sms", "order_status"): {"body_txt": "{{ canteen }}: order {{ order_id }} is now {{ status }}."},
    ("email", "order_status"): {
        "subject": "Order {{ order_id }}: {{ status }}",
        "body_txt": "Hi{% if name %} {{ name }}{% endif %}, your order {{ order_id }} at {{ canteen }} is now {{ status }}.{% if note %} {{ note }}{% endif %}",
        "body_html": "<p>Hi{% if name %} {{ name }}{% endif %},</p><p>Your order <strong>{{ order_id }}</strong> at {{ canteen }} is now <strong>{{ status }}</strong>.</p>{% if note %}<p>{{ note }}</p>{% endif %}",
    },
    ("sms", "partner_new_order"): {"body_txt": "New order {{ order_id }} ({{ total }}). Open your dashboard to confirm it."},
}


def render_template(code: str, channel: str, payload: dict) -> dict:
    """Render a stored template, falling back to the built-in default per field."""
    stored = Template.objects.filter(code=code, channel=channel).first()
    defaults = DEFAULT_TEMPLATES.get((channel, code), {})
    ctx = Context(payload or {})

    def _field(name: str) -> str:
        src = getattr(stored, name, "") if stored else ""
        if not (src or "").strip():
            src = defaults.get(name, "")
        return DjTemplate(src).render(ctx)

    if channel == "sms":
        return {"text": _field("body_txt")}
    return {"subject": _field("subject"), "text": _field("body_txt"), "html": _field("body_html")}


def _twilio_send_sms(to: str, body: str) -> dict:
    sid = os.getenv("TWILIO_ACCOUNT_SID", "")
    tok = os.getenv("TWILIO_AUTH_TOKEN", "")
    from_num = os.getenv("TWILIO_SMS_FROM", "")
    if not (sid and tok and from_num):
        raise TransientError("Twilio not configured")
    url = f"https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
    try:
        resp = requests.post(url, data={"From": from_num, "To": to, "Body": body[:1500]}, auth=(sid, tok), timeout=20)
    except requests.RequestException as e:
        raise TransientError(f"Twilio unreachable: {e}") from e
    if resp.status_code >= 500 or resp.status_code == 429:
        raise TransientError(f"Twilio {resp.status_code}")
    if resp.status_code >= 400:
        raise DeliveryError(f"Twilio 4xx: {resp.text}")
    j = resp.json()
    return {"sid": j.get("sid"), "raw": j}


def _sendgrid_send_email(to_email: str, subject: str, text: str, html: str) -> dict:
    api_key = os.getenv("SENDGRID_API_KEY", "")
    from_email = os.getenv("SENDGRID_FROM_EMAIL", "")
    from_name = os.getenv("SENDGRID_FROM_NAME", "") or "Canteen Connect"
    if not (api_key and from_email):
        raise TransientError("SendGrid not configured")
    body = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": from_email, "name": from_name},
        "subject": subject or "",
        "content": [
            {"type": "text/plain", "value": text or ""},
            {"type": "text/html", "value": html or ""},
        ],
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    try:
        resp = requests.post("https://api.sendgrid.com/v3/mail/send", headers=headers, data=json.dumps(body), timeout=20)
    except requests.RequestException as e:
        raise TransientError(f"SendGrid unreachable: {e}") from e
    if resp.status_code >= 500 or resp.status_code == 429:
        raise TransientError(f"SendGrid {resp.status_code}")
    if resp.status_code >= 400:
        raise DeliveryError(f"SendGrid 4xx: {resp.text}")
    return {"message_id": resp.headers.get("X-Message-Id") or "", "raw_headers": dict(resp.headers)}


def _send(n: Notification) -> tuple[str, str, dict]:
    """Hand the message to its provider. Returns (provider, message_id, response)."""
    if n.type == "sms":
        try:
            to = to_e164(n.to)
        except ValueError as e:
            raise DeliveryError("invalid phone") from e
        text = render_template(n.template_code, "sms", n.payload_json).get("text") or ""
        if dev_mode():
            log.info('DEV NOTIF [sms] to %s, template=%s, body="%s"', to, n.template_code, text)
            return "dev", "DEV", {"dev": True}
        resp = _twilio_send_sms(to, text)
        return "twilio", resp.get("sid") or "", resp
    if n.type == "email":
        try:
            validate_email(n.to)
        except ValidationError as e:
            raise DeliveryError("invalid email") from e
        ren = render_template(n.template_code, "email", n.payload_json)
        if dev_mode():
            log.info('DEV NOTIF [email] to %s, template=%s, body_txt="%s"', n.to, n.template_code, ren.get("text"))
            return "dev", "DEV", {"dev": True}
        resp = _sendgrid_send_email(n.to, ren.get("subject"), ren.get("text"), ren.get("html"))
        return "sendgrid", resp.get("message_id") or "", resp
    raise DeliveryError("invalid type")


def deliver(n: Notification) -> Notification:
    """Deliver one notification and record the attempt.

    Raises TransientError (retryable) or DeliveryError (permanent; the
    notification is marked failed first).
    """
    attempt = NotificationAttempt(notification=n, started_at=timezone.now())
    try:
        provider, message_id, response = _send(n)
    except TransientError as te:
        attempt.result = "error"
        attempt.error_message = str(te)
        attempt.finished_at = timezone.now()
        attempt.save()
        raise
    except DeliveryError as e:
        n.mark(status="failed", error_message=str(e))
        attempt.result = "error"
        attempt.error_message = str(e)
        attempt.finished_at = timezone.now()
        attempt.save()
        raise
    now = timezone.now()
    n.mark(
        status="sent",
        provider=provider,
        provider_message_id=message_id,
        sent_at=now,
        delivered_at=now if provider == "dev" else None,
    )
    attempt.result = "ok"
    attempt.provider_response_json = response
    attempt.finished_at = now
    attempt.save()
    return n


@shared_task(bind=True, max_retries=5, autoretry_for=(TransientError,), retry_backoff=True, retry_backoff_max=3600)
def send_notification(self, notification_id: str):
    with transaction.atomic():
        try:
            n = Notification.objects.select_for_update().get(id=notification_id)
        except Notification.DoesNotExist:
            log.warning("Notification %s not found", notification_id)
            return
        if n.status not in ("queued", "processing"):
            return
        n.status = "processing"
        n.attempts = (n.attempts or 0) + 1
        n.save(update_fields=["status", "attempts", "updated_at"])

    try:
        deliver(n)
    except DeliveryError as e:
        log.warning("Notification %s failed permanently: %s", notification_id, e)
