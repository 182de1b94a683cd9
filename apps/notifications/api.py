from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.db import transaction

from .models import Notification
from .tasks import DeliveryError, TransientError, deliver, send_notification

log = logging.getLogger(__name__)


def enqueue(
    *,
    type: str,
    to: str,
    template_code: str,
    payload: dict,
    idempotency_key: Optional[str] = None,
    recipient=None,
    order=None,
) -> Notification:
    """Queue a notification; the Celery task is dispatched after commit."""
    if idempotency_key:
        existing = Notification.objects.filter(idempotency_key=idempotency_key).first()
        if existing:
            return existing
    n = Notification.objects.create(
        type=type,
        to=to,
        recipient=recipient,
        order=order,
        template_code=template_code,
        payload_json=payload or {},
        status="queued",
        idempotency_key=idempotency_key or None,
    )
    transaction.on_commit(lambda: send_notification.delay(str(n.id)))
    return n


def deliver_now(
    *,
    type: str,
    to: str,
    template_code: str,
    payload: dict,
    recipient=None,
    redact: Iterable[str] = ("code",),
) -> Notification:
    """Send synchronously, for callers that must know the outcome (OTP codes).

    Transient failures are raised as DeliveryError too: the caller is
    waiting on the result and nothing retries in the background.
    """
    n = Notification.objects.create(
        type=type,
        to=to,
        recipient=recipient,
        template_code=template_code,
        payload_json=payload or {},
        status="processing",
        attempts=1,
    )
    try:
        return deliver(n)
    except TransientError as e:
        n.mark(status="failed", error_message=str(e))
        log.warning("Immediate delivery of %s to %s failed: %s", template_code, to, e)
        raise DeliveryError(str(e)) from e
    finally:
        n.redact(set(redact))
