from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.audit.utils import record, snapshot
from apps.canteens.models import Canteen, MenuItem
from apps.common.errors import ApiError, BusinessRuleViolation, NotFound, UpstreamFailure
from apps.notifications.api import enqueue

from .models import Order, OrderItem
from .payments import GatewayError, PaymentGateway

log = logging.getLogger(__name__)

CENT = Decimal("0.01")
CUSTOMER_CANCELLABLE = {Order.STATUS_PLACED, Order.STATUS_CONFIRMED}
PARTNER_CANCELLABLE = {Order.STATUS_PLACED, Order.STATUS_CONFIRMED, Order.STATUS_PREPARING}
DEFAULT_CANCEL_REASONS = {
    "customer": "Cancelled by customer",
    "partner": "Cancelled by canteen",
    "admin": "Cancelled by admin",
}
AUDITED_FIELDS = ["status", "payment_status", "canteen", "total_amount", "cancel_reason", "refund_amount"]


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineRequest:
    menu_item_id: uuid.UUID
    quantity: int


@dataclass(frozen=True)
class Totals:
    item_total: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total_amount: Decimal


@dataclass
class Checkout:
    order: Order
    payment: Optional[dict]
    dev_mode: bool


def compute_totals(item_total) -> Totals:
    item_total = money(item_total)
    tax = money(item_total * Decimal(str(settings.ORDER_TAX_RATE)))
    fee = money(settings.ORDER_DELIVERY_FEE) if item_total > 0 else money(0)
    return Totals(item_total, tax, fee, money(item_total + tax + fee))


def find_order(ref, **filters) -> Order:
    """Look up by primary key or by the public ``ORD-...`` identifier."""
    qs = Order.objects.filter(**filters)
    try:
        order = qs.filter(pk=uuid.UUID(str(ref))).first()
    except ValueError:
        order = qs.filter(order_id=str(ref)).first()
    if order is None:
        raise NotFound("Order not found")
    return order


def _locked(order: Order) -> Order:
    return Order.objects.select_for_update().select_related("canteen", "user").get(pk=order.pk)


# ---------------------------------------------------------------- notify


def notify_status(order: Order, note: str = "") -> None:
    change = getattr(order, "last_status_change", None)
    if change is None or not order.user.email:
        return
    enqueue(
        type="email",
        to=order.user.email,
        template_code="order_status",
        payload={
            "name": order.user.name,
            "order_id": order.order_id,
            "status": order.get_status_display(),
            "canteen": order.canteen.name,
            "note": note,
        },
        idempotency_key=f"orderstatus:{change.id}",
        recipient=order.user,
        order=order,
    )


def _notify_partner(order: Order) -> None:
    owner = order.canteen.owner
    if owner is None or not owner.phone:
        return
    enqueue(
        type="sms",
        to=owner.phone,
        template_code="partner_new_order",
        payload={"order_id": order.order_id, "total": str(order.total_amount)},
        idempotency_key=f"neworder:{order.id}",
        recipient=owner,
        order=order,
    )


# -------------------------------------------------------------- checkout


def create_order(
    *,
    user,
    canteen_id,
    lines: Iterable[LineRequest],
    special_instructions: str = "",
    payment_method: str = Order.METHOD_GATEWAY,
    gateway: Optional[PaymentGateway] = None,
) -> Checkout:
    lines = list(lines)
    canteen = Canteen.objects.filter(pk=canteen_id).select_related("owner").first()
    if canteen is None:
        raise NotFound("Canteen not found")
    if not canteen.accepts_orders:
        raise BusinessRuleViolation("Canteen is not accepting orders right now", code="CANTEEN_CLOSED")
    if payment_method == Order.METHOD_COD and not settings.ORDER_ALLOW_COD:
        raise BusinessRuleViolation("Cash on delivery is not available", code="PAYMENT_METHOD_UNAVAILABLE")

    items = {i.id: i for i in MenuItem.objects.filter(id__in=[line.menu_item_id for line in lines])}
    for line in lines:
        item = items.get(line.menu_item_id)
        if item is None:
            raise NotFound(f"Menu item {line.menu_item_id} not found")
        if item.canteen_id != canteen.id:
            raise BusinessRuleViolation("All items must belong to the same canteen", code="MIXED_CANTEEN")
        if not item.in_stock:
            raise BusinessRuleViolation(f"{item.name} is out of stock", code="OUT_OF_STOCK")

    totals = compute_totals(sum((items[line.menu_item_id].price * line.quantity for line in lines), Decimal("0")))
    cod = payment_method == Order.METHOD_COD
    with transaction.atomic():
        order = Order(
            user=user,
            canteen=canteen,
            item_total=totals.item_total,
            tax=totals.tax,
            delivery_fee=totals.delivery_fee,
            total_amount=totals.total_amount,
            status=Order.STATUS_PLACED if cod else Order.STATUS_PENDING,
            payment_method=payment_method,
            special_instructions=special_instructions or "",
        )
        order._status_change_source = "checkout"
        order.save()
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    menu_item=items[line.menu_item_id],
                    name=items[line.menu_item_id].name,
                    price=items[line.menu_item_id].price,
                    quantity=line.quantity,
                )
                for line in lines
            ]
        )
    log.info("[orders] created %s for user=%s total=%s method=%s", order.order_id, user.pk, order.total_amount, payment_method)

    if cod:
        _notify_partner(order)
        return Checkout(order, None, dev_mode=False)
    if gateway is None:
        return Checkout(order, None, dev_mode=True)
    try:
        gw = gateway.create_order(amount=order.total_amount, receipt=order.order_id)
    except GatewayError:
        order.delete()
        raise UpstreamFailure("Could not start payment. Please try again.", code="PAYMENT_GATEWAY_ERROR")
    order.gateway_order_id = gw["id"]
    order.save(update_fields=["gateway_order_id", "updated_at"])
    payment = {
        "gateway_order_id": gw["id"],
        "amount": gw.get("amount"),
        "currency": gw.get("currency", gateway.currency),
        "key_id": gateway.key_id,
    }
    return Checkout(order, payment, dev_mode=False)


# -------------------------------------------------------------- payments


def _mark_paid(order: Order, *, payment_id: str, signature: str = "", source: str) -> None:
    order.payment_status = Order.PAYMENT_PAID
    order.gateway_payment_id = payment_id or ""
    order.gateway_signature = signature or ""
    order.paid_at = timezone.now()
    fields = ["payment_status", "gateway_payment_id", "gateway_signature", "paid_at"]
    if order.status == Order.STATUS_PENDING:
        order.set_status(Order.STATUS_PLACED, source=source, fields=fields)
        transaction.on_commit(lambda: _notify_partner(order))
        notify_status(order)
    else:
        order.save(update_fields=[*fields, "updated_at"])
    log.info("[payments] %s marked paid via %s", order.order_id, source)


def verify_payment(
    *,
    user,
    order_ref,
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    gateway: Optional[PaymentGateway],
) -> tuple[Order, bool]:
    """Returns (order, already_paid). Replays of an accepted call change nothing."""
    order = find_order(order_ref, user=user)
    if gateway is None:
        raise BusinessRuleViolation("Payment gateway is not configured", code="PAYMENT_GATEWAY_UNAVAILABLE")
    with transaction.atomic():
        order = _locked(order)
        if order.payment_status == Order.PAYMENT_PAID:
            return order, True
        if order.gateway_order_id and order.gateway_order_id != gateway_order_id:
            log.warning("[payments] gateway order mismatch for %s", order.order_id)
            raise BusinessRuleViolation("Payment verification failed", code="PAYMENT_VERIFICATION_FAILED")
        if not gateway.verify_payment_signature(gateway_order_id, gateway_payment_id, signature):
            log.warning("[payments] signature mismatch for %s payment=%s", order.order_id, gateway_payment_id)
            raise BusinessRuleViolation("Payment verification failed", code="PAYMENT_VERIFICATION_FAILED")
        order.gateway_order_id = gateway_order_id
        order.save(update_fields=["gateway_order_id", "updated_at"])
        _mark_paid(order, payment_id=gateway_payment_id, signature=signature, source="payment")
    return order, False


def dev_confirm(*, user, order_ref, gateway: Optional[PaymentGateway]) -> tuple[Order, bool]:
    if getattr(settings, "IS_PRODUCTION", False):
        raise NotFound("Not found")
    if gateway is not None:
        raise ApiError(
            "Manual confirmation is only available without a payment gateway", status=403, code="DEV_CONFIRM_DISABLED"
        )
    order = find_order(order_ref, user=user)
    with transaction.atomic():
        order = _locked(order)
        if order.payment_status == Order.PAYMENT_PAID:
            return order, True
        if order.is_terminal:
            raise BusinessRuleViolation(f"Order is {order.status}", code="INVALID_TRANSITION")
        _mark_paid(order, payment_id=f"DEV_{int(time.time() * 1000)}", source="dev_confirm")
    return order, False


def handle_gateway_event(event: dict) -> bool:
    """Apply a verified webhook event. Returns False for events we ignore."""
    name = event.get("event") or ""
    payload = event.get("payload") or {}
    payment = (payload.get("payment") or {}).get("entity") or {}
    if name in ("payment.captured", "payment.failed"):
        gateway_order_id = payment.get("order_id")
    elif name == "order.paid":
        gateway_order_id = ((payload.get("order") or {}).get("entity") or {}).get("id")
    else:
        log.info("[payments] unhandled webhook event %s", name)
        return False
    if not gateway_order_id:
        return False
    with transaction.atomic():
        order = Order.objects.select_for_update().select_related("canteen", "user").filter(gateway_order_id=gateway_order_id).first()
        if order is None:
            log.warning("[payments] webhook %s for unknown gateway order %s", name, gateway_order_id)
            return False
        if name == "payment.failed":
            if order.payment_status == Order.PAYMENT_PENDING:
                order.payment_status = Order.PAYMENT_FAILED
                order.save(update_fields=["payment_status", "updated_at"])
                log.info("[payments] %s payment failed", order.order_id)
        elif order.payment_status != Order.PAYMENT_PAID:
            _mark_paid(order, payment_id=payment.get("id") or order.gateway_payment_id, source="webhook")
    return True


# ----------------------------------------------------------- transitions


def next_status(current: str) -> Optional[str]:
    if current not in Order.FLOW:
        return None
    idx = Order.FLOW.index(current)
    return Order.FLOW[idx + 1] if idx + 1 < len(Order.FLOW) else None


def advance_status(order: Order, target: str, *, note: str = "") -> Order:
    """Operator transition: exactly one step forward along the flow."""
    with transaction.atomic():
        order = _locked(order)
        expected = next_status(order.status)
        if target != expected:
            raise BusinessRuleViolation(
                f"Cannot move order from {order.status} to {target}",
                code="INVALID_TRANSITION",
                current_status=order.status,
                allowed=[s for s in (expected,) if s],
            )
        order.set_status(target, source="partner", note=note)
    log.info("[orders] %s -> %s by canteen", order.order_id, target)
    notify_status(order, note)
    return order


def cancel_order(order: Order, *, actor_role: str, reason: str = "") -> Order:
    reason = (reason or "").strip() or DEFAULT_CANCEL_REASONS.get(actor_role, "Cancelled")
    with transaction.atomic():
        order = _locked(order)
        if actor_role == "admin":
            allowed = not order.is_terminal
        elif actor_role == "partner":
            allowed = order.status in PARTNER_CANCELLABLE
        else:
            allowed = order.status in CUSTOMER_CANCELLABLE
        if not allowed:
            raise BusinessRuleViolation(
                f"Order cannot be cancelled while {order.status}",
                code="CANCEL_NOT_ALLOWED",
                current_status=order.status,
            )
        order.cancel_reason = reason[:255]
        order.cancelled_by = actor_role
        order.set_status(Order.STATUS_CANCELLED, source=actor_role, note=reason, fields=["cancel_reason", "cancelled_by"])
    log.info("[orders] %s cancelled by %s", order.order_id, actor_role)
    notify_status(order, reason)
    return order


# ----------------------------------------------------------------- admin


def _override_entry(field: str, old, new, admin, reason: str) -> dict:
    return {
        "field": field,
        "old_value": old,
        "new_value": new,
        "overridden_by": str(admin.pk),
        "reason": reason,
        "at": timezone.now().isoformat(),
    }


def admin_set_status(order: Order, status: str, *, admin, reason: str = "", request=None) -> Order:
    with transaction.atomic():
        order = _locked(order)
        before = snapshot(order, AUDITED_FIELDS)
        order.admin_overrides = [*order.admin_overrides, _override_entry("status", order.status, status, admin, reason)]
        order.set_status(status, source="admin", note=reason, fields=["admin_overrides"])
        record(
            admin=admin,
            action="order_status_override",
            entity=order,
            entity_type="order",
            before=before,
            after=snapshot(order, AUDITED_FIELDS),
            reason=reason,
            request=request,
        )
    notify_status(order, reason)
    return order


def admin_cancel(order: Order, *, admin, reason: str = "", request=None) -> Order:
    before = snapshot(order, AUDITED_FIELDS)
    order = cancel_order(order, actor_role="admin", reason=reason)
    record(
        admin=admin,
        action="order_cancel",
        entity=order,
        entity_type="order",
        before=before,
        after=snapshot(order, AUDITED_FIELDS),
        reason=order.cancel_reason,
        request=request,
    )
    return order


def refund(order: Order, *, admin, amount=None, reason: str = "", request=None) -> Order:
    with transaction.atomic():
        order = _locked(order)
        if order.payment_status != Order.PAYMENT_PAID:
            raise BusinessRuleViolation("Only paid orders can be refunded", code="REFUND_NOT_ALLOWED")
        amount = money(amount) if amount is not None else order.total_amount
        if amount <= 0 or amount > order.total_amount:
            raise BusinessRuleViolation("Refund amount must be between 0 and the order total", code="INVALID_REFUND_AMOUNT")
        before = snapshot(order, AUDITED_FIELDS)
        order.payment_status = Order.PAYMENT_REFUNDED
        order.refund_amount = amount
        order.refund_reason = (reason or "")[:255]
        order.refunded_at = timezone.now()
        order.refunded_by = admin
        order.save(update_fields=["payment_status", "refund_amount", "refund_reason", "refunded_at", "refunded_by", "updated_at"])
        record(
            admin=admin,
            action="order_refund",
            entity=order,
            entity_type="order",
            before=before,
            after=snapshot(order, AUDITED_FIELDS),
            reason=reason,
            request=request,
        )
    log.info("[orders] %s refunded %s", order.order_id, amount)
    return order


def admin_set_payment_status(order: Order, payment_status: str, *, admin, reason: str = "", request=None) -> Order:
    with transaction.atomic():
        order = _locked(order)
        before = snapshot(order, AUDITED_FIELDS)
        order.admin_overrides = [
            *order.admin_overrides,
            _override_entry("payment_status", order.payment_status, payment_status, admin, reason),
        ]
        order.payment_status = payment_status
        order.save(update_fields=["payment_status", "admin_overrides", "updated_at"])
        record(
            admin=admin,
            action="order_payment_override",
            entity=order,
            entity_type="order",
            before=before,
            after=snapshot(order, AUDITED_FIELDS),
            reason=reason,
            request=request,
        )
    return order


def reassign(order: Order, canteen_id, *, admin, reason: str = "", request=None) -> Order:
    canteen = Canteen.objects.filter(pk=canteen_id).first()
    if canteen is None:
        raise NotFound("New canteen not found")
    with transaction.atomic():
        order = _locked(order)
        before = snapshot(order, AUDITED_FIELDS)
        order.admin_overrides = [
            *order.admin_overrides,
            _override_entry("canteen", str(order.canteen_id), str(canteen.id), admin, reason),
        ]
        order.canteen = canteen
        order.save(update_fields=["canteen", "admin_overrides", "updated_at"])
        record(
            admin=admin,
            action="order_reassign",
            entity=order,
            entity_type="order",
            before=before,
            after=snapshot(order, AUDITED_FIELDS),
            reason=reason,
            request=request,
        )
    return order
