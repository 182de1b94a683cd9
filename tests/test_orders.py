import hashlib
import hmac
import json
from decimal import Decimal

import pytest
import requests

from apps.canteens.models import Canteen, MenuItem
from apps.orders.models import Order, OrderStatusChange
from apps.orders.services import compute_totals


def _create(api, menu_item, quantity=2, **extra):
    body = {"canteen_id": str(menu_item.canteen_id), "items": [{"menu_item_id": str(menu_item.id), "quantity": quantity}]}
    body.update(extra)
    return api.post("/api/orders/", body)


def test_compute_totals_adds_tax_and_fee():
    totals = compute_totals(Decimal("100"))
    assert totals.item_total == Decimal("100.00")
    assert totals.tax == Decimal("5.00")
    assert totals.delivery_fee == Decimal("20.00")
    assert totals.total_amount == Decimal("125.00")


def test_compute_totals_rounds_half_up():
    totals = compute_totals(Decimal("10.10"))
    # 0.505 rounds up, not to even
    assert totals.tax == Decimal("0.51")
    assert totals.total_amount == Decimal("30.61")


@pytest.mark.django_db
def test_cod_order_is_placed_with_server_side_totals(api, user, menu_item):
    r = _create(api.as_user(user), menu_item, quantity=2, payment_method="cod", special_instructions="extra chutney")
    assert r.status_code == 201, r.content
    order = r.json()["data"]["order"]
    assert order["item_total"] == 100.0
    assert order["tax"] == 5.0
    assert order["delivery_fee"] == 20.0
    assert order["total_amount"] == 125.0
    assert order["status"] == "placed"
    assert order["payment_status"] == "pending"
    assert order["order_id"].startswith("ORD-")
    assert order["items"][0]["price"] == 50.0

    saved = Order.objects.get(order_id=order["order_id"])
    assert saved.special_instructions == "extra chutney"
    assert list(saved.status_changes.values_list("status", flat=True)) == ["placed"]


@pytest.mark.django_db
def test_online_order_without_gateway_runs_in_dev_mode(api, user, menu_item):
    r = _create(api.as_user(user), menu_item)
    assert r.status_code == 201
    body = r.json()
    assert body["is_dev_mode"] is True
    assert body["data"]["order"]["status"] == "pending"
    order_id = body["data"]["order"]["order_id"]

    r2 = api.post("/api/orders/dev-confirm", {"order_id": order_id})
    assert r2.status_code == 200
    assert r2.json()["data"]["status"] == "placed"
    assert r2.json()["data"]["payment_status"] == "paid"
    assert Order.objects.get(order_id=order_id).gateway_payment_id.startswith("DEV_")

    r3 = api.post("/api/orders/dev-confirm", {"order_id": order_id})
    assert r3.json()["message"] == "Payment already confirmed"


@pytest.mark.django_db
def test_dev_confirm_refused_when_gateway_configured(api, user, menu_item, gateway):
    order_id = _create(api.as_user(user), menu_item).json()["data"]["order"]["order_id"]
    r = api.post("/api/orders/dev-confirm", {"order_id": order_id})
    assert r.status_code == 403
    assert r.json()["code"] == "DEV_CONFIRM_DISABLED"


@pytest.mark.django_db
def test_dev_confirm_hidden_in_production(api, user, menu_item, settings):
    order_id = _create(api.as_user(user), menu_item).json()["data"]["order"]["order_id"]
    settings.IS_PRODUCTION = True
    r = api.post("/api/orders/dev-confirm", {"order_id": order_id})
    assert r.status_code == 404


@pytest.mark.django_db
@pytest.mark.parametrize("quantity", [0, 11, "2"])
def test_quantity_must_be_between_one_and_ten(api, user, menu_item, quantity):
    r = _create(api.as_user(user), menu_item, quantity=quantity)
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
    assert r.json()["details"][0]["field"] == "items"


@pytest.mark.django_db
def test_duplicate_lines_are_merged_before_the_limit(api, user, menu_item):
    body = {
        "canteen_id": str(menu_item.canteen_id),
        "items": [{"menu_item_id": str(menu_item.id), "quantity": 6}, {"menu_item_id": str(menu_item.id), "quantity": 5}],
    }
    r = api.as_user(user).post("/api/orders/", body)
    assert r.status_code == 400


@pytest.mark.django_db
def test_rejects_out_of_stock_and_foreign_items(api, user, menu_item, canteen):
    menu_item.in_stock = False
    menu_item.save()
    r = _create(api.as_user(user), menu_item)
    assert r.status_code == 400
    assert r.json()["code"] == "OUT_OF_STOCK"

    other = Canteen.objects.create(name="Hostel Mess", is_open=True, is_approved=True)
    foreign = MenuItem.objects.create(canteen=other, name="Poha", price=Decimal("30"))
    r2 = api.post(
        "/api/orders/",
        {"canteen_id": str(canteen.id), "items": [{"menu_item_id": str(foreign.id), "quantity": 1}]},
    )
    assert r2.status_code == 400
    assert r2.json()["code"] == "MIXED_CANTEEN"


@pytest.mark.django_db
def test_closed_canteen_does_not_accept_orders(api, user, menu_item, canteen):
    canteen.is_open = False
    canteen.save()
    r = _create(api.as_user(user), menu_item)
    assert r.status_code == 400
    assert r.json()["code"] == "CANTEEN_CLOSED"


@pytest.mark.django_db
def test_order_endpoints_require_authentication(api):
    r = api.get("/api/orders/")
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Authentication required", "code": "AUTH_REQUIRED"}


@pytest.mark.django_db
def test_gateway_order_amount_is_in_paise(api, user, menu_item, gateway):
    r = _create(api.as_user(user), menu_item)
    assert r.status_code == 201
    payment = r.json()["data"]["payment"]
    assert payment["gateway_order_id"] == "order_000001"
    assert payment["key_id"] == "rzp_test_key"
    sent = gateway.dummy.orders[0]
    assert sent["amount"] == 12500
    assert sent["currency"] == "INR"
    assert sent["receipt"] == r.json()["data"]["order"]["order_id"]


@pytest.mark.django_db
def test_gateway_failure_discards_the_order(api, user, menu_item, gateway):
    gateway.dummy.fail_with = requests.ConnectionError("gateway down")
    r = _create(api.as_user(user), menu_item)
    assert r.status_code == 502
    assert r.json()["code"] == "PAYMENT_GATEWAY_ERROR"
    assert not Order.objects.exists()


@pytest.mark.django_db
def test_verify_payment_marks_paid_and_is_idempotent(api, user, menu_item, gateway):
    order = _create(api.as_user(user), menu_item).json()["data"]["order"]
    body = {
        "order_id": order["order_id"],
        "razorpay_order_id": "order_000001",
        "razorpay_payment_id": "pay_abc",
        "razorpay_signature": _payment_sig("order_000001", "pay_abc"),
    }
    r = api.post("/api/orders/verify-payment", body)
    assert r.status_code == 200, r.content
    assert r.json()["data"]["payment_status"] == "paid"
    assert r.json()["data"]["status"] == "placed"

    r2 = api.post("/api/orders/verify-payment", body)
    assert r2.status_code == 200
    assert r2.json()["message"] == "Payment already verified"
    saved = Order.objects.get(order_id=order["order_id"])
    assert saved.status_changes.filter(status="placed").count() == 1


@pytest.mark.django_db
def test_tampered_signature_leaves_payment_pending(api, user, menu_item, gateway):
    order = _create(api.as_user(user), menu_item).json()["data"]["order"]
    r = api.post(
        "/api/orders/verify-payment",
        {
            "order_id": order["order_id"],
            "razorpay_order_id": "order_000001",
            "razorpay_payment_id": "pay_abc",
            # signed over a different payment id
            "razorpay_signature": _payment_sig("order_000001", "pay_other"),
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "PAYMENT_VERIFICATION_FAILED"
    saved = Order.objects.get(order_id=order["order_id"])
    assert saved.payment_status == Order.PAYMENT_PENDING
    assert saved.status == Order.STATUS_PENDING


def _payment_sig(gateway_order_id, gateway_payment_id, secret="rzp_test_secret"):
    msg = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()


def _signed(body: dict, secret="whsec_test"):
    raw = json.dumps(body).encode()
    return raw, hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


@pytest.mark.django_db
def test_webhook_payment_captured_marks_order_paid(client, api, user, menu_item, gateway):
    order = _create(api.as_user(user), menu_item).json()["data"]["order"]
    raw, sig = _signed(
        {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": "pay_hook", "order_id": "order_000001"}}},
        }
    )
    r = client.post("/api/orders/webhook", raw, content_type="application/json", HTTP_X_RAZORPAY_SIGNATURE=sig)
    assert r.status_code == 200
    assert r.json()["handled"] is True
    saved = Order.objects.get(order_id=order["order_id"])
    assert saved.payment_status == "paid"
    assert saved.status == "placed"
    assert saved.gateway_payment_id == "pay_hook"


@pytest.mark.django_db
def test_webhook_payment_failed_and_bad_signature(client, api, user, menu_item, gateway):
    order = _create(api.as_user(user), menu_item).json()["data"]["order"]
    body = {"event": "payment.failed", "payload": {"payment": {"entity": {"id": "pay_x", "order_id": "order_000001"}}}}
    raw, sig = _signed(body)

    bad = client.post("/api/orders/webhook", raw, content_type="application/json", HTTP_X_RAZORPAY_SIGNATURE="0" * 64)
    assert bad.status_code == 400
    assert Order.objects.get(order_id=order["order_id"]).payment_status == "pending"

    r = client.post("/api/orders/webhook", raw, content_type="application/json", HTTP_X_RAZORPAY_SIGNATURE=sig)
    assert r.status_code == 200
    assert Order.objects.get(order_id=order["order_id"]).payment_status == "failed"


@pytest.mark.django_db
def test_unknown_webhook_events_are_acknowledged(client, gateway):
    raw, sig = _signed({"event": "refund.created", "payload": {}})
    r = client.post("/api/orders/webhook", raw, content_type="application/json", HTTP_X_RAZORPAY_SIGNATURE=sig)
    assert r.status_code == 200
    assert r.json()["handled"] is False


@pytest.mark.django_db
def test_customers_only_see_their_own_orders(api, user, other_user, place_order):
    mine = place_order(user)
    theirs = place_order(other_user)

    r = api.as_user(user).get("/api/orders/")
    assert r.status_code == 200
    assert [o["order_id"] for o in r.json()["data"]] == [mine.order_id]
    assert r.json()["total"] == 1

    assert api.get(f"/api/orders/{mine.id}").status_code == 200
    assert api.get(f"/api/orders/{theirs.id}").status_code == 404
    assert api.get(f"/api/orders/{theirs.order_id}/status").status_code == 404


@pytest.mark.django_db
def test_order_detail_includes_history(api, user, place_order):
    order = place_order(user)
    r = api.as_user(user).get(f"/api/orders/{order.order_id}")
    assert r.status_code == 200
    assert r.json()["data"]["history"][0]["status"] == "placed"


@pytest.mark.django_db
def test_totals_are_frozen_after_creation(user, place_order):
    order = place_order(user)
    order.total_amount = Decimal("1.00")
    with pytest.raises(ValueError):
        order.save()
    assert OrderStatusChange.objects.filter(order=order).count() == 1


@pytest.mark.django_db
def test_signature_checks_go_through_the_razorpay_client(gateway, monkeypatch):
    from razorpay.errors import SignatureVerificationError

    def _reject(*args, **kwargs):
        raise SignatureVerificationError("Razorpay Signature Verification Failed")

    monkeypatch.setattr(gateway.client.utility, "verify_payment_signature", _reject)
    monkeypatch.setattr(gateway.client.utility, "verify_webhook_signature", _reject)

    assert gateway.verify_payment_signature("order_000001", "pay_abc", _payment_sig("order_000001", "pay_abc")) is False
    raw, sig = _signed({"event": "refund.created", "payload": {}})
    assert gateway.verify_webhook_signature(raw, sig) is False


@pytest.mark.django_db
def test_replayed_payment_webhooks_advance_the_order_once(client, api, user, menu_item, gateway):
    order = _create(api.as_user(user), menu_item).json()["data"]["order"]
    captured = {
        "event": "payment.captured",
        "payload": {"payment": {"entity": {"id": "pay_hook", "order_id": "order_000001"}}},
    }
    paid = {
        "event": "order.paid",
        "payload": {
            "payment": {"entity": {"id": "pay_hook", "order_id": "order_000001"}},
            "order": {"entity": {"id": "order_000001"}},
        },
    }
    for body in (captured, captured, paid):
        raw, sig = _signed(body)
        r = client.post("/api/orders/webhook", raw, content_type="application/json", HTTP_X_RAZORPAY_SIGNATURE=sig)
        assert r.status_code == 200

    saved = Order.objects.get(order_id=order["order_id"])
    assert saved.payment_status == "paid"
    assert saved.status == "placed"
    assert saved.status_changes.filter(status="placed").count() == 1
