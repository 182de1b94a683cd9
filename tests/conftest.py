import json
import types
from decimal import Decimal

import pytest
import razorpay
from django.apps import apps as django_apps
from django.core.cache import cache

from apps.accounts.models import User
from apps.accounts.tokens import issue_access_token
from apps.canteens.models import Canteen, MenuItem
from apps.orders import services
from apps.orders.models import Order
from apps.orders.payments import PaymentGateway


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


def make_user(email, *, role=User.ROLE_STUDENT, password="secret123", **extra):
    return User.objects.create_user(
        username=email, email=email, password=password, name=extra.pop("name", email.split("@")[0]), role=role, **extra
    )


@pytest.fixture
def user(db):
    return make_user("student@campus.edu", phone="+919876543210")


@pytest.fixture
def other_user(db):
    return make_user("other@campus.edu")


@pytest.fixture
def partner(db):
    return make_user("partner@campus.edu", role=User.ROLE_PARTNER, is_approved=True, phone="+919812345678")


@pytest.fixture
def admin_user(db):
    return make_user("admin@campus.edu", role=User.ROLE_ADMIN, is_staff=True)


@pytest.fixture
def canteen(partner):
    return Canteen.objects.create(owner=partner, name="Main Block Canteen", is_open=True, is_approved=True)


@pytest.fixture
def menu_item(canteen):
    return MenuItem.objects.create(canteen=canteen, name="Masala Dosa", price=Decimal("50.00"), category="South Indian")


@pytest.fixture
def place_order(menu_item):
    """Cash-on-delivery order, which starts in ``placed``."""

    def _place(customer, quantity=2):
        checkout = services.create_order(
            user=customer,
            canteen_id=menu_item.canteen_id,
            lines=[services.LineRequest(menu_item_id=menu_item.id, quantity=quantity)],
            payment_method=Order.METHOD_COD,
        )
        return checkout.order

    return _place


class Api:
    """Thin JSON wrapper over the Django test client."""

    def __init__(self, client):
        self.client = client
        self.token = None

    def as_user(self, user):
        self.token = issue_access_token(user) if user is not None else None
        return self

    def _extra(self, headers):
        extra = {}
        if self.token:
            extra["HTTP_AUTHORIZATION"] = f"Bearer {self.token}"
        for name, value in (headers or {}).items():
            extra["HTTP_" + name.upper().replace("-", "_")] = value
        return extra

    def get(self, path, params=None, headers=None):
        return self.client.get(path, params or {}, **self._extra(headers))

    def _send(self, method, path, data, headers):
        body = data if isinstance(data, (str, bytes)) else json.dumps(data or {})
        return getattr(self.client, method)(path, body, content_type="application/json", **self._extra(headers))

    def post(self, path, data=None, headers=None):
        return self._send("post", path, data, headers)

    def put(self, path, data=None, headers=None):
        return self._send("put", path, data, headers)

    def patch(self, path, data=None, headers=None):
        return self._send("patch", path, data, headers)

    def delete(self, path, headers=None):
        return self.client.delete(path, **self._extra(headers))


@pytest.fixture
def api(client):
    return Api(client)


class DummyRazorpay:
    def __init__(self):
        self.orders = []
        self.fail_with = None

    def order_create(self, data):
        if self.fail_with is not None:
            raise self.fail_with
        self.orders.append(data)
        return {"id": f"order_{len(self.orders):06d}", "amount": data["amount"], "currency": data["currency"]}


@pytest.fixture
def gateway(monkeypatch):
    dummy = DummyRazorpay()
    client = razorpay.Client(auth=("rzp_test_key", "rzp_test_secret"))
    client.order = types.SimpleNamespace(create=dummy.order_create)
    gw = PaymentGateway(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        webhook_secret="whsec_test",
        client=client,
    )
    gw.dummy = dummy
    monkeypatch.setattr(django_apps.get_app_config("orders"), "gateway", gw)
    return gw
