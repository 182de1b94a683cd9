import logging

from django.http import HttpRequest
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from apps.common.http import ok, parse_json, route, validate
from apps.common.policy import guard

from . import services
from .forms import CanteenUpdateForm, MenuItemForm, MenuItemUpdateForm
from .models import MenuItem
from .serializers import serialize_canteen, serialize_menu_item

log = logging.getLogger(__name__)


@guard("partner.canteen.view")
def my_canteen(request: HttpRequest):
    return ok(serialize_canteen(services.partner_canteen(request.user)))


@guard("partner.canteen.update")
def update_my_canteen(request: HttpRequest):
    canteen = services.partner_canteen(request.user)
    changes = validate(CanteenUpdateForm, parse_json(request)).changes()
    for field, value in changes.items():
        setattr(canteen, field, value)
    if changes:
        canteen.save(update_fields=[*changes.keys(), "updated_at"])
    return ok(serialize_canteen(canteen))


canteen = route(get=my_canteen, put=update_my_canteen, patch=update_my_canteen)


@csrf_exempt
@require_http_methods(["PUT", "POST"])
@guard("partner.canteen.toggle")
def toggle_canteen(request: HttpRequest):
    canteen = services.partner_canteen(request.user)
    canteen.is_open = not canteen.is_open
    canteen.save(update_fields=["is_open", "updated_at"])
    log.info("[canteens] %s is now %s", canteen.id, "open" if canteen.is_open else "closed")
    return ok(serialize_canteen(canteen))


@guard("partner.menu.view")
def menu_list(request: HttpRequest):
    canteen = services.partner_canteen(request.user)
    items = services.menu_items(canteen, include_out_of_stock=True)
    return ok([serialize_menu_item(i) for i in items])


@guard("partner.menu.create")
def menu_create(request: HttpRequest):
    canteen = services.partner_canteen(request.user)
    data = validate(MenuItemForm, parse_json(request)).cleaned_data
    item = MenuItem.objects.create(
        canteen=canteen,
        name=data["name"],
        description=data.get("description") or "",
        price=data["price"],
        image=data.get("image") or "",
        is_veg=True if data.get("is_veg") is None else data["is_veg"],
        in_stock=True if data.get("in_stock") is None else data["in_stock"],
        category=data["category"],
        preparation_time=data.get("preparation_time") or 10,
    )
    return ok(serialize_menu_item(item), status=201)


menu = route(get=menu_list, post=menu_create)


def _own_item(request: HttpRequest, item_id) -> MenuItem:
    return get_object_or_404(MenuItem, id=item_id, canteen=services.partner_canteen(request.user))


@guard("partner.menu.update")
def menu_update(request: HttpRequest, item_id):
    item = _own_item(request, item_id)
    changes = validate(MenuItemUpdateForm, parse_json(request)).changes()
    for field, value in changes.items():
        setattr(item, field, value)
    if changes:
        item.save(update_fields=[*changes.keys(), "updated_at"])
    return ok(serialize_menu_item(item))


@guard("partner.menu.update")
def menu_delete(request: HttpRequest, item_id):
    item = _own_item(request, item_id)
    item.delete()
    return ok(message="Menu item deleted")


menu_item = route(put=menu_update, patch=menu_update, delete=menu_delete)


@csrf_exempt
@require_http_methods(["PUT", "POST"])
@guard("partner.menu.update")
def menu_toggle_stock(request: HttpRequest, item_id):
    item = _own_item(request, item_id)
    item.in_stock = not item.in_stock
    item.save(update_fields=["in_stock", "updated_at"])
    return ok(serialize_menu_item(item))
