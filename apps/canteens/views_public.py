from django.http import HttpRequest
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET

from apps.common.errors import NotFound
from apps.common.http import ok, validate
from apps.common.policy import guard

from . import services
from .forms import SearchQueryForm
from .models import Canteen
from .serializers import group_by_category, serialize_canteen, serialize_menu_item


@require_GET
def canteen_list(request: HttpRequest):
    rows = [serialize_canteen(c) for c in services.listed_canteens()]
    return ok(rows, count=len(rows))


@require_GET
def canteen_detail(request: HttpRequest, canteen_id):
    canteen = get_object_or_404(services.public_canteens(), id=canteen_id)
    return ok(serialize_canteen(canteen))


@require_GET
@guard("canteen.menu", optional=True)
def canteen_menu(request: HttpRequest, canteen_id):
    canteen = get_object_or_404(Canteen, id=canteen_id)
    manager = services.can_manage(request.user, canteen)
    if not manager and not canteen.is_approved:
        raise NotFound("Canteen not found")
    items = services.menu_items(canteen, include_out_of_stock=manager)
    return ok({"canteen": serialize_canteen(canteen), "menu": group_by_category(items)})


@require_GET
def items_by_category(request: HttpRequest, category: str):
    items = [serialize_menu_item(i, with_canteen=True) for i in services.items_by_category(category)]
    return ok(items, count=len(items), category=category)


@require_GET
def search(request: HttpRequest):
    form = validate(SearchQueryForm, request.GET)
    found = services.search(form.to_query())
    return ok(
        {
            "canteens": [serialize_canteen(c) for c in found["canteens"]],
            "items": [serialize_menu_item(i, with_canteen=True) for i in found["items"]],
        },
        query=form.cleaned_data["q"],
    )
