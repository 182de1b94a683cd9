from decimal import Decimal

import pytest

from apps.audit.models import AuditLog
from apps.canteens.models import Canteen, MenuItem


@pytest.fixture
def menu(canteen):
    return [
        MenuItem.objects.create(canteen=canteen, name="Masala Dosa", price=Decimal("50"), category="South Indian"),
        MenuItem.objects.create(canteen=canteen, name="Idli", price=Decimal("30"), category="South Indian"),
        MenuItem.objects.create(canteen=canteen, name="Veg Biryani", price=Decimal("90"), category="Rice", in_stock=False),
    ]


@pytest.mark.django_db
def test_public_listing_hides_closed_and_unapproved(api, canteen):
    Canteen.objects.create(name="Pending Place", is_open=True, is_approved=False)
    Canteen.objects.create(name="Closed Place", is_open=False, is_approved=True)
    r = api.get("/api/canteens/")
    assert r.status_code == 200
    assert [c["name"] for c in r.json()["data"]] == [canteen.name]


@pytest.mark.django_db
def test_menu_is_grouped_and_hides_out_of_stock(api, canteen, menu, partner):
    r = api.get(f"/api/canteens/{canteen.id}/menu")
    assert r.status_code == 200
    groups = {g["category"]: [i["name"] for i in g["items"]] for g in r.json()["data"]["menu"]}
    assert groups == {"South Indian": ["Idli", "Masala Dosa"]}

    owner_view = api.as_user(partner).get(f"/api/canteens/{canteen.id}/menu")
    names = [i["name"] for g in owner_view.json()["data"]["menu"] for i in g["items"]]
    assert "Veg Biryani" in names


@pytest.mark.django_db
def test_items_by_category_is_case_insensitive(api, menu):
    r = api.get("/api/canteens/by-category/SOUTH%20INDIAN")
    assert r.status_code == 200
    assert {i["name"] for i in r.json()["data"]} == {"Masala Dosa", "Idli"}


@pytest.mark.django_db
def test_search_matches_items_and_canteens(api, menu):
    r = api.get("/api/search", {"q": "dosa"})
    assert r.status_code == 200
    assert [i["name"] for i in r.json()["data"]["items"]] == ["Masala Dosa"]

    r2 = api.get("/api/search", {"q": "main block"})
    assert [c["name"] for c in r2.json()["data"]["canteens"]] == ["Main Block Canteen"]


@pytest.mark.django_db
@pytest.mark.parametrize("q", ["", "a", "x" * 101])
def test_search_query_length_is_validated(api, q):
    r = api.get("/api/search", {"q": q})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_partner_manages_menu(api, partner, canteen):
    api.as_user(partner)
    r = api.post("/api/partner/menu", {"name": "Vada Pav", "price": "25.00", "category": "Snacks"})
    assert r.status_code == 201, r.content
    item_id = r.json()["data"]["id"]

    r2 = api.patch(f"/api/partner/menu/{item_id}", {"price": "30.00"})
    assert r2.status_code == 200
    assert r2.json()["data"]["price"] == 30.0
    assert r2.json()["data"]["name"] == "Vada Pav"

    r3 = api.put(f"/api/partner/menu/{item_id}/toggle")
    assert r3.json()["data"]["in_stock"] is False

    r4 = api.delete(f"/api/partner/menu/{item_id}")
    assert r4.status_code == 200
    assert not MenuItem.objects.filter(id=item_id).exists()


@pytest.mark.django_db
def test_partner_can_clear_optional_text_fields(api, partner, canteen, menu_item):
    canteen.description = "Near the library"
    canteen.address = "Block A"
    canteen.save()
    menu_item.description = "Crispy"
    menu_item.image = "https://cdn.example.com/dosa.jpg"
    menu_item.save()

    api.as_user(partner)
    r = api.patch("/api/partner/canteen", {"description": "", "address": "", "name": ""})
    assert r.status_code == 200, r.content
    canteen.refresh_from_db()
    assert canteen.description == ""
    assert canteen.address == ""
    assert canteen.name == "Main Block Canteen"

    r2 = api.patch(f"/api/partner/menu/{menu_item.id}", {"description": "", "image": ""})
    assert r2.status_code == 200, r2.content
    menu_item.refresh_from_db()
    assert menu_item.description == ""
    assert menu_item.image == ""
    assert menu_item.name == "Masala Dosa"


@pytest.mark.django_db
def test_partner_cannot_touch_other_canteens_items(api, partner, canteen):
    other = Canteen.objects.create(name="Rival", is_open=True, is_approved=True)
    item = MenuItem.objects.create(canteen=other, name="Samosa", price=Decimal("15"))
    r = api.as_user(partner).patch(f"/api/partner/menu/{item.id}", {"price": "1"})
    assert r.status_code == 404


@pytest.mark.django_db
def test_unapproved_partner_cannot_open_or_add_items(api, partner, canteen):
    partner.is_approved = False
    partner.save()
    api.as_user(partner)
    assert api.put("/api/partner/canteen/toggle").json()["code"] == "NOT_APPROVED"
    assert api.post("/api/partner/menu", {"name": "Tea", "price": "10"}).status_code == 403
    # profile edits remain available while pending
    r = api.patch("/api/partner/canteen", {"description": "Near the library"})
    assert r.status_code == 200
    assert r.json()["data"]["description"] == "Near the library"


@pytest.mark.django_db
def test_partner_toggles_canteen(api, partner, canteen):
    r = api.as_user(partner).put("/api/partner/canteen/toggle")
    assert r.status_code == 200
    assert r.json()["data"]["is_open"] is False


@pytest.mark.django_db
def test_admin_approves_canteen_with_audit(api, admin_user):
    pending = Canteen.objects.create(name="New Kiosk", is_approved=False)
    r = api.as_user(admin_user).patch(f"/api/admin/canteens/{pending.id}", {"is_approved": True, "reason": "checked"})
    assert r.status_code == 200
    pending.refresh_from_db()
    assert pending.is_approved is True
    entry = AuditLog.objects.get(entity_id=str(pending.id))
    assert entry.action == "canteen_approve"
    assert entry.reason == "checked"
