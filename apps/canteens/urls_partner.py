from django.urls import path

from . import views_partner

app_name = "partner_canteen"

urlpatterns = [
    path("canteen", views_partner.canteen, name="canteen"),
    path("canteen/toggle", views_partner.toggle_canteen, name="canteen_toggle"),
    path("menu", views_partner.menu, name="menu"),
    path("menu/<uuid:item_id>", views_partner.menu_item, name="menu_item"),
    path("menu/<uuid:item_id>/toggle", views_partner.menu_toggle_stock, name="menu_toggle"),
]
