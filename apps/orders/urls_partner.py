from django.urls import path

from . import views_partner

app_name = "partner_orders"

urlpatterns = [
    path("orders", views_partner.order_list, name="list"),
    path("orders/live", views_partner.live_orders, name="live"),
    path("orders/<str:order_ref>/status", views_partner.update_status, name="status"),
    path("stats", views_partner.stats, name="stats"),
]
