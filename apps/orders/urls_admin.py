from django.urls import path

from . import views_admin

app_name = "admin_orders"

urlpatterns = [
    path("", views_admin.order_list, name="list"),
    path("live", views_admin.live_orders, name="live"),
    path("<str:order_ref>", views_admin.order_detail, name="detail"),
    path("<str:order_ref>/status", views_admin.override_status, name="status"),
    path("<str:order_ref>/cancel", views_admin.cancel, name="cancel"),
    path("<str:order_ref>/refund", views_admin.refund, name="refund"),
    path("<str:order_ref>/payment-status", views_admin.override_payment, name="payment_status"),
    path("<str:order_ref>/reassign", views_admin.reassign, name="reassign"),
]
