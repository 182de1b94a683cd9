from django.urls import path

from . import views_customer

app_name = "orders"

urlpatterns = [
    path("", views_customer.orders, name="list"),
    path("verify-payment", views_customer.verify_payment, name="verify_payment"),
    path("dev-confirm", views_customer.dev_confirm, name="dev_confirm"),
    path("webhook", views_customer.gateway_webhook, name="webhook"),
    path("<str:order_ref>", views_customer.order_detail, name="detail"),
    path("<str:order_ref>/status", views_customer.order_status, name="status"),
    path("<str:order_ref>/cancel", views_customer.cancel_order, name="cancel"),
]
