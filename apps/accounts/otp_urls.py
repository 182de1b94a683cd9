from django.urls import path

from . import otp_views as views

app_name = "otp"

urlpatterns = [
    path("send", views.send, name="send"),
    path("resend", views.resend, name="resend"),
    path("verify", views.verify, name="verify"),
    path("status", views.status, name="status"),
]
