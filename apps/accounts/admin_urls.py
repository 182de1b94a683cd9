from django.urls import path

from . import admin_views

app_name = "admin_users"

urlpatterns = [
    path("", admin_views.user_list, name="list"),
    path("<uuid:user_id>", admin_views.user, name="detail"),
]
