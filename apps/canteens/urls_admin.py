from django.urls import path

from . import views_admin

app_name = "admin_canteens"

urlpatterns = [
    path("", views_admin.canteen_list, name="list"),
    path("<uuid:canteen_id>", views_admin.canteen_update, name="update"),
]
