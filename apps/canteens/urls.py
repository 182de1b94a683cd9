from django.urls import path

from . import views_public

app_name = "canteens"

urlpatterns = [
    path("", views_public.canteen_list, name="list"),
    path("by-category/<str:category>", views_public.items_by_category, name="by_category"),
    path("<uuid:canteen_id>", views_public.canteen_detail, name="detail"),
    path("<uuid:canteen_id>/menu", views_public.canteen_menu, name="menu"),
]
