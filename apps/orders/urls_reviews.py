from django.urls import path

from . import views_reviews

app_name = "reviews"

urlpatterns = [
    path("", views_reviews.create, name="create"),
    path("order/<str:order_ref>", views_reviews.for_order, name="order"),
    path("canteen/<uuid:canteen_id>", views_reviews.for_canteen, name="canteen"),
]
