from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.orders import services
from apps.orders.models import Review
from apps.orders.reviews import recompute_rating


def _complete(order):
    for status in ["confirmed", "preparing", "ready", "completed"]:
        services.advance_status(order, status)
    return order


@pytest.mark.django_db
def test_review_updates_canteen_rating(api, user, canteen, place_order):
    order = _complete(place_order(user))
    r = api.as_user(user).post("/api/reviews/", {"order_id": order.order_id, "rating": 4, "comment": "Crispy"})
    assert r.status_code == 201, r.content
    canteen.refresh_from_db()
    assert canteen.rating == Decimal("4.0")
    assert canteen.total_ratings == 1
    assert canteen.rating_breakdown["4"] == 1
    order.refresh_from_db()
    assert order.is_reviewed is True

    fetched = api.get(f"/api/reviews/order/{order.id}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["comment"] == "Crispy"


@pytest.mark.django_db
def test_only_completed_orders_once(api, user, place_order):
    open_order = place_order(user)
    api.as_user(user)
    r = api.post("/api/reviews/", {"order_id": open_order.order_id, "rating": 5})
    assert r.status_code == 400
    assert r.json()["code"] == "ORDER_NOT_COMPLETED"

    done = _complete(place_order(user))
    assert api.post("/api/reviews/", {"order_id": done.order_id, "rating": 5}).status_code == 201
    again = api.post("/api/reviews/", {"order_id": done.order_id, "rating": 1})
    assert again.status_code == 409


@pytest.mark.django_db
def test_cannot_review_someone_elses_order(api, user, other_user, place_order):
    order = _complete(place_order(user))
    r = api.as_user(other_user).post("/api/reviews/", {"order_id": order.order_id, "rating": 5})
    assert r.status_code == 404


@pytest.mark.django_db
@pytest.mark.parametrize("rating", [0, 6])
def test_rating_range(api, user, place_order, rating):
    order = _complete(place_order(user))
    r = api.as_user(user).post("/api/reviews/", {"order_id": order.order_id, "rating": rating})
    assert r.status_code == 400


@pytest.mark.django_db
def test_recent_reviews_weigh_more(user, canteen, place_order):
    old_order = _complete(place_order(user))
    new_order = _complete(place_order(user))
    old = Review.objects.create(user=user, canteen=canteen, order=old_order, rating=2)
    Review.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=45))
    Review.objects.create(user=user, canteen=canteen, order=new_order, rating=5)

    recompute_rating(canteen)
    # (2 * 1.0 + 5 * 1.5) / 2.5 = 3.8
    assert canteen.rating == Decimal("3.8")
    assert canteen.total_ratings == 2
    assert canteen.rating_breakdown == {"1": 0, "2": 1, "3": 0, "4": 0, "5": 1}


@pytest.mark.django_db
def test_canteen_reviews_are_public(api, user, canteen, place_order):
    order = _complete(place_order(user))
    api.as_user(user).post("/api/reviews/", {"order_id": order.order_id, "rating": 3})
    r = api.as_user(None).get(f"/api/reviews/canteen/{canteen.id}")
    assert r.status_code == 200
    assert r.json()["total"] == 1
    assert r.json()["rating"] == 3.0
