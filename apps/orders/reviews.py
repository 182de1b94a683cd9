from __future__ import annotations

import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.canteens.models import Canteen
from apps.common.errors import BusinessRuleViolation, Conflict

from .models import Order, Review
from .services import find_order

log = logging.getLogger(__name__)

RECENT_DAYS = 30
RECENT_WEIGHT = Decimal("1.5")


def recompute_rating(canteen: Canteen, *, now=None) -> Canteen:
    cutoff = (now or timezone.now()) - timedelta(days=RECENT_DAYS)
    breakdown = {str(star): 0 for star in range(1, 6)}
    weighted = Decimal("0")
    weights = Decimal("0")
    count = 0
    for rating, created_at in canteen.reviews.values_list("rating", "created_at"):
        weight = RECENT_WEIGHT if created_at >= cutoff else Decimal("1")
        weighted += weight * rating
        weights += weight
        breakdown[str(rating)] += 1
        count += 1
    canteen.rating = (weighted / weights).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP) if weights else Decimal("0")
    canteen.total_ratings = count
    canteen.rating_breakdown = breakdown
    canteen.save(update_fields=["rating", "total_ratings", "rating_breakdown", "updated_at"])
    return canteen


def create_review(*, user, order_ref, rating: int, comment: str = "") -> Review:
    order = find_order(order_ref, user=user)
    if order.status != Order.STATUS_COMPLETED:
        raise BusinessRuleViolation("Only completed orders can be reviewed", code="ORDER_NOT_COMPLETED")
    if order.is_reviewed or Review.objects.filter(order=order).exists():
        raise Conflict("This order has already been reviewed", code="ALREADY_REVIEWED")
    try:
        with transaction.atomic():
            review = Review.objects.create(
                user=user, canteen_id=order.canteen_id, order=order, rating=rating, comment=comment or ""
            )
            order.is_reviewed = True
            order.save(update_fields=["is_reviewed", "updated_at"])
            canteen = Canteen.objects.select_for_update().get(pk=order.canteen_id)
            recompute_rating(canteen)
    except IntegrityError:
        raise Conflict("This order has already been reviewed", code="ALREADY_REVIEWED")
    log.info("[reviews] %s rated %s for canteen=%s", order.order_id, rating, order.canteen_id)
    return review
