from django.http import HttpRequest
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from apps.canteens.models import Canteen
from apps.common.errors import NotFound
from apps.common.http import ok, page_params, parse_json, validate
from apps.common.policy import guard

from .forms import ReviewForm
from .models import Review
from .reviews import create_review
from .serializers import serialize_review
from .services import find_order


@csrf_exempt
@require_POST
@guard("review.create")
def create(request: HttpRequest):
    data = validate(ReviewForm, parse_json(request)).cleaned_data
    review = create_review(
        user=request.user, order_ref=data["order_id"], rating=data["rating"], comment=data.get("comment") or ""
    )
    return ok(serialize_review(review), status=201)


@require_GET
@guard("review.view")
def for_order(request: HttpRequest, order_ref):
    filters = {} if request.user.role == "admin" else {"user": request.user}
    order = find_order(order_ref, **filters)
    review = Review.objects.select_related("user", "order").filter(order=order).first()
    if review is None:
        raise NotFound("Review not found")
    return ok(serialize_review(review))


@require_GET
def for_canteen(request: HttpRequest, canteen_id):
    canteen = get_object_or_404(Canteen, id=canteen_id)
    qs = canteen.reviews.select_related("user", "order").order_by("-created_at")
    page, limit = page_params(request)
    total = qs.count()
    rows = [serialize_review(r) for r in qs[(page - 1) * limit : page * limit]]
    return ok(
        rows,
        total=total,
        page=page,
        limit=limit,
        rating=float(canteen.rating),
        rating_breakdown=canteen.rating_breakdown or {},
    )
