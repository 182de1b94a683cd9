from django.contrib import admin
from django.http import HttpResponse
from django.urls import include, path

from apps.canteens import views_public as canteen_public

urlpatterns = [
    path("admin/", admin.site.urls),
    # Healthcheck endpoint
    path("healthz", lambda _request: HttpResponse("ok")),
    path("api/auth/", include("apps.accounts.auth_urls")),
    path("api/otp/", include("apps.accounts.otp_urls")),
    path("api/canteens/", include("apps.canteens.urls")),
    path("api/search", canteen_public.search, name="search"),
    path("api/orders/", include("apps.orders.urls")),
    path("api/reviews/", include("apps.orders.urls_reviews")),
    path("api/partner/", include("apps.canteens.urls_partner")),
    path("api/partner/", include("apps.orders.urls_partner")),
    path("api/admin/users/", include("apps.accounts.admin_urls")),
    path("api/admin/canteens/", include("apps.canteens.urls_admin")),
    path("api/admin/orders/", include("apps.orders.urls_admin")),
    path("api/admin/audit-logs", include("apps.audit.urls")),
    path("api/webhooks/", include("apps.notifications.urls")),
]
