from django.contrib import admin
from django.contrib.auth import get_user_model
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import RefreshToken, VerificationCode

User = get_user_model()


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ("email", "name", "role", "phone", "is_active", "is_approved", "phone_verified_at")
    list_filter = ("role", "is_active", "is_approved")
    search_fields = ("email", "name", "phone")
    ordering = ("email",)
    readonly_fields = ("email_verified_at", "phone_verified_at")

    fieldsets = DjangoUserAdmin.fieldsets + (
        (
            _("Campus profile"),
            {"fields": ("name", "phone", "role", "is_approved", "is_grandfathered", "email_verified_at", "phone_verified_at")},
        ),
    )

    add_fieldsets = DjangoUserAdmin.add_fieldsets + (
        (
            _("Campus profile"),
            {"classes": ("wide",), "fields": ("email", "name", "phone", "role")},
        ),
    )


@admin.register(RefreshToken)
class RefreshTokenAdmin(admin.ModelAdmin):
    list_display = ("user", "jti", "expires_at", "revoked_at", "ip_address")
    search_fields = ("user__email", "jti")
    readonly_fields = ("jti",)


@admin.register(VerificationCode)
class VerificationCodeAdmin(admin.ModelAdmin):
    list_display = ("contact", "channel", "purpose", "attempts", "resend_count", "expires_at", "verified_at")
    list_filter = ("channel", "purpose")
    search_fields = ("contact",)
    exclude = ("code_hash",)
