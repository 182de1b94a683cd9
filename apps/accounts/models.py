import hmac
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import UniqueConstraint
from django.db.models.functions import Lower
from django.utils import timezone

from apps.common.models import BaseModel
from apps.common.phone import gen_code, hash_code


class User(BaseModel, AbstractUser):
    """Custom User with UUID primary key and timestamps.

    Email is the login identifier (``username`` mirrors it). ``role`` drives
    the authorization policy; partners start unapproved and own at most one
    canteen (``user.canteen``, reverse of ``Canteen.owner``).
    """

    ROLE_STUDENT = "student"
    ROLE_PARTNER = "partner"
    ROLE_ADMIN = "admin"
    ROLE_CHOICES = [
        (ROLE_STUDENT, "Student"),
        (ROLE_PARTNER, "Partner"),
        (ROLE_ADMIN, "Admin"),
    ]

    name = models.CharField(max_length=100, blank=True)
    email = models.EmailField("email address", blank=True)
    phone = models.CharField(max_length=20, blank=True, null=True, unique=True)  # E.164
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_STUDENT, db_index=True)
    is_approved = models.BooleanField(default=True)
    email_verified_at = models.DateTimeField(null=True, blank=True)
    phone_verified_at = models.DateTimeField(null=True, blank=True)
    is_grandfathered = models.BooleanField(default=False)

    class Meta(AbstractUser.Meta):
        constraints = [
            UniqueConstraint(
                Lower("email"), name="accounts_user_email_lower_uniq", violation_error_message="Email already registered"
            )
        ]

    def save(self, *args, **kwargs):
        if self.email:
            self.email = str(self.email).strip().lower()
        if not self.username:
            self.username = self.email
        self.phone = self.phone or None
        return super().save(*args, **kwargs)

    @property
    def is_phone_verified(self) -> bool:
        return self.phone_verified_at is not None

    @property
    def requires_phone_verification(self) -> bool:
        if not getattr(settings, "REQUIRE_PHONE_VERIFICATION", False):
            return False
        return not self.is_grandfathered and not self.is_phone_verified


class RefreshToken(BaseModel):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="refresh_tokens")
    jti = models.CharField(max_length=64, unique=True)
    expires_at = models.DateTimeField()
    revoked_at = models.DateTimeField(null=True, blank=True)
    ip_address = models.CharField(max_length=64, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)

    class Meta:
        indexes = [models.Index(fields=["user", "revoked_at"], name="accounts_refresh_user_idx")]

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None and self.expires_at > timezone.now()

    @classmethod
    def revoke_all_for(cls, user) -> int:
        return cls.objects.filter(user=user, revoked_at__isnull=True).update(revoked_at=timezone.now())


class VerificationCode(BaseModel):
    PURPOSE_REGISTRATION = "registration"
    PURPOSE_LOGIN = "login"
    PURPOSE_PASSWORD_RESET = "password_reset"
    PURPOSE_CHOICES = [
        (PURPOSE_REGISTRATION, "Registration"),
        (PURPOSE_LOGIN, "Login"),
        (PURPOSE_PASSWORD_RESET, "Password reset"),
    ]
    CHANNEL_CHOICES = [("sms", "SMS"), ("email", "Email")]

    user = models.ForeignKey(User, on_delete=models.CASCADE, null=True, blank=True, related_name="verification_codes")
    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES)
    contact = models.CharField(max_length=254, db_index=True)
    purpose = models.CharField(max_length=20, choices=PURPOSE_CHOICES)
    code_hash = models.CharField(max_length=64)  # SHA-256 hex
    attempts = models.PositiveSmallIntegerField(default=0)
    max_attempts = models.PositiveSmallIntegerField(default=5)
    resend_count = models.PositiveSmallIntegerField(default=0)
    last_sent_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField()
    verified_at = models.DateTimeField(null=True, blank=True)
    superseded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["contact", "purpose", "created_at"], name="accounts_code_lookup_idx"),
        ]

    @staticmethod
    def _hash(code: str) -> str:
        return hash_code(code)

    @classmethod
    def generate_code(cls) -> str:
        return gen_code(int(getattr(settings, "OTP_LENGTH", 6)))

    @staticmethod
    def expiry_from(now):
        return now + timedelta(minutes=int(getattr(settings, "OTP_EXPIRY_MINUTES", 5)))

    def is_expired(self, now=None) -> bool:
        return (now or timezone.now()) >= self.expires_at

    @property
    def is_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.attempts)

    def matches(self, code: str) -> bool:
        return hmac.compare_digest(self.code_hash, self._hash(str(code or "")))
