from __future__ import annotations

from typing import Any

from django import forms

from apps.common.forms import PartialForm
from apps.common.phone import to_e164

from .models import User, VerificationCode


def _clean_phone(value: str) -> str | None:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return to_e164(value)
    except ValueError as e:
        raise forms.ValidationError(str(e))


class RegisterForm(forms.Form):
    name = forms.CharField(min_length=2, max_length=100)
    email = forms.EmailField()
    password = forms.CharField(min_length=6, max_length=128, strip=False)
    phone = forms.CharField(required=False, max_length=20)
    role = forms.ChoiceField(
        required=False,
        choices=[(User.ROLE_STUDENT, "Student"), (User.ROLE_PARTNER, "Partner")],
    )
    canteen_name = forms.CharField(required=False, max_length=100)

    def clean_email(self) -> str:
        return self.cleaned_data["email"].strip().lower()

    def clean_phone(self) -> str | None:
        phone = _clean_phone(self.cleaned_data.get("phone"))
        if phone and User.objects.filter(phone=phone).exists():
            raise forms.ValidationError("Phone number already registered")
        return phone

    def clean_role(self) -> str:
        return self.cleaned_data.get("role") or User.ROLE_STUDENT


class LoginForm(forms.Form):
    email = forms.EmailField()
    password = forms.CharField(strip=False)

    def clean_email(self) -> str:
        return self.cleaned_data["email"].strip().lower()


class RefreshForm(forms.Form):
    refresh_token = forms.CharField()


class LogoutForm(forms.Form):
    refresh_token = forms.CharField(required=False)
    logout_all = forms.BooleanField(required=False)


class ProfileForm(forms.Form):
    name = forms.CharField(required=False, min_length=2, max_length=100)
    phone = forms.CharField(required=False, max_length=20)

    def __init__(self, *args: Any, user: User | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.user = user

    def clean_phone(self) -> str | None:
        phone = _clean_phone(self.cleaned_data.get("phone"))
        if phone and User.objects.filter(phone=phone).exclude(pk=getattr(self.user, "pk", None)).exists():
            raise forms.ValidationError("Phone number already registered")
        return phone


class PasswordChangeForm(forms.Form):
    current_password = forms.CharField(strip=False)
    new_password = forms.CharField(min_length=6, max_length=128, strip=False)


class PasswordResetForm(forms.Form):
    reset_token = forms.CharField()
    new_password = forms.CharField(min_length=6, max_length=128, strip=False)


class AdminSetupForm(forms.Form):
    name = forms.CharField(min_length=2, max_length=100)
    email = forms.EmailField()
    password = forms.CharField(min_length=8, max_length=128, strip=False)

    def clean_email(self) -> str:
        return self.cleaned_data["email"].strip().lower()


class _ContactForm(forms.Form):
    phone = forms.CharField(required=False, max_length=20)
    email = forms.EmailField(required=False)
    purpose = forms.ChoiceField(required=False, choices=VerificationCode.PURPOSE_CHOICES)

    def clean_purpose(self) -> str:
        return self.cleaned_data.get("purpose") or VerificationCode.PURPOSE_REGISTRATION

    def clean(self) -> dict[str, Any]:
        data = super().clean()
        if not self.errors and not data.get("phone") and not data.get("email"):
            raise forms.ValidationError("Provide a phone number or an email address")
        return data


class OtpSendForm(_ContactForm):
    pass


class OtpVerifyForm(_ContactForm):
    code = forms.RegexField(regex=r"^\d{4,8}$", error_messages={"invalid": "Code must be numeric"})


class AdminUserUpdateForm(PartialForm):
    name = forms.CharField(required=False, min_length=2, max_length=100)
    role = forms.ChoiceField(required=False, choices=User.ROLE_CHOICES)
    is_active = forms.NullBooleanField(required=False)
    is_approved = forms.NullBooleanField(required=False)
