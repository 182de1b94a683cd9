import hashlib
import secrets

import phonenumbers
from django.conf import settings


def to_e164(raw: str, default_region: str | None = None) -> str:
    region = default_region or getattr(settings, "PHONE_DEFAULT_REGION", "IN")
    try:
        n = phonenumbers.parse(str(raw or "").strip(), region)
    except phonenumbers.NumberParseException:
        raise ValueError("Invalid phone number")
    if not phonenumbers.is_valid_number(n):
        raise ValueError("Invalid phone number")
    return phonenumbers.format_number(n, phonenumbers.PhoneNumberFormat.E164)


def gen_code(n: int = 6) -> str:
    return f"{secrets.randbelow(10**n):0{n}d}"


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


def national_digits(phone: str) -> str:
    try:
        n = phonenumbers.parse(phone, None)
        return str(n.national_number)
    except phonenumbers.NumberParseException:
        return "".join(ch for ch in (phone or "") if ch.isdigit())


def mask_phone(phone: str) -> str:
    # 9876543210 -> 987****210
    digits = national_digits(phone)
    if len(digits) < 7:
        return "********"
    return digits[:3] + "*" * (len(digits) - 6) + digits[-3:]


def mask_email(email: str) -> str:
    local, _, domain = (email or "").partition("@")
    if not domain:
        return "********"
    return f"{local[:2]}***@{domain}"


def mask_contact(contact: str) -> str:
    return mask_email(contact) if "@" in (contact or "") else mask_phone(contact)
