"""Field validators shared by entities and request schemas."""

import re

from wabridge.errors import ValidationError

# E.164 phone number format: +[country code][number]
_E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
_PHONE_STRIP = re.compile(r"[\s\-()]")


def is_e164(phone: str | None) -> bool:
    return bool(phone) and bool(_E164_PATTERN.match(phone))


def normalize_phone_number(phone: str) -> str:
    """Strip separators and ensure a leading "+".

    Provider payloads carry bare digits ("15551234567"); the rest of the
    system keys contacts by E.164 ("+15551234567").
    """
    phone = _PHONE_STRIP.sub("", phone or "")
    if phone and not phone.startswith("+"):
        phone = "+" + phone
    return phone


def validate_phone_number(phone: str | None, field: str = "phone_number") -> str:
    """Return the phone number if valid E.164, raise ValidationError otherwise."""
    if not phone:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if not is_e164(phone):
        raise ValidationError(
            f"invalid {field}: must be E.164 format (e.g. +12345678901)",
            details={field: phone},
        )
    return phone


def validate_choice(value: str | None, choices: tuple[str, ...], field: str) -> str:
    """Raise ValidationError unless value is one of choices."""
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if value not in choices:
        raise ValidationError(
            f"invalid {field}: {value} (must be one of: {', '.join(choices)})",
            details={field: value},
        )
    return value


def validate_not_empty(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value
