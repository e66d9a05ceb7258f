"""Checksum and format validators for identity and payout routing tokens."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from .errors import InputValidationError


class TaxIdKind(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"


class PaymentKeyKind(str, Enum):
    """The five PIX key shapes accepted by the payout rail."""

    PERSONAL_TAX_ID = "personal_tax_id"
    BUSINESS_TAX_ID = "business_tax_id"
    EMAIL = "email"
    PHONE = "phone"
    RANDOM_KEY = "random_key"


_CNPJ_FIRST_WEIGHTS = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_SECOND_WEIGHTS = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)

_NON_DIGITS = re.compile(r"\D")
_CPF_SHAPE = re.compile(r"^(\d{3}\.\d{3}\.\d{3}-\d{2}|\d{11})$")
_CNPJ_SHAPE = re.compile(r"^(\d{2}\.\d{3}\.\d{3}/\d{4}-\d{2}|\d{14})$")
_EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
_PHONE_SHAPE = re.compile(r"^\+?[\d\s()-]+$")
_UUID_KEY = re.compile(
    r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$", re.IGNORECASE
)
_ALNUM_KEY = re.compile(r"^[a-zA-Z0-9]{32}$")
_MARKUP_CHARS = re.compile(r"[<>\"'&]")

EMAIL_MAX_LENGTH = 254
SANITIZED_MAX_LENGTH = 255


def _digits(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def _check_digit(digits: str, weights: tuple[int, ...]) -> int:
    total = sum(int(digit) * weight for digit, weight in zip(digits, weights))
    remainder = 11 - (total % 11)
    return 0 if remainder >= 10 else remainder


def _is_repeated(digits: str) -> bool:
    return len(set(digits)) == 1


def validate_cpf(value: str) -> bool:
    """Validate an 11-digit personal tax id (CPF)."""

    digits = _digits(value)
    if len(digits) != 11 or _is_repeated(digits):
        return False
    first = _check_digit(digits[:9], tuple(range(10, 1, -1)))
    if int(digits[9]) != first:
        return False
    second = _check_digit(digits[:10], tuple(range(11, 1, -1)))
    return int(digits[10]) == second


def validate_cnpj(value: str) -> bool:
    """Validate a 14-digit business tax id (CNPJ)."""

    digits = _digits(value)
    if len(digits) != 14 or _is_repeated(digits):
        return False
    if int(digits[12]) != _check_digit(digits[:12], _CNPJ_FIRST_WEIGHTS):
        return False
    return int(digits[13]) == _check_digit(digits[:13], _CNPJ_SECOND_WEIGHTS)


def validate_tax_id(value: str, kind: TaxIdKind | str) -> bool:
    try:
        resolved = TaxIdKind(kind)
    except ValueError:
        return False
    if not isinstance(value, str):
        return False
    if resolved is TaxIdKind.PERSONAL:
        return validate_cpf(value)
    return validate_cnpj(value)


def classify_payment_key(value: Any) -> PaymentKeyKind | None:
    """Resolve the structural shape of a PIX key, without validating its content."""

    if not isinstance(value, str):
        return None
    clean = value.strip()
    if not clean:
        return None
    if _CPF_SHAPE.match(clean):
        return PaymentKeyKind.PERSONAL_TAX_ID
    if _CNPJ_SHAPE.match(clean):
        return PaymentKeyKind.BUSINESS_TAX_ID
    if "@" in clean:
        return PaymentKeyKind.EMAIL
    if _PHONE_SHAPE.match(clean):
        return PaymentKeyKind.PHONE
    if _UUID_KEY.match(clean) or _ALNUM_KEY.match(clean):
        return PaymentKeyKind.RANDOM_KEY
    return None


def _validate_phone(clean: str) -> bool:
    digits = _digits(clean)
    if len(digits) not in (10, 11):
        return False
    area_code = int(digits[:2])
    return 11 <= area_code <= 99


def validate_payment_key(value: Any) -> bool:
    """Return True only for well-formed PIX keys. Never raises."""

    kind = classify_payment_key(value)
    if kind is None:
        return False
    clean = value.strip()
    if kind is PaymentKeyKind.PERSONAL_TAX_ID:
        return validate_cpf(clean)
    if kind is PaymentKeyKind.BUSINESS_TAX_ID:
        return validate_cnpj(clean)
    if kind is PaymentKeyKind.EMAIL:
        return len(clean) <= EMAIL_MAX_LENGTH and bool(_EMAIL_PATTERN.match(clean))
    if kind is PaymentKeyKind.PHONE:
        return _validate_phone(clean)
    return True


def sanitize_text(value: Any) -> str:
    """Trim, drop markup/injection characters and cap the length."""

    if value is None:
        return ""
    return _MARKUP_CHARS.sub("", str(value).strip())[:SANITIZED_MAX_LENGTH]


def validate_amount(value: Any, min_value: int = 1, max_value: int = 10000) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return min_value <= value <= max_value


def require_payment_key(value: Any) -> tuple[str, PaymentKeyKind]:
    """Sanitize and validate a PIX key, raising with a readable reason."""

    sanitized = sanitize_text(value)
    if not sanitized:
        raise InputValidationError("PIX key is required", field="pix_key")
    kind = classify_payment_key(sanitized)
    if kind is None or not validate_payment_key(sanitized):
        raise InputValidationError(
            "Invalid PIX key. Use a CPF, CNPJ, e-mail, phone number or random key.",
            field="pix_key",
        )
    return sanitized, kind


def require_amount(value: Any, *, min_value: int = 1, max_value: int = 10000) -> int:
    if not validate_amount(value, min_value, max_value):
        raise InputValidationError(
            f"Amount must be a whole number between {min_value} and {max_value}",
            field="amount",
        )
    return int(value)


__all__ = [
    "PaymentKeyKind",
    "TaxIdKind",
    "classify_payment_key",
    "require_amount",
    "require_payment_key",
    "sanitize_text",
    "validate_amount",
    "validate_cnpj",
    "validate_cpf",
    "validate_payment_key",
    "validate_tax_id",
]
