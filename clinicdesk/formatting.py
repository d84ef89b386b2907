"""Phone and currency formatting for Uzbek clinic data."""
from __future__ import annotations

import re

COUNTRY_CODE = "998"
LOCAL_DIGITS = 9
PHONE_PATTERN = re.compile(r"^\+998\d{9}$")

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def local_phone_digits(value: str) -> str:
    """Digits of ``value`` with a leading country code removed."""
    digits = digits_only(value)
    if digits.startswith(COUNTRY_CODE):
        digits = digits[len(COUNTRY_CODE):]
    return digits


def normalize_uz_phone(value: str) -> str:
    """Return ``+998XXXXXXXXX`` for any spelling of a local number.

    The country code is optional in the input; extra digits past the nine
    local ones are dropped. Empty input gives an empty string.
    """
    local = local_phone_digits(value)[:LOCAL_DIGITS]
    return f"+{COUNTRY_CODE}{local}" if local else ""


def is_valid_uz_phone(value: str) -> bool:
    """True when ``value`` holds exactly nine local digits."""
    if len(local_phone_digits(value)) != LOCAL_DIGITS:
        return False
    return bool(PHONE_PATTERN.match(normalize_uz_phone(value)))


def format_uz_phone_display(normalized: str) -> str:
    digits = digits_only(normalized)[: len(COUNTRY_CODE) + LOCAL_DIGITS]
    if not digits.startswith(COUNTRY_CODE):
        return normalized
    local = digits[len(COUNTRY_CODE):]
    operator = local[0:2].ljust(2, "_")
    first = local[2:5].ljust(3, "_")
    second = local[5:7].ljust(2, "_")
    third = local[7:9].ljust(2, "_")
    return f"+{COUNTRY_CODE} ({operator}) {first}-{second}-{third}"


def format_currency_uzs(value: int, currency: str = "UZS") -> str:
    # Space-grouped thousands, as ru-RU renders whole sums.
    grouped = f"{int(value):,}".replace(",", " ")
    return f"{grouped} {currency}" if currency else grouped
