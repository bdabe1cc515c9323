"""
Input normalization for public order creation.

Customer fields come from an embeddable widget on third-party pages, so every
free-text value is stripped of markup before it is length-checked, stored, or
written to a seller's spreadsheet.
"""
import re

PHONE_PATTERN = re.compile(r"^(05|06|07)\d{8}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-.()]")

MAX_NAME_LENGTH = 100
MAX_ADDRESS_LENGTH = 500

_DANGEROUS_PATTERNS = [
    re.compile(r"<script\b[^>]*>[\s\S]*?</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<iframe\b[^>]*>[\s\S]*?</iframe>", re.IGNORECASE),
    re.compile(r"<object\b[^>]*>[\s\S]*?</object>", re.IGNORECASE),
    re.compile(r"<embed\b[^>]*>", re.IGNORECASE),
]
_HTML_TAG = re.compile(r"<[^>]*>")


def sanitize_text(value: str) -> str:
    """Strip script-bearing markup and any remaining HTML tags, then trim."""
    cleaned = value
    for pattern in _DANGEROUS_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return _HTML_TAG.sub("", cleaned).strip()


def normalize_phone(phone: str) -> str:
    """
    Normalize an Algerian mobile number to its 10-digit local form.

    "+213 551 234 567" -> "0551234567"
    "055-123-4567"     -> "0551234567"
    """
    digits = _PHONE_SEPARATORS.sub("", phone)
    if digits.startswith("+213"):
        return "0" + digits[4:]
    if digits.startswith("213"):
        return "0" + digits[3:]
    return digits


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.fullmatch(phone))


def parse_quantity(value) -> int | None:
    """Return the quantity as an int, or None when it is not a positive integer.

    A missing quantity defaults to 1. JSON booleans are rejected even though
    Python treats them as ints.
    """
    if value is None:
        return 1
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 1:
        return None
    return value
