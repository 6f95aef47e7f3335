import re
from typing import Any, Dict, Optional

_NON_DIGITS = re.compile(r"\D")

PHONE_FIELDS = {"phone", "customer_phone"}


def sanitize_string(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return value.strip()


def sanitize_phone(value: Optional[str]) -> Optional[str]:
    """Strip everything but digits from a phone number"""
    if not isinstance(value, str):
        return value
    return _NON_DIGITS.sub("", value)


def sanitize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Trim strings and normalise phone numbers in a field mapping (nested dicts included)"""
    cleaned: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in PHONE_FIELDS:
            cleaned[key] = sanitize_phone(value)
        elif isinstance(value, str):
            cleaned[key] = sanitize_string(value)
        elif isinstance(value, dict):
            cleaned[key] = sanitize_fields(value)
        else:
            cleaned[key] = value
    return cleaned
