"""
Idempotent normalizers for coercing raw CSV strings into typed field values.

All normalizers must be idempotent: normalized(normalized(x)) == normalized(x)
Blank handling is the caller's job: every normalizer here rejects empty input.
"""
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional, Any, List
import phonenumbers
from email_validator import validate_email, EmailNotValidError


class NormalizeError(Exception):
    """Raised when normalization fails and cannot be recovered."""

    pass


TRUTHY = {"true", "t", "yes", "y", "1"}
FALSY = {"false", "f", "no", "n", "0"}


def normalize_phone(value: Optional[str], default_region: str = "GH") -> str:
    """
    Normalize a phone number to E.164 ("+233201111111").

    Numbers without a leading "+" are parsed against ``default_region``.

    Raises:
        NormalizeError: If the number cannot be parsed or is not possible
    """
    if not value:
        raise NormalizeError("Phone number is empty or None")

    raw = str(value).strip()
    try:
        parsed = phonenumbers.parse(raw, None if raw.startswith("+") else default_region)
    except phonenumbers.NumberParseException as e:
        raise NormalizeError(f"Invalid phone number: {value} ({e})")

    if not phonenumbers.is_possible_number(parsed):
        raise NormalizeError(f"Invalid phone number: {value}")

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def normalize_email(value: Optional[str]) -> str:
    """
    Normalize email address to lowercase with validation.

    Idempotent: normalize_email("USER@EXAMPLE.COM") == "user@example.com"

    Raises:
        NormalizeError: If email is invalid
    """
    if not value:
        raise NormalizeError("Email is empty or None")

    email = str(value).strip().lower()

    # Basic validation
    if "@" not in email or "." not in email.split("@")[1]:
        raise NormalizeError(f"Invalid email format: {value}")

    try:
        validated = validate_email(email, check_deliverability=False)
        return validated.normalized
    except EmailNotValidError as e:
        raise NormalizeError(f"Invalid email: {e}")


def normalize_date_any(value: Optional[Any]) -> str:
    """
    Normalize date to ISO format "YYYY-MM-DD".

    Tries multiple date formats:
    - ISO: YYYY-MM-DD (optionally with a time part)
    - US: mm/dd/yyyy, mm-dd-yyyy
    - EU: dd/mm/yyyy, dd-mm-yyyy
    - Alternative: YYYY/MM/DD
    - Named months: "Jan 15, 2024", "15 Jan 2024"

    Idempotent: normalize_date_any("2024-01-15") == "2024-01-15"

    Raises:
        NormalizeError: If date cannot be parsed
    """
    if not value:
        raise NormalizeError("Date is empty or None")

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    value_str = str(value).strip()

    # ISO date, possibly followed by a time component
    iso = re.match(r"^(\d{4}-\d{2}-\d{2})(?:[T ].*)?$", value_str)
    if iso:
        try:
            return datetime.strptime(iso.group(1), "%Y-%m-%d").strftime("%Y-%m-%d")
        except ValueError:
            pass  # Invalid date, continue trying other formats

    formats = [
        "%m/%d/%Y",  # US: 01/15/2024
        "%d/%m/%Y",  # EU: 15/01/2024
        "%m-%d-%Y",  # US: 01-15-2024
        "%d-%m-%Y",  # EU: 15-01-2024
        "%Y/%m/%d",  # Alternative: 2024/01/15
        "%b %d, %Y",  # Jan 15, 2024
        "%B %d, %Y",  # January 15, 2024
        "%d %b %Y",  # 15 Jan 2024
        "%d %B %Y",  # 15 January 2024
        "%Y%m%d",  # Compact: 20240115
    ]

    for fmt in formats:
        try:
            parsed = datetime.strptime(value_str, fmt)
            return parsed.strftime("%Y-%m-%d")
        except ValueError:
            continue

    # Excel serial date (days since 1899-12-30)
    try:
        serial = float(value_str)
        if 1 < serial < 100000:
            parsed = datetime(1899, 12, 30) + timedelta(days=serial)
            return parsed.strftime("%Y-%m-%d")
    except (ValueError, OverflowError):
        pass

    raise NormalizeError(f"Cannot parse date: {value}")


def coerce_bool(value: Optional[Any]) -> bool:
    """
    Coerce value to a boolean.

    Recognizes:
    - Truthy: yes, y, true, t, 1
    - Falsy: no, n, false, f, 0

    Raises:
        NormalizeError: If value cannot be interpreted as boolean
    """
    if value is None or value == "":
        raise NormalizeError("Boolean value is empty or None")

    if isinstance(value, bool):
        return value

    val_str = str(value).lower().strip()
    if val_str in TRUTHY:
        return True
    if val_str in FALSY:
        return False

    raise NormalizeError(f"Cannot coerce to boolean: {value}")


def coerce_decimal(value: Optional[Any]) -> Decimal:
    """Coerce to Decimal. Thousands separators are stripped ("1,200.50")."""
    if value is None or value == "":
        raise NormalizeError("Number is empty or None")

    if isinstance(value, bool):
        raise NormalizeError(f"Invalid number: {value}")

    text = str(value).strip().replace(",", "")
    try:
        number = Decimal(text)
    except InvalidOperation:
        raise NormalizeError(f"Invalid number: {value}")

    if not number.is_finite():
        raise NormalizeError(f"Invalid number: {value}")
    return number


def coerce_int(value: Optional[Any]) -> int:
    """Coerce to int; "12.0" is accepted, "12.5" is not."""
    number = coerce_decimal(value)
    if number != number.to_integral_value():
        raise NormalizeError(f"Invalid integer: {value}")
    return int(number)


def coerce_enum(value: Optional[str], allowed: List[str]) -> str:
    """
    Coerce value to one of ``allowed``, matching case-insensitively.

    Idempotent: coerce_enum("active", ["ACTIVE"]) == "ACTIVE"

    Raises:
        NormalizeError: If value is not an allowed member
    """
    if not value:
        raise NormalizeError("Enum value is empty or None")

    value_str = str(value).strip()
    for candidate in allowed:
        if candidate.lower() == value_str.lower():
            return candidate

    raise NormalizeError(
        f"Unknown enum value: '{value_str}' (expected one of {', '.join(allowed)})"
    )
