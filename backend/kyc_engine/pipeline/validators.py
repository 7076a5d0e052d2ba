"""Identifier sanitizers shared by the boundary parse step and the validator.

Each sanitizer returns a normalized value when the input is well-formed and
``None`` otherwise; callers treat ``None`` as "invalid or incomplete".
"""

import re
from datetime import date, datetime
from typing import Any, Optional

RFC_RE = re.compile(r"^[A-Z&Ñ]{3,4}\d{6}[A-Z0-9]{2,3}$")
CURP_RE = re.compile(r"^[A-Z]{4}\d{6}[HM][A-Z]{5}[A-Z0-9]\d$")
CLABE_RE = re.compile(r"^\d{18}$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Persona física RFC: 4 letters + 6 digits + 3 homoclave chars (13 total)
RFC_FISICA_RE = re.compile(r"^[A-Z&Ñ]{4}\d{6}[A-Z0-9]{3}$")


def normalize_empty_to_null(value: Any) -> Any:
    """Deeply convert empty / whitespace-only strings to ``None``."""
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, list):
        return [normalize_empty_to_null(v) for v in value]
    if isinstance(value, dict):
        return {k: normalize_empty_to_null(v) for k, v in value.items()}
    return value


def sanitize_rfc(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = re.sub(r"[\s\-]", "", value).upper()
    return cleaned if RFC_RE.match(cleaned) else None


def sanitize_curp(value: Optional[str]) -> Optional[str]:
    """CURP must be exactly 18 characters in the RENAPO layout."""
    if not value:
        return None
    cleaned = value.strip().upper()
    return cleaned if CURP_RE.match(cleaned) else None


def sanitize_clabe(value: Optional[str]) -> Optional[str]:
    """CLABE must be exactly 18 digits once separators are removed."""
    if not value:
        return None
    cleaned = re.sub(r"[\s\-]", "", str(value))
    return cleaned if CLABE_RE.match(cleaned) else None


def sanitize_date(value: Any) -> Optional[str]:
    """Return ``YYYY-MM-DD`` if the value is a real ISO calendar date."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not value or not isinstance(value, str):
        return None
    trimmed = value.strip()[:10]
    if not ISO_DATE_RE.match(trimmed):
        return None
    try:
        return date.fromisoformat(trimmed).isoformat()
    except ValueError:
        return None


def is_persona_fisica_rfc(rfc: Optional[str]) -> bool:
    cleaned = sanitize_rfc(rfc)
    return bool(cleaned and RFC_FISICA_RE.match(cleaned))
