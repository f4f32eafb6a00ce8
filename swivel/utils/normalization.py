"""Input normalization shared by sign-up, provisioning and intake."""

import re
from datetime import datetime, timezone
from typing import Optional


def normalize_optional(value: Optional[str]) -> Optional[str]:
    """Trim a free-text value; blank becomes None."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim an email address."""
    if not email:
        return None
    return email.strip().lower() or None


def normalize_abn(abn: Optional[str]) -> Optional[str]:
    """
    Normalize an Australian Business Number for storage.

    Spaces and hyphens are removed when what remains is all digits
    ("51-824-753-556" -> "51824753556"). Anything else is kept as trimmed
    free text. Not checksum-validated.
    """
    trimmed = normalize_optional(abn)
    if trimmed is None:
        return None
    compact = re.sub(r"[\s-]+", "", trimmed)
    return compact if compact.isdigit() else trimmed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
