# =======================================================================================
# library_kiosk/utils/validators.py - Validation Helpers
# =======================================================================================
import re
from typing import Optional
from .exceptions import ValidationError

_INDEX_RE = re.compile(r"^[A-Z0-9\-_]+$", re.IGNORECASE)
_NAME_RE = re.compile(r"^[a-zA-Z\s\-'.]+$")
_PHONE_RE = re.compile(r"^\+?[\d\s\-()]{7,20}$")
_CARD_UID_RE = re.compile(r"^[A-Z0-9\-_:]+$")
_ITEM_TAG_RE = re.compile(r"^[A-Z0-9\-_./]+$", re.IGNORECASE)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class LedgerValidator:
    """Validates and normalizes the fields kiosk operators type or scan."""

    @staticmethod
    def index_number(value: Optional[str]) -> str:
        value = (value or "").strip()
        if len(value) < 3:
            raise ValidationError("Index number must be at least 3 characters long", "index_number")
        if len(value) > 50:
            raise ValidationError("Index number must be at most 50 characters long", "index_number")
        if not _INDEX_RE.match(value):
            raise ValidationError(
                "Index number must contain only letters, numbers, hyphens, and underscores",
                "index_number",
            )
        return value

    @staticmethod
    def full_name(value: Optional[str]) -> str:
        value = (value or "").strip()
        if len(value) < 2:
            raise ValidationError("Full name must be at least 2 characters long", "full_name")
        if len(value) > 100:
            raise ValidationError("Full name must be at most 100 characters long", "full_name")
        if not _NAME_RE.match(value):
            raise ValidationError(
                "Full name must contain only letters, spaces, hyphens, and apostrophes",
                "full_name",
            )
        return value

    @staticmethod
    def optional_text(value: Optional[str], field: str, max_length: int) -> Optional[str]:
        value = _blank_to_none(value)
        if value is not None and len(value) > max_length:
            raise ValidationError(f"{field} must be at most {max_length} characters long", field)
        return value

    @staticmethod
    def phone(value: Optional[str]) -> Optional[str]:
        value = _blank_to_none(value)
        if value is not None and not _PHONE_RE.match(value):
            raise ValidationError("Phone number format is invalid", "phone")
        return value

    @staticmethod
    def card_uid(value: Optional[str]) -> str:
        """
        Normalize a scanned or typed card UID.

        UIDs are opaque: the value is trimmed and upper-cased, so "ca4d1ce0"
        typed at the desk matches "CA4D1CE0" from the reader.
        """
        if not value or not isinstance(value, str):
            raise ValidationError("UID is required and must be a string", "card_uid")

        cleaned = value.strip().upper()
        if len(cleaned) < 4 or len(cleaned) > 50:
            raise ValidationError("UID must be between 4 and 50 characters long", "card_uid")
        if not _CARD_UID_RE.match(cleaned):
            raise ValidationError(
                "UID must contain only letters, numbers, hyphens, underscores, and colons",
                "card_uid",
            )
        return cleaned

    @classmethod
    def optional_card_uid(cls, value: Optional[str]) -> Optional[str]:
        value = _blank_to_none(value)
        return cls.card_uid(value) if value is not None else None

    @staticmethod
    def item_tag(value: Optional[str]) -> str:
        value = (value or "").strip()
        if not value:
            raise ValidationError("Enter item tag (or scan item)", "item_tag")
        if len(value) > 100:
            raise ValidationError("Item tag must be at most 100 characters long", "item_tag")
        if not _ITEM_TAG_RE.match(value):
            raise ValidationError(
                "Item tag must contain only letters, numbers, hyphens, underscores, dots, and slashes",
                "item_tag",
            )
        return value

    @staticmethod
    def clamp_days(days: Optional[int], default: int, minimum: int, maximum: int) -> int:
        """Clamp a requested loan duration into [minimum, maximum]."""
        if days is None:
            days = default
        return max(minimum, min(maximum, int(days)))
