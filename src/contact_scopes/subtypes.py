"""Display labels for phone and email subtype codes.

The subtype column is nominally an integer code but is stored as text, and
some producers write free-text labels into it. The raw value is classified
once by :func:`parse_subtype`; :func:`resolve_subtype_label` never raises.
"""

from __future__ import annotations

import logging
import re

from contact_scopes.errors import UnsupportedEntityTypeError
from contact_scopes.models import EntityType, Subtype, SubtypeCode, SubtypeText

logger = logging.getLogger(__name__)

# Codes start at 1; a negative code asks a table for its custom-type label.
CUSTOM_SUBTYPE_SENTINEL = -1
CUSTOM_LABEL = "Custom"

PHONE_TYPE_LABELS: dict[int, str] = {
    1: "Home",
    2: "Mobile",
    3: "Work",
    4: "Work Fax",
    5: "Home Fax",
    6: "Pager",
    7: "Other",
    8: "Callback",
    9: "Car",
    10: "Company Main",
    11: "ISDN",
    12: "Main",
    13: "Other Fax",
    14: "Radio",
    15: "Telex",
    16: "TTY TDD",
    17: "Work Mobile",
    18: "Work Pager",
    19: "Assistant",
    20: "MMS",
}

EMAIL_TYPE_LABELS: dict[int, str] = {
    1: "Home",
    2: "Work",
    3: "Other",
    4: "Mobile",
}

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


def parse_int32(text: str) -> int | None:
    """Parse signed 32-bit decimal text; whitespace and digit separators are rejected."""
    if _INTEGER_PATTERN.fullmatch(text) is None:
        return None
    value = int(text)
    if _INT32_MIN <= value <= _INT32_MAX:
        return value
    return None


def parse_subtype(raw: str | int | None) -> Subtype:
    """Classify a stored subtype value as an integer code, free text, or absent.

    Integer syntax is a signed 32-bit decimal without surrounding whitespace;
    anything else, the empty string included, is free text.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        return SubtypeText(text=str(raw))
    if isinstance(raw, int):
        if _INT32_MIN <= raw <= _INT32_MAX:
            return SubtypeCode(code=raw)
        return SubtypeText(text=str(raw))
    value = parse_int32(raw)
    if value is not None:
        return SubtypeCode(code=value)
    return SubtypeText(text=raw)


def get_type_label(entity_type: EntityType, code: int) -> str:
    """Return the table label for *code*, or the custom-type label when out of range."""
    match entity_type:
        case EntityType.NUMBER:
            table = PHONE_TYPE_LABELS
        case EntityType.EMAIL:
            table = EMAIL_TYPE_LABELS
        case _:
            raise UnsupportedEntityTypeError(entity_type)
    return table.get(code, CUSTOM_LABEL)


def resolve_subtype_label(entity_type: EntityType, subtype: Subtype) -> str:
    """Return the display label for a parsed subtype of a NUMBER or EMAIL row."""
    match subtype:
        case SubtypeText(text=text):
            logger.debug("Using free-text subtype label %r for %s", text, entity_type.name)
            return text
        case SubtypeCode(code=code):
            return get_type_label(entity_type, code)
        case None:
            return get_type_label(entity_type, CUSTOM_SUBTYPE_SENTINEL)
