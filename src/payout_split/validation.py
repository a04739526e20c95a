"""Structural validation and sanitization of recipient and group records."""

import logging
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from .colors import is_valid_color
from .models import Group, Recipient, RecipientKind

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r"<[^>]*>")

KIND_TAGS = frozenset(kind.value for kind in RecipientKind)

HTML_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
    "`": "&#96;",
}


def strip_tags(text: str) -> str:
    """Remove every `<...>` substring. Not a full HTML sanitizer."""
    return TAG_PATTERN.sub("", text)


def escape_html(text: str) -> str:
    """Replace < > " ' and backtick with HTML entities."""
    return "".join(HTML_ESCAPES.get(char, char) for char in text)


def is_number(value: Any) -> bool:
    """True for int/float values, excluding bool."""
    return isinstance(value, int | float) and not isinstance(value, bool)


def coerce_value(raw: Any) -> float:
    """
    Coerce user input to a non-negative, finite float.

    Numbers and numeric strings are accepted; anything else, including NaN,
    infinities and negative numbers, becomes 0.
    """
    if is_number(raw):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0

    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def _as_mapping(candidate: Any) -> Mapping[str, Any] | None:
    if isinstance(candidate, Recipient | Group):
        return candidate.model_dump()
    if isinstance(candidate, Mapping):
        return candidate
    return None


def is_valid_recipient(candidate: Any) -> bool:
    """
    Check a candidate recipient's structural well-formedness.

    Args:
        candidate: A Recipient or a mapping with recipient fields

    Returns:
        True iff id is a non-empty string, name is a string, value is a
        number, kind (if present) is a recognized tag, color (if present)
        is a hex color or palette entry and group_id (if present) is a string
    """
    data = _as_mapping(candidate)
    if data is None:
        return False

    record_id = data.get("id")
    if not isinstance(record_id, str) or not record_id:
        return False
    if not isinstance(data.get("name"), str):
        return False
    if not is_number(data.get("value")):
        return False

    kind = data.get("kind")
    if kind is not None and kind not in KIND_TAGS:
        return False

    color = data.get("color")
    if color is not None and not is_valid_color(color):
        return False

    group_id = data.get("group_id")
    return group_id is None or isinstance(group_id, str)


def is_valid_group(candidate: Any) -> bool:
    """Check a candidate group's structural well-formedness."""
    data = _as_mapping(candidate)
    if data is None:
        return False

    group_id = data.get("id")
    if not isinstance(group_id, str) or not group_id:
        return False
    if not isinstance(data.get("name"), str):
        return False

    expanded = data.get("expanded")
    if expanded is not None and not isinstance(expanded, bool):
        return False

    return is_valid_color(data.get("color"))


def filter_valid_recipients(candidates: Iterable[Any]) -> tuple[list[Recipient], int]:
    """
    Drop malformed recipient records, logging each drop.

    Accepted records are returned as Recipient copies with sanitized names and
    coerced values. Dropping is best-effort: nothing is raised.

    Returns:
        Tuple of (valid recipients, number dropped)
    """
    valid: list[Recipient] = []
    dropped = 0

    for candidate in candidates:
        if not is_valid_recipient(candidate):
            logger.warning(f"Invalid recipient filtered out: {candidate!r}")
            dropped += 1
            continue

        data = dict(_as_mapping(candidate) or {})
        data["name"] = strip_tags(data["name"])
        data["value"] = coerce_value(data["value"])
        data["payout"] = 0.0
        if data.get("kind") is None:
            data.pop("kind", None)
        valid.append(Recipient.model_validate(data))

    return valid, dropped


def filter_valid_groups(candidates: Iterable[Any]) -> tuple[list[Group], int]:
    """Drop malformed group records, logging each drop."""
    valid: list[Group] = []
    dropped = 0

    for candidate in candidates:
        if not is_valid_group(candidate):
            logger.warning(f"Invalid group filtered out: {candidate!r}")
            dropped += 1
            continue

        data = dict(_as_mapping(candidate) or {})
        data["name"] = strip_tags(data["name"])
        if data.get("expanded") is None:
            data.pop("expanded", None)
        valid.append(Group.model_validate(data))

    return valid, dropped
