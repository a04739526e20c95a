"""Color palette and deterministic recipient colors."""

import re

from .models import Recipient

# Entries repeat; the length is part of the id -> color mapping, so keep it.
PALETTE: tuple[str, ...] = (
    "#3B82F6",  # Blue
    "#F97316",  # Orange
    "#10B981",  # Green
    "#EF4444",  # Red
    "#8B5CF6",  # Purple
    "#F59E0B",  # Amber
    "#DB2777",  # Fuchsia
    "#16A34A",  # Green
    "#9333EA",  # Purple
    "#D946EF",  # Magenta
    "#B45309",  # Brown
    "#4F46E5",  # Indigo
    "#0D9488",  # Dark Teal
    "#A21CAF",  # Dark Magenta
    "#15803D",  # Forest Green
    "#B91C1C",  # Burgundy
    "#1E40AF",  # Navy Blue
    "#C2410C",  # Burnt Orange
    "#0284C7",  # Ocean Blue
    "#4338CA",  # Deep Blue
    "#A16207",  # Gold
    "#BE185D",  # Raspberry
    "#0F766E",  # Deep Teal
    "#7E22CE",  # Royal Purple
    "#1D4ED8",  # Cobalt Blue
    "#065F46",  # Hunter Green
    "#9D174D",  # Crimson
    "#CA8A04",  # Mustard
    "#0F172A",  # Navy Black
    "#166534",  # Jungle Green
    "#701A75",  # Plum
    "#C026D3",  # Bright Purple
    "#B45309",  # Cinnamon
    "#0E7490",  # Blue Lagoon
    "#1E3A8A",  # Dark Navy
    "#65A30D",  # Avocado
    "#A16207",  # Bronze
    "#BE123C",  # Ruby
)

SURPLUS_COLOR = "#E5E7EB"
OVERDRAW_COLOR = "#EF4444"

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


def is_valid_color(color: object) -> bool:
    """True for a #RRGGBB string or a palette entry."""
    if not isinstance(color, str):
        return False
    return bool(HEX_COLOR_PATTERN.match(color)) or color in PALETTE


def recipient_color(recipient_id: str) -> str:
    """
    Derive a palette color from a recipient id.

    The sum of the id's code points picks the palette slot, so the same id
    always maps to the same color.
    """
    hash_code = sum(ord(char) for char in recipient_id)
    return PALETTE[hash_code % len(PALETTE)]


def resolve_color(recipient: Recipient) -> str:
    """Explicit color if set, otherwise the id-derived one."""
    return recipient.color or recipient_color(recipient.id)
