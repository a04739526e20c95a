"""CSV export and import of payout snapshots."""

import csv
import logging
import math
import random
import re
import uuid
from collections.abc import Sequence
from pathlib import Path

from .colors import PALETTE, is_valid_color, resolve_color
from .config import Settings, load_settings
from .exceptions import ImportFormatError, ImportIOError, MalformedInputError
from .models import Group, ImportResult, Recipient, RecipientKind
from .validation import escape_html, strip_tags

logger = logging.getLogger(__name__)

HEADER = ["Name", "Type", "Value", "Payout ($)", "Percentage (%)", "Color", "GroupID"]
TOTAL_ROW_NAME = "Total"
TOTAL_MARKER = "__TOTAL_PAYOUT__"
GROUP_MARKER = "__GROUP_DATA__"
GROUP_HEADER = [GROUP_MARKER, "ID", "Name", "Color", "Expanded"]

KIND_BY_TAG = {kind.value: kind for kind in RecipientKind}
LEADING_NUMBER_PATTERN = re.compile(
    r"\s*[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)


# ============================================================================
# Export
# ============================================================================


def _quote(text: str) -> str:
    """Always-quoted field with internal quotes doubled. Newlines become spaces."""
    flat = " ".join(text.splitlines())
    return '"' + flat.replace('"', '""') + '"'


def _field(text: str) -> str:
    """Quote a field only when it contains a delimiter or quote."""
    if any(char in text for char in ',"\r\n'):
        return _quote(text)
    return text


def _format_value(value: float) -> str:
    """Shortest text for a value: whole numbers without a trailing .0"""
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(value)


def serialize(
    recipients: Sequence[Recipient], groups: Sequence[Group], total_amount: float
) -> str:
    """
    Serialize a snapshot to CSV text.

    Layout:
    - Header row, then one row per recipient
    - A human-readable totals row (not parsed back)
    - The __TOTAL_PAYOUT__ marker row carrying the total amount
    - If groups exist: a blank line, the group sub-header and one row per group

    Args:
        recipients: Recipients with payouts already computed
        groups: Groups to persist
        total_amount: The total being distributed

    Returns:
        CSV text ending with a newline
    """
    lines = [",".join(HEADER)]

    for recipient in recipients:
        if total_amount > 0:
            percentage = f"{recipient.payout / total_amount * 100:.2f}"
        else:
            percentage = "0"

        row = [
            _quote(recipient.name),
            recipient.kind.value,
            _format_value(recipient.value),
            f"{recipient.payout:.2f}",
            percentage,
            _field(resolve_color(recipient)),
            _field(recipient.group_id or ""),
        ]
        lines.append(",".join(row))

    lines.append(f'"{TOTAL_ROW_NAME}",,,"{total_amount:.2f}","100.00",')
    lines.append(f'"{TOTAL_MARKER}",,"{total_amount:.2f}",,')

    if groups:
        lines.append("")
        lines.append(",".join(GROUP_HEADER))
        for group in groups:
            expanded = "true" if group.expanded else "false"
            lines.append(
                f"{_quote(GROUP_MARKER)},{_quote(group.id)},{_quote(group.name)},"
                f"{_quote(group.color)},{expanded}"
            )

    return "\n".join(lines) + "\n"


def write_csv_file(path: Path | str, text: str) -> None:
    """Write CSV text as UTF-8."""
    Path(path).write_text(text, encoding="utf-8", newline="")


# ============================================================================
# Import
# ============================================================================


def parse_line(line: str) -> list[str]:
    """
    Split one line into fields.

    Quoted fields may contain commas; doubled quotes decode to one quote.
    Fields never span lines.
    """
    return next(csv.reader([line]), [])


def _cell(cells: list[str], index: int | None) -> str:
    if index is None or index >= len(cells):
        return ""
    return cells[index].strip()


def _parse_float(text: str) -> float | None:
    """
    Read the leading number of a cell, ignoring trailing text ("12abc" -> 12).

    Overflowing numbers and "Infinity" come back as infinities for the caller
    to clamp. Returns None when no number leads the cell.
    """
    match = LEADING_NUMBER_PATTERN.match(text)
    if match is None:
        return None
    return float(match.group(0))


def _clamp(value: float, upper: float) -> float:
    return min(max(value, 0.0), upper)


def _parse_kind(tag: str) -> RecipientKind:
    return KIND_BY_TAG.get(tag.strip().lower(), RecipientKind.SHARE)


def _value_ceiling(kind: RecipientKind, settings: Settings) -> float:
    if kind == RecipientKind.FIXED_AMOUNT:
        return settings.max_fixed_value
    if kind == RecipientKind.PERCENTAGE:
        return settings.max_percentage_value
    return settings.max_share_value


def new_batch_prefix() -> str:
    """Id prefix for one import batch; never a plain integer like session ids."""
    return f"import-{uuid.uuid4().hex[:8]}"


def deserialize(
    text: str,
    batch_prefix: str | None = None,
    settings: Settings | None = None,
    rng: random.Random | None = None,
) -> ImportResult:
    """
    Parse CSV text into a proposed snapshot.

    Recipient names are HTML-escaped, values clamped by kind, invalid colors
    dropped, and ids synthesized as "<batch_prefix>-<index>". Payouts are
    always 0; the session recomputes them. Rows past max_import_rows are
    ignored with a warning. Recipients pointing at a group the file does not
    define are left ungrouped.

    Args:
        text: CSV content
        batch_prefix: Id prefix for this batch (random when omitted)
        settings: Limits and clamps (loaded when omitted)
        rng: Picks replacement colors for groups with invalid colors

    Returns:
        The parsed snapshot

    Raises:
        ImportFormatError: Oversized content, fewer than two rows, a header
            with fewer than three cells, or no name column
    """
    if not isinstance(text, str):
        raise MalformedInputError(f"CSV content must be text, got {type(text).__name__}")

    settings = settings or load_settings()
    rng = rng or random.Random()
    batch_prefix = batch_prefix or new_batch_prefix()

    if len(text.encode("utf-8")) > settings.max_import_bytes:
        raise ImportFormatError(
            f"CSV content exceeds {settings.max_import_bytes} bytes"
        )

    lines = [line for line in text.lstrip("\ufeff").splitlines() if line.strip()]
    if len(lines) < 2:
        raise ImportFormatError(
            "CSV file must contain a header row and at least one data row"
        )

    header = [cell.strip().lower() for cell in parse_line(lines[0])]
    if len(header) < 3:
        raise ImportFormatError("CSV header must have at least 3 columns")

    columns: dict[str, int] = {}
    for index, cell in enumerate(header):
        columns.setdefault(cell, index)

    if "name" not in columns:
        raise ImportFormatError("CSV header is missing the required 'name' column")

    name_col = columns["name"]
    type_col = columns.get("type")
    value_col = columns.get("value")
    color_col = columns.get("color")
    group_col = columns.get("groupid")

    recipients: list[Recipient] = []
    groups: list[Group] = []
    total_amount: float | None = None
    skipped_rows = 0
    in_group_section = False

    for line in lines[1:]:
        cells = parse_line(line)
        first = _cell(cells, 0)

        if first == GROUP_MARKER:
            in_group_section = True
            if _cell(cells, 1).lower() == "id":
                continue  # sub-header

        if in_group_section:
            group = _parse_group_row(cells, rng)
            if group is not None:
                groups.append(group)
            continue

        name = _cell(cells, name_col)
        if name == TOTAL_MARKER:
            amount = _parse_float(_cell(cells, value_col if value_col is not None else 2))
            if amount is not None:
                total_amount = _clamp(amount, settings.max_total_amount)
            continue
        if name.lower() == TOTAL_ROW_NAME.lower() or not name:
            continue

        if len(recipients) >= settings.max_import_rows:
            skipped_rows += 1
            continue

        kind = _parse_kind(_cell(cells, type_col))
        raw_value = _parse_float(_cell(cells, value_col))
        value = 1.0 if raw_value is None else raw_value
        color = _cell(cells, color_col)

        recipients.append(
            Recipient(
                id=f"{batch_prefix}-{len(recipients)}",
                name=escape_html(name),
                kind=kind,
                value=_clamp(value, _value_ceiling(kind, settings)),
                payout=0.0,
                color=color if is_valid_color(color) else None,
                group_id=_cell(cells, group_col) or None,
            )
        )

    if skipped_rows:
        logger.warning(
            f"Import limited to {settings.max_import_rows} recipients; "
            f"{skipped_rows} row(s) ignored"
        )

    group_ids = {group.id for group in groups}
    for index, recipient in enumerate(recipients):
        if recipient.group_id and recipient.group_id not in group_ids:
            logger.debug(f"Ungrouping {recipient.id}: unknown group {recipient.group_id}")
            recipients[index] = recipient.model_copy(update={"group_id": None})

    logger.info(
        f"Parsed {len(recipients)} recipients and {len(groups)} groups "
        f"(batch {batch_prefix})"
    )

    return ImportResult(
        recipients=recipients,
        groups=groups,
        total_amount=total_amount,
        batch_prefix=batch_prefix,
        skipped_rows=skipped_rows,
    )


def _parse_group_row(cells: list[str], rng: random.Random) -> Group | None:
    group_id = _cell(cells, 1)
    if not group_id:
        logger.warning(f"Group row without an id ignored: {cells!r}")
        return None

    color = _cell(cells, 3)
    return Group(
        id=group_id,
        name=strip_tags(_cell(cells, 2)),
        color=color if is_valid_color(color) else rng.choice(PALETTE),
        expanded=_cell(cells, 4) == "true",
    )


def load_csv_file(path: Path | str, settings: Settings | None = None) -> str:
    """
    Read a CSV file as UTF-8 text.

    Raises:
        ImportIOError: The file is missing, unreadable, or not UTF-8
        ImportFormatError: The file exceeds max_file_bytes
    """
    settings = settings or load_settings()
    path = Path(path)

    try:
        size = path.stat().st_size
        if size > settings.max_file_bytes:
            raise ImportFormatError(
                f"{path.name} is {size} bytes; the limit is {settings.max_file_bytes}"
            )
        data = path.read_bytes()
    except OSError as e:
        raise ImportIOError(str(path), f"Could not read {path}: {e}") from e

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportIOError(str(path), f"{path} is not valid UTF-8 text") from e
