"""In-memory stores owning recipient and group records."""

import logging
import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .colors import PALETTE, is_valid_color
from .config import Settings, load_settings
from .engine import apply_payouts
from .exceptions import MalformedInputError
from .models import (
    Distribution,
    Group,
    Notice,
    NoticeKind,
    Recipient,
    RecipientKind,
)
from .validation import (
    coerce_value,
    filter_valid_groups,
    filter_valid_recipients,
    is_valid_recipient,
    strip_tags,
)

logger = logging.getLogger(__name__)

RECIPIENT_UPDATE_FIELDS = frozenset({"name", "kind", "value", "color", "group_id"})
GROUP_UPDATE_FIELDS = frozenset({"name", "color", "expanded"})


def _highest_numeric_id(ids: Iterable[str]) -> int:
    """Largest id that parses as an integer, or 0."""
    highest = 0
    for record_id in ids:
        try:
            highest = max(highest, int(record_id))
        except ValueError:
            continue
    return highest


def _require_mapping(updates: Any) -> Mapping[str, Any]:
    if not isinstance(updates, Mapping):
        raise MalformedInputError(
            f"Updates must be a mapping of field names to values, got {type(updates).__name__}"
        )
    return updates


class _NoticeBoard:
    """Collects notices until the collaborator drains them."""

    def __init__(self) -> None:
        self._notices: list[Notice] = []

    def _notify(
        self,
        kind: NoticeKind,
        message: str,
        requested: int | None = None,
        applied: int | None = None,
    ) -> None:
        logger.warning(message)
        self._notices.append(
            Notice(kind=kind, message=message, requested=requested, applied=applied)
        )

    def drain_notices(self) -> list[Notice]:
        """Return and forget all pending notices."""
        notices, self._notices = self._notices, []
        return notices


# ============================================================================
# Edit scope & drag-and-drop commands
# ============================================================================


@dataclass(frozen=True)
class EditScope:
    """The recipient ids one update command applies to."""

    targets: frozenset[str]
    bulk: bool = False

    @classmethod
    def resolve(cls, target_id: str, selection: set[str]) -> "EditScope":
        """Whole selection if the target is part of a multi-selection, else the target."""
        if target_id in selection and len(selection) > 1:
            return cls(targets=frozenset(selection), bulk=True)
        return cls(targets=frozenset({target_id}))


@dataclass(frozen=True)
class ReorderCommand:
    """Move a recipient within the ungrouped list or one group's list."""

    source_index: int
    dest_index: int
    scope: str | None  # group id, None for ungrouped


@dataclass(frozen=True)
class MoveToGroupCommand:
    """Change which group a recipient belongs to."""

    recipient_id: str
    group_id: str | None


GROUP_DROP_PREFIX = "group-"
UNGROUPED_DROP_TARGET = "ungrouped"


def resolve_drop(
    recipients: Sequence[Recipient], active_id: str, over_id: str | None
) -> ReorderCommand | MoveToGroupCommand | None:
    """
    Resolve a drop gesture to exactly one command.

    Targets:
    - "group-<id>": move into that group
    - "ungrouped": move out of any group
    - another recipient in the same scope: reorder within the scope
    - a recipient in another scope: move into that recipient's group

    Returns:
        The command to apply, or None when the drop changes nothing
    """
    if not over_id or over_id == active_id:
        return None

    if over_id.startswith(GROUP_DROP_PREFIX):
        return MoveToGroupCommand(active_id, over_id[len(GROUP_DROP_PREFIX) :])
    if over_id == UNGROUPED_DROP_TARGET:
        return MoveToGroupCommand(active_id, None)

    by_id = {r.id: r for r in recipients}
    active = by_id.get(active_id)
    over = by_id.get(over_id)
    if active is None or over is None:
        return None

    if active.group_id != over.group_id:
        return MoveToGroupCommand(active_id, over.group_id)

    scoped_ids = [r.id for r in recipients if r.group_id == active.group_id]
    return ReorderCommand(
        source_index=scoped_ids.index(active_id),
        dest_index=scoped_ids.index(over_id),
        scope=active.group_id,
    )


# ============================================================================
# Recipient store
# ============================================================================


class RecipientStore(_NoticeBoard):
    """Owns the recipient list and the current multi-selection."""

    def __init__(self, settings: Settings | None = None):
        """Initialize an empty store."""
        super().__init__()
        self.settings = settings or load_settings()
        self._recipients: list[Recipient] = []
        self._selection: set[str] = set()
        self._last_id = 0

    @property
    def recipients(self) -> list[Recipient]:
        return list(self._recipients)

    @property
    def selection(self) -> frozenset[str]:
        return frozenset(self._selection)

    def get(self, recipient_id: str) -> Recipient | None:
        for recipient in self._recipients:
            if recipient.id == recipient_id:
                return recipient
        return None

    def __len__(self) -> int:
        return len(self._recipients)

    def add_recipients(self, count: int, group_id: str | None = None) -> int:
        """
        Add default recipients.

        The count is clamped to max_add_per_call and to the room left under
        max_recipients; any truncation is reported as a notice.

        Args:
            count: Number of recipients requested
            group_id: Optional group for the new recipients

        Returns:
            Number of recipients actually added
        """
        if not isinstance(count, int) or isinstance(count, bool):
            raise MalformedInputError(f"Recipient count must be an integer, got {count!r}")
        if count <= 0:
            return 0

        per_call = self.settings.max_add_per_call
        room = max(0, self.settings.max_recipients - len(self._recipients))
        actual = min(count, per_call, room)

        if actual < count:
            if count > per_call and actual == per_call:
                message = f"Maximum {per_call} recipients can be added at once."
            else:
                message = (
                    f"Too many recipients. Limited to {self.settings.max_recipients} "
                    f"({actual} of {count} added)."
                )
            self._notify(NoticeKind.CAPACITY_EXCEEDED, message, count, actual)

        if actual == 0:
            return 0

        # Never reissue an id, even one whose recipient was removed
        next_id = max(self._last_id, _highest_numeric_id(r.id for r in self._recipients)) + 1
        start_number = len(self._recipients) + 1

        for offset in range(actual):
            self._recipients.append(
                Recipient(
                    id=str(next_id + offset),
                    name=f"Recipient {start_number + offset}",
                    kind=RecipientKind.SHARE,
                    value=1.0,
                    group_id=group_id,
                )
            )

        self._last_id = next_id + actual - 1
        logger.debug(f"Added {actual} recipients (last id {self._last_id})")
        return actual

    def remove_recipient(self, recipient_id: str) -> bool:
        """Remove a recipient and drop it from the selection. Unknown ids are ignored."""
        before = len(self._recipients)
        self._recipients = [r for r in self._recipients if r.id != recipient_id]
        self._selection.discard(recipient_id)
        return len(self._recipients) < before

    def update_recipient(self, recipient_id: str, updates: Mapping[str, Any]) -> int:
        """
        Apply a partial update.

        When the target is part of a multi-selection the update is broadcast
        to every selected recipient. Names are stripped of tags and values
        coerced to non-negative numbers. An update that would leave a record
        malformed (e.g. an invalid color) is rejected for that record and
        reported as a notice.

        Args:
            recipient_id: Target recipient
            updates: Field name -> new value; id and payout are ignored

        Returns:
            Number of recipients updated
        """
        updates = _require_mapping(updates)
        changes = {k: v for k, v in updates.items() if k in RECIPIENT_UPDATE_FIELDS}
        ignored = set(updates) - RECIPIENT_UPDATE_FIELDS
        if ignored:
            logger.debug(f"Ignoring non-editable recipient fields: {sorted(ignored)}")

        if self.get(recipient_id) is None or not changes:
            return 0

        if isinstance(changes.get("name"), str):
            changes["name"] = strip_tags(changes["name"])
        if "value" in changes:
            changes["value"] = coerce_value(changes["value"])
        if isinstance(changes.get("kind"), RecipientKind):
            changes["kind"] = changes["kind"].value

        scope = EditScope.resolve(recipient_id, self._selection)
        if scope.bulk:
            logger.info(f"Applying update to {len(scope.targets)} selected recipients")

        updated = 0
        for index, recipient in enumerate(self._recipients):
            if recipient.id not in scope.targets:
                continue

            candidate = {**recipient.model_dump(), **changes}
            if not is_valid_recipient(candidate):
                self._notify(
                    NoticeKind.VALIDATION_DROPPED,
                    f"Rejected invalid update for recipient {recipient.id}: {changes!r}",
                )
                continue

            self._recipients[index] = Recipient.model_validate(candidate)
            updated += 1

        return updated

    def toggle_selection(self, recipient_id: str) -> None:
        if recipient_id in self._selection:
            self._selection.discard(recipient_id)
        elif self.get(recipient_id) is not None:
            self._selection.add(recipient_id)

    def clear_selection(self) -> None:
        self._selection.clear()

    def move_to_group(self, recipient_id: str, group_id: str | None) -> bool:
        """Reassign a recipient's group; None (or empty) means ungrouped."""
        for index, recipient in enumerate(self._recipients):
            if recipient.id == recipient_id:
                self._recipients[index] = recipient.model_copy(
                    update={"group_id": group_id or None}
                )
                return True
        return False

    def reorder(
        self, source_index: int, dest_index: int, scope: str | None = None
    ) -> bool:
        """
        Move a recipient within one scope's list.

        Indices address the scoped list (ungrouped when scope is None, else
        the members of group `scope`). Out-of-bounds indices are a no-op.
        Recipients outside the scope keep their positions.
        """
        slots = [
            index
            for index, recipient in enumerate(self._recipients)
            if (recipient.group_id or None) == (scope or None)
        ]
        if not (0 <= source_index < len(slots) and 0 <= dest_index < len(slots)):
            return False
        if source_index == dest_index:
            return True

        scoped = [self._recipients[index] for index in slots]
        scoped.insert(dest_index, scoped.pop(source_index))
        for slot, recipient in zip(slots, scoped, strict=True):
            self._recipients[slot] = recipient
        return True

    def ungroup_members(self, group_id: str) -> int:
        """Clear group_id on every member of a group. Returns how many changed."""
        changed = 0
        for index, recipient in enumerate(self._recipients):
            if recipient.group_id == group_id:
                self._recipients[index] = recipient.model_copy(update={"group_id": None})
                changed += 1
        return changed

    def set_recipients(self, candidates: Iterable[Any]) -> int:
        """
        Replace all recipients with validated copies of the candidates.

        Malformed records and duplicate ids are dropped with a notice, the
        result is capped at max_recipients, and the selection is reduced to
        ids that still exist.

        Returns:
            Number of recipients stored
        """
        valid, dropped = filter_valid_recipients(candidates)

        unique: list[Recipient] = []
        seen: set[str] = set()
        for recipient in valid:
            if recipient.id in seen:
                logger.warning(f"Duplicate recipient id filtered out: {recipient.id}")
                dropped += 1
                continue
            seen.add(recipient.id)
            unique.append(recipient)

        if dropped:
            self._notify(
                NoticeKind.VALIDATION_DROPPED,
                f"{dropped} invalid recipient record(s) were skipped.",
                requested=len(unique) + dropped,
                applied=len(unique),
            )

        limit = self.settings.max_recipients
        if len(unique) > limit:
            self._notify(
                NoticeKind.CAPACITY_EXCEEDED,
                f"Too many recipients. Limited to {limit}.",
                requested=len(unique),
                applied=limit,
            )
            unique = unique[:limit]

        self._recipients = unique
        self._selection &= {r.id for r in unique}
        self._last_id = max(self._last_id, _highest_numeric_id(r.id for r in unique))
        return len(unique)

    def write_payouts(self, distribution: Distribution) -> None:
        """Overwrite every recipient's payout; ids missing from the distribution get 0."""
        self._recipients = apply_payouts(self._recipients, distribution)

    def clear(self) -> None:
        """Remove all recipients, the selection, and reset the id counter."""
        self._recipients = []
        self._selection = set()
        self._last_id = 0


# ============================================================================
# Group store
# ============================================================================


class GroupStore(_NoticeBoard):
    """Owns the group list and each group's expanded state."""

    def __init__(self, rng: random.Random | None = None):
        """Initialize an empty store. `rng` only picks cosmetic colors."""
        super().__init__()
        self._rng = rng or random.Random()
        self._groups: list[Group] = []
        self._last_id = 0

    @property
    def groups(self) -> list[Group]:
        return list(self._groups)

    def get(self, group_id: str) -> Group | None:
        for group in self._groups:
            if group.id == group_id:
                return group
        return None

    def __contains__(self, group_id: object) -> bool:
        return any(group.id == group_id for group in self._groups)

    def add_group(self) -> Group:
        """Create a group with a default name and a random palette color."""
        group = Group(
            id=str(self._last_id + 1),
            name=f"Group {len(self._groups) + 1}",
            color=self._rng.choice(PALETTE),
            expanded=True,
        )
        self._groups.append(group)
        self._last_id += 1
        return group

    def remove_group(self, group_id: str) -> bool:
        """Remove a group. Member recipients are ungrouped by the caller."""
        before = len(self._groups)
        self._groups = [g for g in self._groups if g.id != group_id]
        return len(self._groups) < before

    def update_group(self, group_id: str, updates: Mapping[str, Any]) -> bool:
        """Apply a partial update to name, color, or expanded."""
        updates = _require_mapping(updates)
        changes = {k: v for k, v in updates.items() if k in GROUP_UPDATE_FIELDS}

        for index, group in enumerate(self._groups):
            if group.id != group_id:
                continue

            if isinstance(changes.get("name"), str):
                changes["name"] = strip_tags(changes["name"])

            invalid = (
                ("name" in changes and not isinstance(changes["name"], str))
                or ("color" in changes and not is_valid_color(changes["color"]))
                or ("expanded" in changes and not isinstance(changes["expanded"], bool))
            )
            if invalid:
                self._notify(
                    NoticeKind.VALIDATION_DROPPED,
                    f"Rejected invalid update for group {group_id}: {changes!r}",
                )
                return False

            self._groups[index] = group.model_copy(update=changes)
            return True

        return False

    def toggle_expanded(self, group_id: str) -> None:
        for index, group in enumerate(self._groups):
            if group.id == group_id:
                self._groups[index] = group.model_copy(
                    update={"expanded": not group.expanded}
                )

    def set_groups(self, candidates: Iterable[Any]) -> int:
        """Replace all groups with validated copies of the candidates."""
        valid, dropped = filter_valid_groups(candidates)

        unique: list[Group] = []
        seen: set[str] = set()
        for group in valid:
            if group.id in seen:
                dropped += 1
                continue
            seen.add(group.id)
            unique.append(group)

        if dropped:
            self._notify(
                NoticeKind.VALIDATION_DROPPED,
                f"{dropped} invalid group record(s) were skipped.",
                requested=len(unique) + dropped,
                applied=len(unique),
            )

        self._groups = unique
        self._last_id = max(self._last_id, _highest_numeric_id(g.id for g in unique))
        return len(unique)

    def clear(self) -> None:
        self._groups = []
        self._last_id = 0
