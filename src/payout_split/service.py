"""Session layer that composes the stores, the payout engine and the CSV codec.

Every mutating command commits to the stores and then recomputes payouts in
full, so derived state read afterwards is always consistent with the inputs.
"""

import logging
import math
import random
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .config import Settings, load_settings
from .csv_codec import deserialize, load_csv_file, serialize, write_csv_file
from .engine import (
    compute_distribution,
    group_totals,
    partition_by_group,
)
from .models import (
    Distribution,
    Group,
    GroupTotals,
    ImportResult,
    Notice,
    Recipient,
    Snapshot,
)
from .store import GroupStore, MoveToGroupCommand, RecipientStore, resolve_drop

logger = logging.getLogger(__name__)


class PayoutSession:
    """One in-memory payout session: recipients, groups and a total amount."""

    def __init__(
        self, settings: Settings | None = None, rng: random.Random | None = None
    ):
        """Initialize an empty session."""
        self.settings = settings or load_settings()
        self._rng = rng or random.Random()
        self.recipient_store = RecipientStore(self.settings)
        self.group_store = GroupStore(self._rng)
        self._total_amount = 0.0
        self._distribution = compute_distribution(0.0, [])

    # ========================================================================
    # Read accessors
    # ========================================================================

    @property
    def recipients(self) -> list[Recipient]:
        return self.recipient_store.recipients

    @property
    def groups(self) -> list[Group]:
        return self.group_store.groups

    @property
    def selection(self) -> frozenset[str]:
        return self.recipient_store.selection

    @property
    def total_amount(self) -> float:
        return self._total_amount

    @property
    def distribution(self) -> Distribution:
        return self._distribution

    @property
    def remaining_amount(self) -> float:
        return self._distribution.remaining_amount

    @property
    def value_per_share(self) -> float:
        return self._distribution.value_per_share

    @property
    def total_shares(self) -> float:
        return self._distribution.total_shares

    def group_totals(self) -> list[GroupTotals]:
        return group_totals(self.recipients, self.groups)

    def partition(self) -> tuple[list[Recipient], list[tuple[Group, list[Recipient]]]]:
        """Ungrouped recipients plus each group's members, in display order."""
        return partition_by_group(self.recipients, self.groups)

    def snapshot(self) -> Snapshot:
        return Snapshot(
            recipients=self.recipients,
            groups=self.groups,
            total_amount=self._total_amount,
        )

    def drain_notices(self) -> list[Notice]:
        """Return and forget warnings raised by the stores since the last call."""
        return self.recipient_store.drain_notices() + self.group_store.drain_notices()

    # ========================================================================
    # Recompute
    # ========================================================================

    def _recompute(self) -> None:
        recipients = self.recipient_store.recipients
        self._distribution = compute_distribution(self._total_amount, recipients)
        self.recipient_store.write_payouts(self._distribution)
        logger.debug(
            f"Recomputed {len(recipients)} payouts: remaining "
            f"{self._distribution.remaining_amount:.2f}, per share "
            f"{self._distribution.value_per_share:.4f}"
        )

    def _known_group(self, group_id: str | None) -> str | None:
        """Return group_id if it names an existing group, else None."""
        if group_id and group_id not in self.group_store:
            logger.warning(f"Unknown group {group_id}; recipient left ungrouped")
            return None
        return group_id or None

    # ========================================================================
    # Total amount
    # ========================================================================

    def set_total_amount(self, amount: float) -> None:
        """Set the amount to distribute. Negative or non-finite input becomes 0."""
        try:
            value = float(amount)
        except (TypeError, ValueError):
            value = 0.0
        if not math.isfinite(value) or value < 0:
            value = 0.0

        self._total_amount = value
        self._recompute()

    # ========================================================================
    # Recipient commands
    # ========================================================================

    def add_recipients(self, count: int, group_id: str | None = None) -> int:
        added = self.recipient_store.add_recipients(count, self._known_group(group_id))
        self._recompute()
        return added

    def remove_recipient(self, recipient_id: str) -> None:
        if self.recipient_store.remove_recipient(recipient_id):
            self._recompute()

    def update_recipient(self, recipient_id: str, updates: Mapping[str, Any]) -> int:
        if isinstance(updates, Mapping) and updates.get("group_id"):
            updates = {**updates, "group_id": self._known_group(updates["group_id"])}
        updated = self.recipient_store.update_recipient(recipient_id, updates)
        self._recompute()
        return updated

    def toggle_selection(self, recipient_id: str) -> None:
        self.recipient_store.toggle_selection(recipient_id)

    def clear_selection(self) -> None:
        self.recipient_store.clear_selection()

    def move_to_group(self, recipient_id: str, group_id: str | None) -> bool:
        """Move a recipient into an existing group, or out of any group with None."""
        if group_id and group_id not in self.group_store:
            logger.warning(f"Cannot move {recipient_id}: unknown group {group_id}")
            return False
        return self.recipient_store.move_to_group(recipient_id, group_id)

    def reorder(
        self, source_index: int, dest_index: int, scope: str | None = None
    ) -> bool:
        return self.recipient_store.reorder(source_index, dest_index, scope)

    def apply_drop(self, active_id: str, over_id: str | None) -> bool:
        """Resolve a drag-and-drop gesture to one command and apply it."""
        command = resolve_drop(self.recipients, active_id, over_id)
        if command is None:
            return False
        if isinstance(command, MoveToGroupCommand):
            return self.move_to_group(command.recipient_id, command.group_id)
        return self.reorder(command.source_index, command.dest_index, command.scope)

    # ========================================================================
    # Group commands
    # ========================================================================

    def add_group(self) -> Group:
        return self.group_store.add_group()

    def remove_group(self, group_id: str) -> None:
        """Remove a group; its members stay, ungrouped."""
        if self.group_store.remove_group(group_id):
            ungrouped = self.recipient_store.ungroup_members(group_id)
            logger.info(f"Removed group {group_id}; ungrouped {ungrouped} recipients")

    def update_group(self, group_id: str, updates: Mapping[str, Any]) -> bool:
        return self.group_store.update_group(group_id, updates)

    def toggle_expanded(self, group_id: str) -> None:
        self.group_store.toggle_expanded(group_id)

    # ========================================================================
    # Reset
    # ========================================================================

    def clear(self) -> None:
        """Remove all recipients and groups. The total amount is kept."""
        self.recipient_store.clear()
        self.group_store.clear()
        self._recompute()

    # ========================================================================
    # CSV export / import
    # ========================================================================

    def export_csv(self) -> str:
        return serialize(self.recipients, self.groups, self._total_amount)

    def export_csv_file(self, path: Path | str) -> None:
        write_csv_file(path, self.export_csv())
        logger.info(f"Exported {len(self.recipient_store)} recipients to {path}")

    def propose_import(self, text: str, batch_prefix: str | None = None) -> ImportResult:
        """
        Parse CSV text without touching the session.

        The result is applied only by a later confirm_import call; discarding
        it leaves the session unchanged.

        Raises:
            ImportFormatError: The content is not a usable payout CSV
        """
        return deserialize(
            text, batch_prefix=batch_prefix, settings=self.settings, rng=self._rng
        )

    def propose_import_file(
        self, path: Path | str, batch_prefix: str | None = None
    ) -> ImportResult:
        """
        Read and parse a CSV file without touching the session.

        Raises:
            ImportIOError: The file could not be read
            ImportFormatError: The file is too large or not a usable payout CSV
        """
        text = load_csv_file(path, settings=self.settings)
        return self.propose_import(text, batch_prefix=batch_prefix)

    def confirm_import(self, proposal: ImportResult) -> None:
        """
        Replace recipients, groups and (when the file had one) the total amount
        with a proposed import, in one step.
        """
        self.group_store.set_groups(proposal.groups)
        self.recipient_store.set_recipients(proposal.recipients)
        self.recipient_store.clear_selection()

        dangling = {
            r.group_id
            for r in self.recipient_store.recipients
            if r.group_id and r.group_id not in self.group_store
        }
        for group_id in dangling:
            self.recipient_store.ungroup_members(group_id)

        if proposal.total_amount is not None:
            self.set_total_amount(proposal.total_amount)
        else:
            self._recompute()

        logger.info(
            f"Imported {len(self.recipient_store)} recipients and "
            f"{len(self.groups)} groups (batch {proposal.batch_prefix})"
        )
