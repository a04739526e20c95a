"""Pydantic domain models for PayoutSplit."""

from enum import StrEnum

from pydantic import BaseModel, Field

# ============================================================================
# Recipient Models
# ============================================================================


class RecipientKind(StrEnum):
    """How a recipient's value is interpreted. Values are the CSV type tags."""

    FIXED_AMOUNT = "$"
    PERCENTAGE = "%"
    SHARE = "shares"


class Recipient(BaseModel):
    """An entity entitled to a portion of the total payout."""

    id: str
    name: str
    kind: RecipientKind = RecipientKind.SHARE
    value: float = 1.0  # dollars, percentage points, or share weight
    payout: float = 0.0  # derived, always overwritten by the engine
    color: str | None = None  # overrides the color derived from id
    group_id: str | None = None

    @property
    def is_fixed_amount(self) -> bool:
        """Fixed-amount recipients are paid before shares are distributed."""
        return self.kind == RecipientKind.FIXED_AMOUNT


class Group(BaseModel):
    """A named, purely organizational collection of recipients."""

    id: str
    name: str
    color: str
    expanded: bool = True


# ============================================================================
# Derived State
# ============================================================================


class Distribution(BaseModel):
    """Result of distributing a total amount across recipients."""

    total_amount: float
    fixed_sum: float = 0.0
    remaining_amount: float = 0.0
    total_shares: float = 0.0
    value_per_share: float = 0.0
    payouts: dict[str, float] = Field(default_factory=dict)  # recipient id -> payout

    @property
    def total_paid(self) -> float:
        return sum(self.payouts.values())

    @property
    def overdrawn(self) -> bool:
        """True when fixed amounts push total payouts above the total amount."""
        return round(self.total_paid, 2) > round(self.total_amount, 2)


class GroupTotals(BaseModel):
    """Payout totals for the members of one group, broken down by kind."""

    group: Group
    dollar_total: float = 0.0
    percent_total: float = 0.0
    shares_total: float = 0.0
    total_payout: float = 0.0
    dollar_count: int = 0
    percent_count: int = 0
    shares_count: int = 0
    recipient_count: int = 0


# ============================================================================
# Snapshots & Notices
# ============================================================================


class Snapshot(BaseModel):
    """Full (recipients, groups, total amount) state at one instant."""

    recipients: list[Recipient] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)
    total_amount: float | None = None


class ImportResult(Snapshot):
    """A parsed CSV import, proposed to the session but not yet applied."""

    batch_prefix: str
    skipped_rows: int = 0  # recipient rows ignored past the import cap


class NoticeKind(StrEnum):
    """Non-fatal conditions reported to the collaborator."""

    VALIDATION_DROPPED = "validation_dropped"
    CAPACITY_EXCEEDED = "capacity_exceeded"


class Notice(BaseModel):
    """A warning for the collaborator to display."""

    kind: NoticeKind
    message: str
    requested: int | None = None
    applied: int | None = None
