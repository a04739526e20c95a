"""PayoutSplit - Distribute a total payout across fixed, percentage and share recipients."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .csv_codec import deserialize, load_csv_file, serialize
from .engine import compute_distribution
from .models import (
    Distribution,
    Group,
    ImportResult,
    Notice,
    Recipient,
    RecipientKind,
    Snapshot,
)
from .service import PayoutSession
from .store import GroupStore, RecipientStore

__all__ = [
    "Settings",
    "load_settings",
    "deserialize",
    "load_csv_file",
    "serialize",
    "compute_distribution",
    "Distribution",
    "Group",
    "ImportResult",
    "Notice",
    "Recipient",
    "RecipientKind",
    "Snapshot",
    "PayoutSession",
    "GroupStore",
    "RecipientStore",
]
