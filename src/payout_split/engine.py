"""Payout distribution: fixed amounts first, the remainder split by weight."""

import logging
import math
from collections.abc import Sequence

from .models import Distribution, Group, GroupTotals, Recipient, RecipientKind

logger = logging.getLogger(__name__)


def _numeric(value: float) -> float:
    """Treat NaN, infinities and negative values as zero."""
    return value if math.isfinite(value) and value > 0 else 0.0


def compute_distribution(
    total_amount: float, recipients: Sequence[Recipient]
) -> Distribution:
    """
    Distribute a total amount across recipients.

    Steps:
    1. Sum fixed-amount values (paid verbatim)
    2. Sum the weights of every other recipient
    3. remaining = max(0, total - fixed sum)
    4. value per share = remaining / weight sum (0 without weight)
    5. Non-fixed payout = value * value per share

    NaN, infinite and negative values count as 0. A total that is not a
    positive finite number pays nothing.

    Percentage recipients are weighted exactly like share recipients; their
    value is not read as a percentage of the total.

    Fixed recipients keep their nominal value even when the fixed sum exceeds
    the total, so payouts can add up to more than the total amount.

    Args:
        total_amount: Amount to distribute
        recipients: Current recipient list

    Returns:
        Distribution with per-recipient payouts and aggregates
    """
    fixed_sum = sum(_numeric(r.value) for r in recipients if r.is_fixed_amount)
    total_shares = sum(_numeric(r.value) for r in recipients if not r.is_fixed_amount)

    if not math.isfinite(total_amount) or total_amount <= 0:
        return Distribution(
            total_amount=total_amount if math.isfinite(total_amount) else 0.0,
            fixed_sum=fixed_sum,
            total_shares=total_shares,
            payouts={r.id: 0.0 for r in recipients},
        )

    remaining_amount = max(0.0, total_amount - fixed_sum)
    value_per_share = remaining_amount / total_shares if total_shares > 0 else 0.0

    payouts = {}
    for recipient in recipients:
        value = _numeric(recipient.value)
        if recipient.is_fixed_amount:
            payouts[recipient.id] = value
        else:
            payouts[recipient.id] = value * value_per_share

    distribution = Distribution(
        total_amount=total_amount,
        fixed_sum=fixed_sum,
        remaining_amount=remaining_amount,
        total_shares=total_shares,
        value_per_share=value_per_share,
        payouts=payouts,
    )

    if distribution.overdrawn:
        logger.debug(
            f"Fixed amounts ({fixed_sum:.2f}) exceed total ({total_amount:.2f}); "
            f"payouts sum to {distribution.total_paid:.2f}"
        )

    return distribution


def apply_payouts(
    recipients: Sequence[Recipient], distribution: Distribution
) -> list[Recipient]:
    """Return copies of the recipients with payout taken from the distribution."""
    return [
        recipient.model_copy(
            update={"payout": distribution.payouts.get(recipient.id, 0.0)}
        )
        for recipient in recipients
    ]


def partition_by_group(
    recipients: Sequence[Recipient], groups: Sequence[Group]
) -> tuple[list[Recipient], list[tuple[Group, list[Recipient]]]]:
    """
    Split recipients into the ungrouped list and one list per group.

    Recipients keep their relative order within each list.
    """
    ungrouped = [r for r in recipients if not r.group_id]
    by_group = [
        (group, [r for r in recipients if r.group_id == group.id]) for group in groups
    ]
    return ungrouped, by_group


def group_totals(
    recipients: Sequence[Recipient], groups: Sequence[Group]
) -> list[GroupTotals]:
    """Compute payout totals and member counts per group, broken down by kind."""
    results = []

    for group, members in partition_by_group(recipients, groups)[1]:
        totals = GroupTotals(group=group, recipient_count=len(members))

        for member in members:
            if member.kind == RecipientKind.FIXED_AMOUNT:
                totals.dollar_total += member.payout
                totals.dollar_count += 1
            elif member.kind == RecipientKind.PERCENTAGE:
                totals.percent_total += member.payout
                totals.percent_count += 1
            else:
                totals.shares_total += member.payout
                totals.shares_count += 1

        totals.total_payout = (
            totals.dollar_total + totals.percent_total + totals.shares_total
        )
        results.append(totals)

    return results
