"""Points ledger: money to points, points to tier, tier-change detection.

Pure functions with no I/O. Every function takes an optional tier table
and falls back to the active one.
"""

import math
from dataclasses import dataclass
from decimal import Decimal

from protean.exceptions import ValidationError

from customers.loyalty.tiers import LoyaltyTier, TierTable, active_tier_table

# One point per full 10 currency units spent
POINTS_RATE = 10

UPGRADE = "upgrade"
DOWNGRADE = "downgrade"


def points_for_amount(amount) -> int:
    if amount is None or isinstance(amount, bool) or not isinstance(amount, int | float | Decimal):
        raise ValidationError({"amount": [f"Amount must be a number, got {amount!r}"]})
    if not math.isfinite(amount):
        raise ValidationError({"amount": [f"Amount must be finite, got {amount!r}"]})
    if amount < 0:
        raise ValidationError({"amount": [f"Amount cannot be negative: {amount}"]})

    return math.floor(amount / POINTS_RATE)


def tier_for_points(points: int, table: TierTable | None = None) -> LoyaltyTier:
    return (table or active_tier_table()).tier_for_points(points)


@dataclass(frozen=True)
class TierChange:
    old_tier: LoyaltyTier
    new_tier: LoyaltyTier

    @property
    def changed(self) -> bool:
        return self.old_tier.name != self.new_tier.name

    @property
    def direction(self) -> str | None:
        if not self.changed:
            return None
        return UPGRADE if self.new_tier.min_points > self.old_tier.min_points else DOWNGRADE


def detect_tier_change(old_points: int, new_points: int, table: TierTable | None = None) -> TierChange:
    table = table or active_tier_table()
    return TierChange(old_tier=table.tier_for_points(old_points), new_tier=table.tier_for_points(new_points))


@dataclass(frozen=True)
class TierMove:
    """Transition from the tier a customer holds to the band of a new balance."""

    old_tier: str
    new_tier: LoyaltyTier
    direction: str | None

    @property
    def changed(self) -> bool:
        return self.direction is not None


def tier_move(current_tier: str, new_points: int, table: TierTable | None = None) -> TierMove:
    """Compare the stored tier, not the old balance's band, with the new balance's band.

    The two differ after a tier table change or an unrepaired drift. A stored
    tier the table no longer knows ranks below every tier.
    """
    table = table or active_tier_table()
    new_tier = table.tier_for_points(new_points)
    if new_tier.name == current_tier:
        return TierMove(old_tier=current_tier, new_tier=new_tier, direction=None)
    direction = UPGRADE if table.rank(new_tier.name) > table.rank(current_tier) else DOWNGRADE
    return TierMove(old_tier=current_tier, new_tier=new_tier, direction=direction)


def discount_rate_for(tier_name: str, table: TierTable | None = None) -> float:
    return (table or active_tier_table()).get(tier_name).discount_rate
