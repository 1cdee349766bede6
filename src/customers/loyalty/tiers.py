"""Loyalty tier table.

A tier table partitions ``[0, inf)`` into contiguous point bands: the first
tier starts at 0, each following tier starts one point above the previous
tier's maximum, and only the last tier is open-ended. Tables are immutable
and validated on construction; the active table is installed once at
process startup.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError


class TierName(Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


@dataclass(frozen=True)
class LoyaltyTier:
    name: str
    min_points: int
    max_points: int | None
    discount_rate: float

    def contains(self, points: int) -> bool:
        if points < self.min_points:
            return False
        return self.max_points is None or points <= self.max_points

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "min_points": self.min_points,
            "max_points": self.max_points,
            "discount_rate": self.discount_rate,
        }


class TierTable:
    """An ordered, validated set of loyalty tiers."""

    def __init__(self, tiers: Iterable[LoyaltyTier]):
        ordered = tuple(sorted(tiers, key=lambda tier: tier.min_points))
        self._validate(ordered)
        self._tiers = ordered
        self._ranks = {tier.name: rank for rank, tier in enumerate(ordered)}

    @staticmethod
    def _validate(tiers: tuple[LoyaltyTier, ...]) -> None:
        errors = []
        if not tiers:
            raise ValidationError({"tiers": ["A tier table needs at least one tier"]})

        if len({tier.name for tier in tiers}) != len(tiers):
            errors.append("Tier names must be unique")

        if tiers[0].min_points != 0:
            errors.append(f"The lowest tier must start at 0 points, not {tiers[0].min_points}")

        for lower, upper in zip(tiers, tiers[1:], strict=False):
            if lower.max_points is None:
                errors.append(f"Only the highest tier may be open-ended; {lower.name} has no maximum")
            elif upper.min_points != lower.max_points + 1:
                errors.append(f"{upper.name} must start at {lower.max_points + 1} points, not {upper.min_points}")

        for tier in tiers:
            if tier.max_points is not None and tier.max_points < tier.min_points:
                errors.append(f"{tier.name} has a maximum below its minimum")
            if not 0 <= tier.discount_rate <= 100:
                errors.append(f"{tier.name} discount rate must be between 0 and 100")

        if tiers[-1].max_points is not None:
            errors.append(f"The highest tier {tiers[-1].name} must be open-ended")

        if errors:
            raise ValidationError({"tiers": errors})

    def __iter__(self) -> Iterator[LoyaltyTier]:
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    def __contains__(self, name: object) -> bool:
        return name in self._ranks

    def tier_for_points(self, points: int) -> LoyaltyTier:
        if points is None or points < 0:
            raise ValidationError({"points": [f"Points cannot be negative: {points}"]})

        for tier in reversed(self._tiers):
            if tier.contains(points):
                return tier
        # Unreachable for a validated table
        raise ValidationError({"points": [f"No tier covers {points} points"]})

    def get(self, name: str) -> LoyaltyTier:
        if name not in self._ranks:
            raise ValidationError({"tier": [f"Unknown loyalty tier: {name}"]})
        return self._tiers[self._ranks[name]]

    def rank(self, name: str) -> int:
        """Position of ``name`` from the lowest tier, or -1 for an unknown tier."""
        return self._ranks.get(name, -1)

    @property
    def lowest(self) -> LoyaltyTier:
        return self._tiers[0]

    @property
    def highest(self) -> LoyaltyTier:
        return self._tiers[-1]

    def as_list(self) -> list[dict]:
        return [tier.to_dict() for tier in self._tiers]


DEFAULT_TIERS = TierTable(
    [
        LoyaltyTier(TierName.BRONZE.value, 0, 99, 0.0),
        LoyaltyTier(TierName.SILVER.value, 100, 499, 5.0),
        LoyaltyTier(TierName.GOLD.value, 500, 999, 10.0),
        LoyaltyTier(TierName.PLATINUM.value, 1000, None, 15.0),
    ]
)

_active_table = DEFAULT_TIERS


def active_tier_table() -> TierTable:
    return _active_table


def install_tier_table(table: TierTable) -> None:
    """Replace the process-wide tier table. Called once during startup."""
    global _active_table
    _active_table = table
