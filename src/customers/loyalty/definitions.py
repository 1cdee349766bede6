"""Persisted loyalty tier definitions, seeding, and tier-table loading."""

import structlog
from protean import handle
from protean.domain import Domain
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Float, Integer, String
from protean.utils.globals import current_domain

from customers.domain import customers
from customers.loyalty.tiers import DEFAULT_TIERS, LoyaltyTier, TierTable

logger = structlog.get_logger(__name__)


@customers.aggregate
class LoyaltyTierDefinition:
    """One row of the persisted tier table, keyed by tier name."""

    name: String(identifier=True, max_length=20)
    min_points: Integer(required=True, min_value=0)
    max_points: Integer(min_value=0)
    discount_rate: Float(required=True, min_value=0.0, max_value=100.0)

    def to_tier(self) -> LoyaltyTier:
        return LoyaltyTier(
            name=self.name,
            min_points=self.min_points,
            max_points=self.max_points,
            discount_rate=self.discount_rate,
        )


@customers.command(part_of="LoyaltyTierDefinition")
class SeedLoyaltyTiers:
    """Write the default tier table. Existing rows are kept unless ``overwrite`` is set."""

    overwrite: Boolean(default=False)


@customers.command_handler(part_of=LoyaltyTierDefinition)
class SeedLoyaltyTiersHandler:
    @handle(SeedLoyaltyTiers)
    def seed_tiers(self, command):
        repo = current_domain.repository_for(LoyaltyTierDefinition)
        written = 0
        for tier in DEFAULT_TIERS:
            try:
                definition = repo.get(tier.name)
            except ObjectNotFoundError:
                definition = LoyaltyTierDefinition(
                    name=tier.name,
                    min_points=tier.min_points,
                    max_points=tier.max_points,
                    discount_rate=tier.discount_rate,
                )
            else:
                if not command.overwrite:
                    continue
                definition.min_points = tier.min_points
                definition.max_points = tier.max_points
                definition.discount_rate = tier.discount_rate

            repo.add(definition)
            written += 1

        logger.info("Loyalty tiers seeded", written=written, overwrite=command.overwrite)
        return written


def load_tier_table(domain: Domain) -> TierTable:
    """Build the tier table from persisted rows, or the defaults when none are seeded.

    Raises ``ValidationError`` when the persisted rows do not partition the
    points range.
    """
    with domain.domain_context():
        rows = domain.repository_for(LoyaltyTierDefinition)._dao.query.all().items

    if not rows:
        logger.info("No persisted loyalty tiers, using defaults")
        return DEFAULT_TIERS

    table = TierTable(row.to_tier() for row in rows)
    logger.info("Loyalty tier table loaded", tiers=[tier.name for tier in table])
    return table
