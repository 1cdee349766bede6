"""Loyalty accounts application service.

Runs customer commands off the event loop and owns everything that happens
around a commit:

- mutations of one customer are serialized: a keyed ``asyncio.Lock``
  orders them on the event loop, and a per-customer lock from
  ``shared.locks`` is held around the read-modify-write, across processes
  on PostgreSQL. A version conflict that still slips through re-reads the
  aggregate and retries with jittered exponential backoff before
  surfacing ``ConcurrencyConflict``;
- tier transitions are published to ``customer.tier-upgraded`` after the
  commit, best effort; a failed publish leaves the transition pending for
  the reconciliation sweep;
- registrations are announced on ``customer.registered``.
"""

import asyncio
from weakref import WeakValueDictionary

import backoff
import structlog
from protean.domain import Domain
from protean.exceptions import ExpectedVersionError

from customers.customer.customer import Customer, LoyaltyOutcome, TierNotification
from customers.customer.points import AdjustPoints, ApplySale
from customers.customer.profile import DeactivateCustomer, UpdateCustomer
from customers.customer.registration import RegisterCustomer
from customers.customer.tier import ConfirmTierNotification, ReconcileTier
from customers.loyalty.tiers import active_tier_table
from customers.projections.customer_directory import CustomerDirectory
from shared import metrics
from shared.channel import EventChannel
from shared.contracts import CUSTOMER_REGISTERED, CUSTOMER_TIER_UPGRADED, CustomerRegisteredMessage
from shared.errors import ConcurrencyConflict
from shared.locks import locks_for

logger = structlog.get_logger(__name__)


class LoyaltyAccounts:
    def __init__(
        self,
        domain: Domain,
        channel: EventChannel,
        conflict_attempts: int = 5,
        conflict_backoff: float = 0.05,
        locks=None,
    ):
        self.domain = domain
        self.channel = channel
        self.conflict_attempts = conflict_attempts
        self.conflict_backoff = conflict_backoff
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()
        self._row_locks = locks

    def _lock_for(self, customer_id: str) -> asyncio.Lock:
        lock = self._locks.get(customer_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[customer_id] = lock
        return lock

    def _process(self, command):
        with self.domain.domain_context():
            customer_id = getattr(command, "customer_id", None)
            if customer_id is None:
                return self.domain.process(command, asynchronous=False)

            if self._row_locks is None:
                self._row_locks = locks_for(self.domain)
            with self._row_locks.hold(f"customer:{customer_id}"):
                return self.domain.process(command, asynchronous=False)

    async def _process_in_thread(self, command):
        return await asyncio.to_thread(self._process, command)

    async def run(self, customer_id, command):
        """Process a command against one customer, serialized and conflict-retried."""
        customer_id = str(customer_id)

        def log_retry(details):
            logger.warning(
                "customer_version_conflict",
                customer_id=customer_id,
                command=type(command).__name__,
                attempt=details["tries"],
            )

        process = backoff.on_exception(
            backoff.expo,
            ExpectedVersionError,
            max_tries=self.conflict_attempts,
            factor=self.conflict_backoff,
            on_backoff=log_retry,
        )(self._process_in_thread)

        async with self._lock_for(customer_id):
            try:
                return await process(command)
            except ExpectedVersionError as exc:
                metrics.conflicts.inc()
                raise ConcurrencyConflict(
                    f"Customer {customer_id} was modified concurrently, try again",
                    aggregate_id=customer_id,
                ) from exc

    # Profile operations

    async def register(self, name, email, phone=None) -> dict:
        snapshot = await asyncio.to_thread(self._register, name, email, phone)
        message = CustomerRegisteredMessage(
            customer_id=snapshot["id"],
            name=snapshot["name"],
            email=snapshot["email"],
            tier=snapshot["tier"],
            timestamp=snapshot["registered_at"],
        )
        if not await self.channel.publish(CUSTOMER_REGISTERED, message.to_payload(), key=snapshot["id"]):
            logger.warning("customer_registration_not_announced", customer_id=snapshot["id"])
        logger.info("customer_registered", customer_id=snapshot["id"], tier=snapshot["tier"])
        return snapshot

    def _register(self, name, email, phone):
        with self.domain.domain_context():
            customer_id = self.domain.process(
                RegisterCustomer(name=name, email=email, phone=phone),
                asynchronous=False,
            )
            return customer_snapshot(self.domain.repository_for(Customer).get(customer_id))

    async def update(self, customer_id, **fields) -> dict:
        changes = await self.run(customer_id, UpdateCustomer(customer_id=customer_id, **fields))
        logger.info("customer_updated", customer_id=str(customer_id), fields=sorted(changes))
        return changes

    async def deactivate(self, customer_id) -> None:
        await self.run(customer_id, DeactivateCustomer(customer_id=customer_id))
        logger.info("customer_deactivated", customer_id=str(customer_id))

    # Points operations

    async def apply_sale(self, customer_id, sale_id, amount) -> LoyaltyOutcome:
        outcome = await self.run(customer_id, ApplySale(customer_id=customer_id, sale_id=sale_id, amount=amount))
        if outcome.replayed:
            logger.info("sale_already_applied", customer_id=outcome.customer_id, sale_id=sale_id)
        else:
            logger.info(
                "points_added",
                customer_id=outcome.customer_id,
                sale_id=sale_id,
                points_added=outcome.points_added,
                old_points=outcome.old_points,
                new_points=outcome.new_points,
            )
        await self._after_commit(outcome)
        return outcome

    async def adjust_points(self, customer_id, delta, reason) -> LoyaltyOutcome:
        outcome = await self.run(customer_id, AdjustPoints(customer_id=customer_id, delta=delta, reason=reason))
        logger.info(
            "points_adjusted",
            customer_id=outcome.customer_id,
            delta=delta,
            reason=reason,
            new_points=outcome.new_points,
        )
        await self._after_commit(outcome)
        return outcome

    async def _after_commit(self, outcome: LoyaltyOutcome) -> None:
        notification = outcome.notification
        if notification is None:
            return
        if not outcome.replayed:
            metrics.tier_changes.labels(direction=notification.direction).inc()
            logger.info(
                "tier_changed",
                customer_id=notification.customer_id,
                old_tier=notification.old_tier,
                new_tier=notification.new_tier,
                direction=notification.direction,
            )
        await self.announce(notification)

    async def announce(self, notification: TierNotification) -> bool:
        """Publish a tier transition and record its delivery.

        Already-delivered transitions are skipped. Returns whether the
        transition is now delivered.
        """
        if notification.delivered:
            return True

        published = await self.channel.publish(
            CUSTOMER_TIER_UPGRADED,
            notification.to_message(),
            key=notification.customer_id,
        )
        if not published:
            logger.warning(
                "tier_notification_deferred",
                customer_id=notification.customer_id,
                event_id=notification.event_id,
            )
            return False

        try:
            await self.run(
                notification.customer_id,
                ConfirmTierNotification(customer_id=notification.customer_id, event_id=notification.event_id),
            )
        except ConcurrencyConflict:
            # Still pending; the sweep republishes it with the same event id
            logger.warning(
                "tier_notification_unconfirmed",
                customer_id=notification.customer_id,
                event_id=notification.event_id,
            )
        return True

    # Reconciliation

    async def reconcile_tiers(self, page_size: int = 200) -> dict:
        """Repair tier drift and republish transitions that were never delivered."""
        checked, candidates = await asyncio.to_thread(self._reconcile_candidates, page_size)
        report = {"checked": checked, "repaired": 0, "republished": 0, "deferred": 0}

        for customer_id in candidates:
            repaired, pending = await self.run(customer_id, ReconcileTier(customer_id=customer_id))
            if repaired is not None:
                report["repaired"] += 1
                logger.info(
                    "tier_reconciled",
                    customer_id=customer_id,
                    old_tier=repaired.old_tier,
                    new_tier=repaired.new_tier,
                )
            for notification in pending:
                if await self.announce(notification):
                    report["republished"] += 1
                else:
                    report["deferred"] += 1

        logger.info("tier_reconciliation_finished", **report)
        return report

    def _reconcile_candidates(self, page_size: int) -> tuple[int, list[str]]:
        table = active_tier_table()
        candidates: dict[str, None] = {}
        checked = 0

        with self.domain.domain_context():
            directory = self.domain.repository_for(CustomerDirectory)._dao
            offset = 0
            while True:
                rows = directory.query.order_by("customer_id").offset(offset).limit(page_size).all().items
                for row in rows:
                    if table.tier_for_points(row.points or 0).name != row.tier:
                        candidates[str(row.customer_id)] = None
                checked += len(rows)
                if len(rows) < page_size:
                    break
                offset += page_size

            accounts = self.domain.repository_for(Customer)._dao
            offset = 0
            while True:
                pending = (
                    accounts.query.filter(notifications_pending=True)
                    .order_by("id")
                    .offset(offset)
                    .limit(page_size)
                    .all()
                    .items
                )
                for customer in pending:
                    candidates[str(customer.id)] = None
                if len(pending) < page_size:
                    break
                offset += page_size

        return checked, list(candidates)


def customer_snapshot(customer: Customer) -> dict:
    table = active_tier_table()
    return {
        "id": str(customer.id),
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "total_spent": customer.total_spent,
        "points": customer.points,
        "tier": customer.tier,
        "discount_rate": table.get(customer.tier).discount_rate if customer.tier in table else 0.0,
        "is_active": customer.is_active,
        "registered_at": customer.registered_at.isoformat() if customer.registered_at else None,
        "updated_at": customer.updated_at.isoformat() if customer.updated_at else None,
    }
