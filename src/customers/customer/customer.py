"""Customer aggregate root with its append-only activity log.

The Customer is the only writer of a customer's points balance and tier.
Every mutation appends an ``ActivityEntry`` in the same unit of work, which
doubles as the audit trail and as the dedup record for sales: a
``points.added`` entry's ``idempotency_key`` is the sale id.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Dict, Float, HasMany, Integer, String

from customers.domain import customers
from customers.loyalty.ledger import points_for_amount, tier_move
from customers.loyalty.tiers import active_tier_table
from customers.shared.contact import normalize_email, normalize_phone
from shared.contracts import CustomerTierUpgraded

# Sentinel for distinguishing "not provided" from None in partial updates
_UNSET = object()


def utcnow() -> datetime:
    return datetime.now(UTC)


class ActivityType(Enum):
    REGISTERED = "customer.registered"
    UPDATED = "customer.updated"
    DEACTIVATED = "customer.deactivated"
    POINTS_ADDED = "points.added"
    POINTS_ADJUSTED = "points.adjusted"
    TIER_CHANGED = "tier.changed"
    TIER_RECONCILED = "tier.reconciled"


_TIER_ACTIVITIES = (ActivityType.TIER_CHANGED.value, ActivityType.TIER_RECONCILED.value)


@dataclass(frozen=True)
class TierNotification:
    """A tier transition waiting to be announced on ``customer.tier-upgraded``."""

    event_id: str
    customer_id: str
    customer_name: str
    old_tier: str
    new_tier: str
    points: int
    direction: str
    timestamp: str
    reconciled: bool = False
    delivered: bool = False

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "old_tier": self.old_tier,
            "new_tier": self.new_tier,
            "points": self.points,
            "direction": self.direction,
            "timestamp": self.timestamp,
            "reconciled": self.reconciled,
        }

    @classmethod
    def from_entry(cls, entry: "ActivityEntry") -> "TierNotification":
        payload = entry.payload or {}
        return cls(
            event_id=payload["event_id"],
            customer_id=payload["customer_id"],
            customer_name=payload["customer_name"],
            old_tier=payload["old_tier"],
            new_tier=payload["new_tier"],
            points=payload["points"],
            direction=payload["direction"],
            timestamp=payload["timestamp"],
            reconciled=payload.get("reconciled", False),
            delivered=bool(entry.notified),
        )

    def to_message(self) -> dict:
        return CustomerTierUpgraded(
            event_id=self.event_id,
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            old_tier=self.old_tier,
            new_tier=self.new_tier,
            points=self.points,
            direction=self.direction,
            timestamp=self.timestamp,
        ).to_payload()


@dataclass(frozen=True)
class LoyaltyOutcome:
    """Result of a points mutation, as committed or as previously committed."""

    customer_id: str
    customer_name: str
    points_added: int
    old_points: int
    new_points: int
    old_tier: str
    new_tier: str
    replayed: bool = False
    notification: TierNotification | None = None

    @property
    def tier_changed(self) -> bool:
        return self.notification is not None


@customers.entity(part_of="Customer")
class ActivityEntry:
    """One append-only record in a customer's activity log.

    ``notified`` is only set on tier entries: False until the transition has
    been published to the event channel.
    """

    event_type: String(required=True, max_length=50, choices=ActivityType)
    idempotency_key: String(max_length=255)
    payload: Dict()
    notified: Boolean()
    created_at: DateTime(default=utcnow)


@customers.aggregate
class Customer:
    """A customer account holding contact details, points balance and tier.

    The tier always equals the tier of the current points balance after a
    points mutation. Only ``reconcile_tier`` re-derives the tier without a
    points change, to repair drift after the tier table changes.
    """

    name: String(required=True, max_length=100)
    email: String(required=True, max_length=254, unique=True)
    phone: String(max_length=20)
    total_spent: Float(default=0.0, min_value=0.0)
    points: Integer(default=0)
    tier: String(required=True, max_length=20)
    is_active: Boolean(default=True)
    notifications_pending: Boolean(default=False)
    registered_at: DateTime(default=utcnow)
    updated_at: DateTime(default=utcnow)
    activities: HasMany(ActivityEntry)

    @invariant.post
    def points_cannot_be_negative(self):
        if self.points is not None and self.points < 0:
            raise ValidationError({"points": ["Points balance cannot be negative"]})

    @classmethod
    def register(cls, name, email, phone=None):
        from customers.customer.events import CustomerRegistered

        name = (name or "").strip()
        email = normalize_email(email or "")
        phone = normalize_phone(phone)
        tier = active_tier_table().lowest.name
        now = utcnow()

        customer = cls(
            name=name,
            email=email,
            phone=phone,
            total_spent=0.0,
            points=0,
            tier=tier,
            is_active=True,
            registered_at=now,
            updated_at=now,
        )
        customer._record(
            ActivityType.REGISTERED,
            {"name": name, "email": email, "phone": phone, "tier": tier},
            now,
        )
        customer.raise_(
            CustomerRegistered(
                customer_id=customer.id,
                name=name,
                email=email,
                phone=phone,
                tier=tier,
                registered_at=now,
            )
        )
        return customer

    def update_details(self, name=_UNSET, email=_UNSET, phone=_UNSET):
        from customers.customer.events import CustomerUpdated

        if not self.is_active:
            raise ValidationError({"is_active": ["Deactivated customers cannot be updated"]})

        changes = {}
        if name is not _UNSET and name is not None and name.strip() != self.name:
            changes["name"] = name.strip()
        if email is not _UNSET and email is not None:
            new_email = normalize_email(email)
            if new_email != self.email:
                changes["email"] = new_email
        if phone is not _UNSET:
            new_phone = normalize_phone(phone)
            if new_phone != self.phone:
                changes["phone"] = new_phone

        if not changes:
            return {}

        now = utcnow()
        with atomic_change(self):
            for field, value in changes.items():
                setattr(self, field, value)
            self.updated_at = now
            self._record(ActivityType.UPDATED, {"updates": changes}, now)

        self.raise_(
            CustomerUpdated(
                customer_id=self.id,
                name=self.name,
                email=self.email,
                phone=self.phone,
                updated_at=now,
            )
        )
        return changes

    def deactivate(self):
        from customers.customer.events import CustomerDeactivated

        if not self.is_active:
            raise ValidationError({"is_active": ["Customer is already deactivated"]})

        now = utcnow()
        with atomic_change(self):
            self.is_active = False
            self.updated_at = now
            self._record(ActivityType.DEACTIVATED, {"deactivated_at": now.isoformat()}, now)

        self.raise_(CustomerDeactivated(customer_id=self.id, deactivated_at=now))

    def apply_sale(self, sale_id, amount) -> LoyaltyOutcome:
        """Award points for a sale, at most once per ``sale_id``.

        A sale that was already applied returns the stored outcome flagged
        as replayed and changes nothing.
        """
        from customers.customer.events import PointsAdded

        if not sale_id:
            raise ValidationError({"sale_id": ["Sale id is required"]})

        applied = self.find_activity(ActivityType.POINTS_ADDED, sale_id)
        if applied is not None:
            return self._replayed_outcome(applied)

        points_added = points_for_amount(amount)
        old_points = self.points or 0
        new_points = old_points + points_added
        change = tier_move(self.tier, new_points)
        now = utcnow()

        notification = None
        with atomic_change(self):
            self.points = new_points
            self.total_spent = round((self.total_spent or 0.0) + float(amount), 2)
            self.tier = change.new_tier.name
            self.updated_at = now
            self._record(
                ActivityType.POINTS_ADDED,
                {
                    "sale_amount": float(amount),
                    "points_added": points_added,
                    "old_points": old_points,
                    "new_points": new_points,
                    "old_tier": change.old_tier,
                    "new_tier": change.new_tier.name,
                    "total_spent": self.total_spent,
                },
                now,
                idempotency_key=sale_id,
            )
            if change.changed:
                notification = self._tier_transition(
                    change.old_tier, change.new_tier.name, change.direction, now, idempotency_key=sale_id
                )

        self.raise_(
            PointsAdded(
                customer_id=self.id,
                sale_id=sale_id,
                sale_amount=float(amount),
                points_added=points_added,
                old_points=old_points,
                new_points=new_points,
                total_spent=self.total_spent,
                tier=self.tier,
                added_at=now,
            )
        )
        if notification is not None:
            self._raise_tier_changed(notification, now)

        return LoyaltyOutcome(
            customer_id=str(self.id),
            customer_name=self.name,
            points_added=points_added,
            old_points=old_points,
            new_points=new_points,
            old_tier=change.old_tier,
            new_tier=change.new_tier.name,
            notification=notification,
        )

    def adjust_points(self, delta, reason) -> LoyaltyOutcome:
        """Administrative correction of the points balance, up or down."""
        from customers.customer.events import PointsAdjusted

        if not delta:
            raise ValidationError({"delta": ["Adjustment must be a non-zero number of points"]})
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A reason is required for point adjustments"]})

        old_points = self.points or 0
        new_points = old_points + delta
        if new_points < 0:
            raise ValidationError(
                {"points": [f"Adjustment of {delta} would make the balance negative ({old_points} available)"]}
            )

        change = tier_move(self.tier, new_points)
        now = utcnow()

        notification = None
        with atomic_change(self):
            self.points = new_points
            self.tier = change.new_tier.name
            self.updated_at = now
            self._record(
                ActivityType.POINTS_ADJUSTED,
                {
                    "delta": delta,
                    "reason": reason.strip(),
                    "old_points": old_points,
                    "new_points": new_points,
                    "old_tier": change.old_tier,
                    "new_tier": change.new_tier.name,
                },
                now,
            )
            if change.changed:
                notification = self._tier_transition(change.old_tier, change.new_tier.name, change.direction, now)

        self.raise_(
            PointsAdjusted(
                customer_id=self.id,
                delta=delta,
                reason=reason.strip(),
                old_points=old_points,
                new_points=new_points,
                tier=self.tier,
                adjusted_at=now,
            )
        )
        if notification is not None:
            self._raise_tier_changed(notification, now)

        return LoyaltyOutcome(
            customer_id=str(self.id),
            customer_name=self.name,
            points_added=delta,
            old_points=old_points,
            new_points=new_points,
            old_tier=change.old_tier,
            new_tier=change.new_tier.name,
            notification=notification,
        )

    def reconcile_tier(self) -> TierNotification | None:
        """Re-derive the tier from the points balance and repair drift."""
        move = tier_move(self.tier, self.points or 0)
        if not move.changed:
            return None

        now = utcnow()
        with atomic_change(self):
            self.tier = move.new_tier.name
            self.updated_at = now
            notification = self._tier_transition(
                move.old_tier, move.new_tier.name, move.direction, now, reconciled=True
            )

        self._raise_tier_changed(notification, now)
        return notification

    def pending_notifications(self) -> list[TierNotification]:
        return [
            TierNotification.from_entry(entry)
            for entry in sorted(self.activities, key=lambda entry: entry.created_at)
            if entry.event_type in _TIER_ACTIVITIES and entry.notified is False
        ]

    def confirm_notification(self, event_id) -> bool:
        """Mark a tier transition as published. Returns False when nothing matched."""
        entry = next(
            (
                entry
                for entry in self.activities
                if entry.event_type in _TIER_ACTIVITIES and (entry.payload or {}).get("event_id") == event_id
            ),
            None,
        )
        if entry is None or entry.notified:
            return False

        with atomic_change(self):
            entry.notified = True
            self.notifications_pending = any(
                other.notified is False for other in self.activities if other.event_type in _TIER_ACTIVITIES
            )
        return True

    def find_activity(self, event_type: ActivityType, idempotency_key: str):
        return next(
            (
                entry
                for entry in self.activities
                if entry.event_type == event_type.value and entry.idempotency_key == idempotency_key
            ),
            None,
        )

    def _record(self, event_type: ActivityType, payload, created_at, idempotency_key=None, notified=None):
        entry = ActivityEntry(
            event_type=event_type.value,
            idempotency_key=idempotency_key,
            payload=payload,
            notified=notified,
            created_at=created_at,
        )
        self.add_activities(entry)
        return entry

    def _tier_transition(self, old_tier, new_tier, direction, now, idempotency_key=None, reconciled=False):
        notification = TierNotification(
            event_id=uuid4().hex,
            customer_id=str(self.id),
            customer_name=self.name,
            old_tier=old_tier,
            new_tier=new_tier,
            points=self.points,
            direction=direction,
            timestamp=now.isoformat(),
            reconciled=reconciled,
        )
        activity = ActivityType.TIER_RECONCILED if reconciled else ActivityType.TIER_CHANGED
        self._record(activity, notification.to_dict(), now, idempotency_key=idempotency_key, notified=False)
        self.notifications_pending = True
        return notification

    def _raise_tier_changed(self, notification: TierNotification, now):
        from customers.customer.events import TierChanged

        self.raise_(
            TierChanged(
                customer_id=self.id,
                event_id=notification.event_id,
                customer_name=notification.customer_name,
                old_tier=notification.old_tier,
                new_tier=notification.new_tier,
                points=notification.points,
                direction=notification.direction,
                reconciled=notification.reconciled,
                changed_at=now,
            )
        )

    def _replayed_outcome(self, applied) -> LoyaltyOutcome:
        payload = applied.payload or {}
        tier_entry = self.find_activity(ActivityType.TIER_CHANGED, applied.idempotency_key)
        return LoyaltyOutcome(
            customer_id=str(self.id),
            customer_name=self.name,
            points_added=payload.get("points_added", 0),
            old_points=payload.get("old_points", 0),
            new_points=payload.get("new_points", 0),
            old_tier=payload.get("old_tier", self.tier),
            new_tier=payload.get("new_tier", self.tier),
            replayed=True,
            notification=TierNotification.from_entry(tier_entry) if tier_entry is not None else None,
        )
