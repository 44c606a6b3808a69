"""
Events, their venues and per-ticket-type pricing tiers.

Key design decisions:
- `sold_tickets` is denormalized on the event and guarded by a CHECK so it can
  never exceed `capacity`
- Pricing tiers carry the sellable inventory per ticket type; checkout
  decrements them with a conditional UPDATE so they never go negative
- Deposit policy (allow_deposit, deposit_type, deposit_value,
  min_deposit_amount, deposit_due_by) is per event
- Events and venues are soft-deleted via `deleted_at`
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)

from boxoffice.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Venue(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "venues"

    name = Column(String(255), nullable=False)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name})>"


class Event(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "events"

    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    organizer_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    capacity = Column(Integer, nullable=True)
    sold_tickets = Column(Integer, nullable=False, default=0)

    # Deposit policy
    allow_deposit = Column(Boolean, nullable=False, default=False)
    deposit_type = Column(String(20), nullable=False, default="percentage")  # percentage, fixed
    deposit_value = Column(Numeric(10, 2), nullable=False, default=0)
    min_deposit_amount = Column(Numeric(10, 2), nullable=False, default=0)
    deposit_due_by = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("sold_tickets >= 0", name="check_sold_tickets_non_negative"),
        CheckConstraint("sold_tickets <= capacity", name="check_sold_lte_capacity"),
        CheckConstraint("deposit_type IN ('percentage', 'fixed')", name="check_deposit_type"),
        Index("ix_events_start_date", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, sold={self.sold_tickets}/{self.capacity})>"


class EventPricingTier(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "event_pricing_tiers"

    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)  # matches cart item ticket_type
    price = Column(Numeric(10, 2), nullable=False)
    total_tickets = Column(Integer, nullable=False)
    available_tickets = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("available_tickets >= 0", name="check_tier_available_non_negative"),
        CheckConstraint("available_tickets <= total_tickets", name="check_tier_available_lte_total"),
        Index("ix_pricing_tiers_event_name", "event_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<EventPricingTier(event={self.event_id}, name={self.name}, available={self.available_tickets})>"
