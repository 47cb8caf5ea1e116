"""
Capacity ledger tables.

Key design decisions:
- One counter row per admission unit (event or track), updated only by a
  conditional UPDATE so concurrent reservations cannot oversell
- One reservation row per (unit, holder): reserve/release are idempotent
  per holder and occupancy can be recounted from live reservations
- DB CHECK constraints are the final safety net
"""

from sqlalchemy import Column, Integer, String, CheckConstraint, ForeignKey, UniqueConstraint

from app.db.base import Base, TimestampMixin, new_id


class CapacityCounter(Base, TimestampMixin):
    __tablename__ = "capacity_counters"

    unit_id = Column(String(36), primary_key=True)
    unit_type = Column(String(10), nullable=False)  # event, track
    capacity = Column(Integer, nullable=True)  # NULL = unlimited
    occupancy = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("occupancy >= 0", name="check_occupancy_non_negative"),
        CheckConstraint("capacity IS NULL OR occupancy <= capacity", name="check_occupancy_lte_capacity"),
        CheckConstraint("unit_type IN ('event', 'track')", name="check_unit_type"),
    )

    def __repr__(self) -> str:
        return f"<CapacityCounter(unit={self.unit_id}, {self.occupancy}/{self.capacity})>"


class CapacityReservation(Base, TimestampMixin):
    __tablename__ = "capacity_reservations"

    id = Column(String(36), primary_key=True, default=new_id)
    unit_id = Column(
        String(36), ForeignKey("capacity_counters.unit_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    holder = Column(String(100), nullable=False, index=True)
    amount = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("unit_id", "holder", name="uq_reservation_unit_holder"),
        CheckConstraint("amount > 0", name="check_reservation_amount_positive"),
    )
