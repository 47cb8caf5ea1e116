"""
RSVP records.

Key design decisions:
- Exactly one EventRSVP per (user, event); writes are upserts on that pair
- Cancellation sets status to not_attending, rows are never deleted
- Track selections live in their own table so a user can hold several
  compatible tracks; the unique (rsvp_id, exclusive_group_id) constraint
  makes the database refuse a second track in the same exclusive group
"""

import enum

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, CheckConstraint, Index, Enum
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin, new_id


class RSVPStatus(str, enum.Enum):
    PENDING = "pending"
    ATTENDING = "attending"
    WAITLIST = "waitlist"
    MAYBE = "maybe"
    NOT_ATTENDING = "not_attending"


def _status_values(enum_cls):
    return [member.value for member in enum_cls]


STATUS_ENUM = Enum(
    RSVPStatus,
    name="rsvp_status",
    values_callable=_status_values,
    native_enum=False,
    length=20,
    validate_strings=True,
)


class EventRSVP(Base, TimestampMixin):
    __tablename__ = "event_rsvps"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    # Most recently confirmed track; lookup only
    track_id = Column(String(36), ForeignKey("event_tracks.id", ondelete="SET NULL"), nullable=True)
    status = Column(STATUS_ENUM, nullable=False, default=RSVPStatus.PENDING)
    guest_count = Column(Integer, nullable=False, default=1)
    notes = Column(String(1000), nullable=True)

    user = relationship("User", back_populates="rsvps")
    selections = relationship(
        "RSVPTrackSelection", back_populates="rsvp", cascade="all, delete-orphan",
        passive_deletes=True, lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_user_event_rsvp"),
        CheckConstraint("guest_count >= 1", name="check_rsvp_guest_count_positive"),
        Index("ix_event_rsvps_event_status", "event_id", "status"),
    )

    @property
    def track_ids(self) -> set[str]:
        return {selection.track_id for selection in self.selections}

    def __repr__(self) -> str:
        return f"<EventRSVP(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"


class RSVPTrackSelection(Base, TimestampMixin):
    __tablename__ = "rsvp_track_selections"

    id = Column(String(36), primary_key=True, default=new_id)
    rsvp_id = Column(String(36), ForeignKey("event_rsvps.id", ondelete="CASCADE"), nullable=False, index=True)
    track_id = Column(String(36), ForeignKey("event_tracks.id", ondelete="CASCADE"), nullable=False, index=True)
    # Set only when the track's group is mutually exclusive; NULLs never collide
    exclusive_group_id = Column(String(36), nullable=True)

    rsvp = relationship("EventRSVP", back_populates="selections")

    __table_args__ = (
        UniqueConstraint("rsvp_id", "track_id", name="uq_rsvp_track"),
        UniqueConstraint("rsvp_id", "exclusive_group_id", name="uq_rsvp_exclusive_group"),
    )


class ActivityRSVP(Base, TimestampMixin):
    __tablename__ = "activity_rsvps"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_id = Column(String(36), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(STATUS_ENUM, nullable=False, default=RSVPStatus.ATTENDING)
    guest_count = Column(Integer, nullable=False, default=1)
    notes = Column(String(1000), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "activity_id", name="uq_user_activity_rsvp"),
        CheckConstraint("guest_count >= 1", name="check_activity_rsvp_guest_count_positive"),
    )
