"""
Event topology: events, track groups, tracks and activities.

Key design decisions:
- A track belongs to at most one group (single nullable `group_id`)
- Capacity lives on the row for display, but occupancy is owned by the
  capacity ledger (`capacity_counters`), never computed from RSVP counts
- Deleting an event cascades to its groups, tracks and activities
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin, new_id


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)
    capacity = Column(Integer, nullable=True)  # NULL = unlimited
    has_tracks = Column(Boolean, nullable=False, default=False)

    track_groups = relationship(
        "TrackGroup", back_populates="event", cascade="all, delete-orphan", passive_deletes=True,
        order_by="TrackGroup.display_order",
    )
    tracks = relationship(
        "Track", back_populates="event", cascade="all, delete-orphan", passive_deletes=True,
        order_by="Track.display_order",
    )
    activities = relationship(
        "Activity", back_populates="event", cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_event_capacity_non_negative"),
        Index("ix_events_starts_at", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, capacity={self.capacity})>"


class TrackGroup(Base, TimestampMixin):
    __tablename__ = "track_groups"

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_mutually_exclusive = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)

    event = relationship("Event", back_populates="track_groups")
    tracks = relationship("Track", back_populates="group", order_by="Track.display_order")

    def __repr__(self) -> str:
        return f"<TrackGroup(id={self.id}, name={self.name}, exclusive={self.is_mutually_exclusive})>"


class Track(Base, TimestampMixin):
    __tablename__ = "event_tracks"

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(String(36), ForeignKey("track_groups.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    capacity = Column(Integer, nullable=True)  # NULL = unlimited
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    event = relationship("Event", back_populates="tracks")
    group = relationship("TrackGroup", back_populates="tracks")
    track_activities = relationship(
        "TrackActivity", back_populates="track", cascade="all, delete-orphan", passive_deletes=True,
        order_by="TrackActivity.position",
    )

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_track_capacity_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Track(id={self.id}, name={self.name}, group={self.group_id})>"


class Activity(Base, TimestampMixin):
    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event", back_populates="activities")


class TrackActivity(Base, TimestampMixin):
    __tablename__ = "track_activities"

    id = Column(String(36), primary_key=True, default=new_id)
    track_id = Column(String(36), ForeignKey("event_tracks.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_id = Column(String(36), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    track = relationship("Track", back_populates="track_activities")
    activity = relationship("Activity", lazy="joined")

    __table_args__ = (
        UniqueConstraint("track_id", "activity_id", name="uq_track_activity"),
    )
