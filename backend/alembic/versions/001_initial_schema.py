"""Initial schema: users, event topology, RSVPs and the capacity ledger.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RSVP_STATUSES = "'pending', 'attending', 'waitlist', 'maybe', 'not_attending'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users: profile fields read by the eligibility gate
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("phone_number", sa.String(50), nullable=True),
        sa.Column("t_shirt_size", sa.String(10), nullable=True),
        sa.Column("dietary_restrictions", sa.String(500), nullable=True),
        sa.Column("accessibility_needs", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("has_tracks", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_event_capacity_non_negative"),
    )
    op.create_index("ix_events_starts_at", "events", ["starts_at"])

    op.create_table(
        "track_groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_mutually_exclusive", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )
    op.create_index("ix_track_groups_event_id", "track_groups", ["event_id"])

    op.create_table(
        "event_tracks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "group_id", sa.String(36), sa.ForeignKey("track_groups.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_track_capacity_non_negative"),
    )
    op.create_index("ix_event_tracks_event_id", "event_tracks", ["event_id"])
    op.create_index("ix_event_tracks_group_id", "event_tracks", ["group_id"])

    op.create_table(
        "activities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_activities_event_id", "activities", ["event_id"])

    op.create_table(
        "track_activities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "track_id", sa.String(36), sa.ForeignKey("event_tracks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "activity_id", sa.String(36), sa.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.UniqueConstraint("track_id", "activity_id", name="uq_track_activity"),
    )
    op.create_index("ix_track_activities_track_id", "track_activities", ["track_id"])

    # One RSVP per (user, event); cancellation is a status, never a delete
    op.create_table(
        "event_rsvps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "track_id", sa.String(36), sa.ForeignKey("event_tracks.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("guest_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("notes", sa.String(1000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "event_id", name="uq_user_event_rsvp"),
        sa.CheckConstraint("guest_count >= 1", name="check_rsvp_guest_count_positive"),
        sa.CheckConstraint(f"status IN ({RSVP_STATUSES})", name="check_rsvp_status"),
    )
    op.create_index("ix_event_rsvps_user_id", "event_rsvps", ["user_id"])
    op.create_index("ix_event_rsvps_event_id", "event_rsvps", ["event_id"])
    # Covers the per-status statistics query
    op.create_index("ix_event_rsvps_event_status", "event_rsvps", ["event_id", "status"])

    # At most one selection per exclusive group: NULL group ids never collide
    op.create_table(
        "rsvp_track_selections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "rsvp_id", sa.String(36), sa.ForeignKey("event_rsvps.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "track_id", sa.String(36), sa.ForeignKey("event_tracks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("exclusive_group_id", sa.String(36), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("rsvp_id", "track_id", name="uq_rsvp_track"),
        sa.UniqueConstraint("rsvp_id", "exclusive_group_id", name="uq_rsvp_exclusive_group"),
    )
    op.create_index("ix_rsvp_track_selections_rsvp_id", "rsvp_track_selections", ["rsvp_id"])
    op.create_index("ix_rsvp_track_selections_track_id", "rsvp_track_selections", ["track_id"])

    op.create_table(
        "activity_rsvps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "activity_id", sa.String(36), sa.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'attending'")),
        sa.Column("guest_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("notes", sa.String(1000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "activity_id", name="uq_user_activity_rsvp"),
        sa.CheckConstraint("guest_count >= 1", name="check_activity_rsvp_guest_count_positive"),
        sa.CheckConstraint(f"status IN ({RSVP_STATUSES})", name="check_activity_rsvp_status"),
    )
    op.create_index("ix_activity_rsvps_user_id", "activity_rsvps", ["user_id"])
    op.create_index("ix_activity_rsvps_activity_id", "activity_rsvps", ["activity_id"])

    # CAPACITY LEDGER: occupancy is only ever changed by
    #   UPDATE ... SET occupancy = occupancy + n WHERE capacity IS NULL OR occupancy + n <= capacity
    # The CHECK constraints below are the last line of defence against overselling.
    op.create_table(
        "capacity_counters",
        sa.Column("unit_id", sa.String(36), primary_key=True),
        sa.Column("unit_type", sa.String(10), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("occupancy", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("occupancy >= 0", name="check_occupancy_non_negative"),
        sa.CheckConstraint("capacity IS NULL OR occupancy <= capacity", name="check_occupancy_lte_capacity"),
        sa.CheckConstraint("unit_type IN ('event', 'track')", name="check_unit_type"),
    )

    op.create_table(
        "capacity_reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "unit_id", sa.String(36), sa.ForeignKey("capacity_counters.unit_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("holder", sa.String(100), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("unit_id", "holder", name="uq_reservation_unit_holder"),
        sa.CheckConstraint("amount > 0", name="check_reservation_amount_positive"),
    )
    op.create_index("ix_capacity_reservations_unit_id", "capacity_reservations", ["unit_id"])
    op.create_index("ix_capacity_reservations_holder", "capacity_reservations", ["holder"])


def downgrade() -> None:
    op.drop_table("capacity_reservations")
    op.drop_table("capacity_counters")
    op.drop_table("activity_rsvps")
    op.drop_table("rsvp_track_selections")
    op.drop_table("event_rsvps")
    op.drop_table("track_activities")
    op.drop_table("activities")
    op.drop_table("event_tracks")
    op.drop_table("track_groups")
    op.drop_table("events")
    op.drop_table("users")
