"""Initial schema: directory, users, reservations and check-ins.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table (mirrored from the identity provider)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("booking_version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('admin', 'user')", name="ck_users_check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Directory: buildings -> floors -> spaces
    op.create_table(
        "buildings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("address", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("city", sa.String(100), nullable=False, server_default=sa.text("''")),
        sa.Column("state", sa.String(100), nullable=False, server_default=sa.text("''")),
        sa.Column("zip_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(100), nullable=False, server_default=sa.text("'Brasil'")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("settings", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
    )
    op.create_index("ix_buildings_id", "buildings", ["id"])
    op.create_index("ix_buildings_name", "buildings", ["name"])
    op.create_index("ix_buildings_city", "buildings", ["city"])
    op.create_index("ix_buildings_is_active", "buildings", ["is_active"])

    op.create_table(
        "floors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("building_id", sa.Integer(), sa.ForeignKey("buildings.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("floor_number", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("building_id", "floor_number", name="uq_building_floor_number"),
    )
    op.create_index("ix_floors_id", "floors", ["id"])
    op.create_index("ix_floors_building_id", "floors", ["building_id"])

    op.create_table(
        "spaces",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("floor_id", sa.Integer(), sa.ForeignKey("floors.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default=sa.text("'desk'")),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_bookable", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        # Per-space concurrency token claimed by every booking write
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="ck_spaces_check_space_capacity_positive"),
        sa.CheckConstraint(
            "type IN ('desk', 'meeting_room', 'office', 'phone_booth', 'other')",
            name="ck_spaces_check_space_type",
        ),
    )
    op.create_index("ix_spaces_id", "spaces", ["id"])
    op.create_index("ix_spaces_floor_id", "spaces", ["floor_id"])

    # Reservations table
    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("space_id", sa.Integer(), sa.ForeignKey("spaces.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("title", sa.String(200), nullable=False, server_default=sa.text("'Reservation'")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("attendees_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("cancelled_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("checked_in_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checked_out_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("checked_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("start_time < end_time", name="ck_reservations_check_reservation_interval"),
        sa.CheckConstraint("attendees_count > 0", name="ck_reservations_check_reservation_attendees_positive"),
        sa.CheckConstraint(
            "status IN ('confirmed', 'checked_in', 'completed', 'cancelled')",
            name="ck_reservations_check_reservation_status",
        ),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    # Conflict scan: active reservations on one space
    op.create_index("ix_reservations_space_status", "reservations", ["space_id", "status"])
    # Quota scan: active reservations of one user
    op.create_index("ix_reservations_user_status", "reservations", ["user_id", "status"])
    # Reports and listings filter on start_time ranges
    op.create_index("ix_reservations_start_time", "reservations", ["start_time"])
    op.create_index("ix_reservations_space_window", "reservations", ["space_id", "start_time", "end_time"])

    # Check-in audit log
    op.create_table(
        "check_ins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("space_id", sa.Integer(), sa.ForeignKey("spaces.id"), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checked_in_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.UniqueConstraint("reservation_id", name="uq_check_in_reservation"),
    )
    op.create_index("ix_check_ins_id", "check_ins", ["id"])
    op.create_index("ix_check_ins_user_id", "check_ins", ["user_id"])
    op.create_index("ix_check_ins_space_id", "check_ins", ["space_id"])


def downgrade() -> None:
    op.drop_table("check_ins")
    op.drop_table("reservations")
    op.drop_table("spaces")
    op.drop_table("floors")
    op.drop_table("buildings")
    op.drop_table("users")
