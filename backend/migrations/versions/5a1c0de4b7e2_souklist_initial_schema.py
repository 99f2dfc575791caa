"""souklist initial schema: catalog, listings, add-ons, payments, audit

Revision ID: 5a1c0de4b7e2
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5a1c0de4b7e2"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="user"),
            sa.Column("is_business_user", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("free_listings_this_month", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("monthly_reset_at", sa.DateTime(), nullable=True),
            sa.Column("subscription_plan", sa.String(length=32), nullable=True),
            sa.Column("subscription_ends_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _table_exists(bind, "categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("slug", sa.String(length=140), nullable=False),
            sa.Column("pricing_tier", sa.String(length=24), nullable=False, server_default="STANDARD"),
            sa.Column("requires_payment", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("base_price", sa.Numeric(12, 2), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_categories_slug", "categories", ["slug"], unique=True)

    if not _table_exists(bind, "pricing_plans"):
        op.create_table(
            "pricing_plans",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=32), nullable=False),
            sa.Column("display_name", sa.String(length=80), nullable=False),
            sa.Column("description", sa.String(length=240), nullable=False),
            sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
            sa.Column("duration_days", sa.Integer(), nullable=False, server_default="30"),
            sa.Column("max_photos", sa.Integer(), nullable=False, server_default="5"),
            sa.Column("can_hide_price", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("has_map_location", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("has_priority_support", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_pricing_plans_name", "pricing_plans", ["name"], unique=True)

    if not _table_exists(bind, "listings"):
        op.create_table(
            "listings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("category_id", sa.Integer(), nullable=False),
            sa.Column("pricing_plan_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("location", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("price", sa.Float(), nullable=True),
            sa.Column("hide_price", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("moderation_reason", sa.String(length=500), nullable=True),
            sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("featured_until", sa.DateTime(), nullable=True),
            sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("featured_position", sa.Integer(), nullable=True),
            sa.Column("bumped_at", sa.DateTime(), nullable=True),
            sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
            sa.ForeignKeyConstraint(["pricing_plan_id"], ["pricing_plans.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_listings_user_id", "listings", ["user_id"], unique=False)
        op.create_index("ix_listings_category_id", "listings", ["category_id"], unique=False)
        op.create_index("ix_listings_pricing_plan_id", "listings", ["pricing_plan_id"], unique=False)
        op.create_index("ix_listings_status", "listings", ["status"], unique=False)
        op.create_index("ix_listings_is_featured", "listings", ["is_featured"], unique=False)
        op.create_index("ix_listings_bumped_at", "listings", ["bumped_at"], unique=False)
        op.create_index("ix_listings_created_at", "listings", ["created_at"], unique=False)

    if not _table_exists(bind, "payments"):
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
            sa.Column("payment_method", sa.String(length=32), nullable=False, server_default="manual"),
            sa.Column("reference", sa.String(length=120), nullable=True),
            sa.Column("description", sa.String(length=240), nullable=False),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("admin_notes", sa.Text(), nullable=True),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("paid_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["approved_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_payments_user_id", "payments", ["user_id"], unique=False)
        op.create_index("ix_payments_status", "payments", ["status"], unique=False)
        op.create_index("ix_payments_created_at", "payments", ["created_at"], unique=False)

    if not _table_exists(bind, "listing_add_ons"):
        op.create_table(
            "listing_add_ons",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("listing_id", sa.Integer(), nullable=False),
            sa.Column("payment_id", sa.Integer(), nullable=True),
            sa.Column("add_on_type", sa.String(length=32), nullable=False),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("effect_applied_at", sa.DateTime(), nullable=True),
            sa.Column("revoked_at", sa.DateTime(), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("purchased_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["listing_id"], ["listings.id"]),
            sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_listing_add_ons_listing_id", "listing_add_ons", ["listing_id"], unique=False)
        op.create_index("ix_listing_add_ons_payment_id", "listing_add_ons", ["payment_id"], unique=False)
        op.create_index("ix_listing_add_ons_add_on_type", "listing_add_ons", ["add_on_type"], unique=False)

    if not _table_exists(bind, "payment_transitions"):
        op.create_table(
            "payment_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("payment_id", sa.Integer(), nullable=False),
            sa.Column("from_status", sa.String(length=32), nullable=False),
            sa.Column("to_status", sa.String(length=32), nullable=False),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("idempotency_key", sa.String(length=160), nullable=True),
            sa.Column("admin_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("payment_id", "idempotency_key", name="uq_payment_transition_key"),
        )
        op.create_index("ix_payment_transitions_payment_id", "payment_transitions", ["payment_id"], unique=False)

    if not _table_exists(bind, "listing_status_transitions"):
        op.create_table(
            "listing_status_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("listing_id", sa.Integer(), nullable=False),
            sa.Column("from_status", sa.String(length=16), nullable=False),
            sa.Column("to_status", sa.String(length=16), nullable=False),
            sa.Column("actor_role", sa.String(length=16), nullable=False),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("reason", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_listing_status_transitions_listing_id", "listing_status_transitions", ["listing_id"], unique=False
        )

    if not _table_exists(bind, "audit_events"):
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("event_type", sa.String(length=80), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("subject_type", sa.String(length=40), nullable=True),
            sa.Column("subject_id", sa.String(length=64), nullable=True),
            sa.Column("request_id", sa.String(length=80), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"], unique=False)
        op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"], unique=False)
        op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"], unique=False)
        op.create_index("ix_audit_events_subject_type", "audit_events", ["subject_type"], unique=False)
        op.create_index("ix_audit_events_subject_id", "audit_events", ["subject_id"], unique=False)


def downgrade():
    for table in (
        "audit_events",
        "listing_status_transitions",
        "payment_transitions",
        "listing_add_ons",
        "payments",
        "listings",
        "pricing_plans",
        "categories",
        "users",
    ):
        op.drop_table(table)
