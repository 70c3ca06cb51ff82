"""Inspection rule engine schema: classes, check items, daily plans, records, audit."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20260301_01_inspection_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "school_classes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("grade", sa.Integer(), nullable=False),
        sa.Column("section", sa.Integer(), nullable=False),
        sa.UniqueConstraint("grade", "section", name="uq_school_class_grade_section"),
    )

    op.create_table(
        "check_items",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=16), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("module", sa.String(length=16), nullable=False, server_default="DAILY"),
        sa.Column("plan_category", sa.String(length=16), nullable=True),
        sa.Column("is_dynamic", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dynamic_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_check_items_module_active", "check_items", ["module", "is_active"])
    op.create_index("ix_check_items_code", "check_items", ["code"])

    op.create_table(
        "daily_plans",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("target_grade", sa.Integer(), nullable=True),
        sa.Column("scope_key", sa.String(length=16), nullable=False, server_default="all"),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("date", "scope_key", name="uq_daily_plan_date_scope"),
    )
    op.create_index("ix_daily_plans_date", "daily_plans", ["date"])

    op.create_table(
        "daily_plan_items",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("plan_id", sa.String(length=36), sa.ForeignKey("daily_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("check_item_id", sa.String(length=36), sa.ForeignKey("check_items.id"), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.UniqueConstraint("plan_id", "check_item_id", name="uq_daily_plan_item"),
    )
    op.create_index("ix_daily_plan_items_plan_id", "daily_plan_items", ["plan_id"])
    op.create_index("ix_daily_plan_items_check_item_id", "daily_plan_items", ["check_item_id"])

    op.create_table(
        "check_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("class_id", sa.String(length=36), sa.ForeignKey("school_classes.id"), nullable=False),
        sa.Column("check_item_id", sa.String(length=36), sa.ForeignKey("check_items.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=True),
        sa.Column("option_value", sa.String(length=8), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("scored_by_id", sa.String(length=64), nullable=True),
        sa.Column("scored_by_role", sa.String(length=32), nullable=True),
        sa.Column("original_value", sa.String(length=16), nullable=True),
        sa.Column("reviewed_by_id", sa.String(length=64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("class_id", "check_item_id", "date", name="uq_check_record_class_item_date"),
    )
    op.create_index("ix_check_records_date", "check_records", ["date"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("actor", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_audit_events_type", "audit_events", ["event_type"])


def downgrade() -> None:
    op.drop_index("ix_audit_events_type", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_check_records_date", table_name="check_records")
    op.drop_table("check_records")
    op.drop_index("ix_daily_plan_items_check_item_id", table_name="daily_plan_items")
    op.drop_index("ix_daily_plan_items_plan_id", table_name="daily_plan_items")
    op.drop_table("daily_plan_items")
    op.drop_index("ix_daily_plans_date", table_name="daily_plans")
    op.drop_table("daily_plans")
    op.drop_index("ix_check_items_code", table_name="check_items")
    op.drop_index("ix_check_items_module_active", table_name="check_items")
    op.drop_table("check_items")
    op.drop_table("school_classes")
