"""ORM models backing classes, check items, daily plans and check records."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON

ALL_GRADES_SCOPE = "all"


def plan_scope_key(target_grade: Optional[int]) -> str:
    return ALL_GRADES_SCOPE if target_grade is None else f"grade-{target_grade}"


class SchoolClassModel(Base):
    __tablename__ = "school_classes"
    __table_args__ = (UniqueConstraint("grade", "section", name="uq_school_class_grade_section"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    grade: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[int] = mapped_column(Integer, nullable=False)

    records: Mapped[list["CheckRecordModel"]] = relationship(back_populates="school_class")


class CheckItemModel(Base):
    __tablename__ = "check_items"
    __table_args__ = (
        Index("ix_check_items_module_active", "module", "is_active"),
        Index("ix_check_items_code", "code"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    module: Mapped[str] = mapped_column(String(16), nullable=False, default="DAILY")
    plan_category: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_dynamic: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    dynamic_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class DailyPlanModel(Base):
    __tablename__ = "daily_plans"
    __table_args__ = (UniqueConstraint("date", "scope_key", name="uq_daily_plan_date_scope"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    plan_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    target_grade: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scope_key: Mapped[str] = mapped_column(String(16), nullable=False, default=ALL_GRADES_SCOPE)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    items: Mapped[list["DailyPlanItemModel"]] = relationship(
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="DailyPlanItemModel.sort_order",
    )


class DailyPlanItemModel(Base):
    __tablename__ = "daily_plan_items"
    __table_args__ = (UniqueConstraint("plan_id", "check_item_id", name="uq_daily_plan_item"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("daily_plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    check_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("check_items.id"), nullable=False, index=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)

    plan: Mapped[DailyPlanModel] = relationship(back_populates="items")
    check_item: Mapped[CheckItemModel] = relationship()


class CheckRecordModel(TimestampMixin, Base):
    __tablename__ = "check_records"
    __table_args__ = (
        UniqueConstraint("class_id", "check_item_id", "date", name="uq_check_record_class_item_date"),
        Index("ix_check_records_date", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_id: Mapped[str] = mapped_column(String(36), ForeignKey("school_classes.id"), nullable=False)
    check_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("check_items.id"), nullable=False)
    record_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    option_value: Mapped[str | None] = mapped_column(String(8), nullable=True)
    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text)
    scored_by_id: Mapped[str | None] = mapped_column(String(64))
    scored_by_role: Mapped[str | None] = mapped_column(String(32))
    original_value: Mapped[str | None] = mapped_column(String(16))
    reviewed_by_id: Mapped[str | None] = mapped_column(String(64))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    school_class: Mapped[SchoolClassModel] = relationship(back_populates="records")
    check_item: Mapped[CheckItemModel] = relationship()


class AuditEventModel(Base):
    __tablename__ = "audit_events"
    __table_args__ = (Index("ix_audit_events_type", "event_type"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(64))
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


__all__ = [
    "ALL_GRADES_SCOPE",
    "AuditEventModel",
    "CheckItemModel",
    "CheckRecordModel",
    "DailyPlanItemModel",
    "DailyPlanModel",
    "SchoolClassModel",
    "plan_scope_key",
]
