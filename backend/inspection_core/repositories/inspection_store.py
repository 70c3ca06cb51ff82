"""Database access for check items, daily plans and check records."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..db.models import (
    AuditEventModel,
    CheckItemModel,
    CheckRecordModel,
    DailyPlanItemModel,
    DailyPlanModel,
    plan_scope_key,
)
from ..records import CheckItem, DailyCheckRecord, PlanInclusion, WeeklyCheckRecord
from ..telemetry import EventName


class InspectionRepository:
    """Query and persistence helpers used by the rule engine.

    Methods take an open ``Session``; transaction boundaries belong to the
    caller so a whole schedule generation commits or rolls back together.
    """

    def list_daily_items(self, session: Session, *, include_inactive: bool = False) -> List[CheckItem]:
        """Fixed (non-dynamic) daily check items ordered by sort order then code."""
        stmt = select(CheckItemModel).where(
            CheckItemModel.module == "DAILY",
            CheckItemModel.is_dynamic.is_(False),
        )
        if not include_inactive:
            stmt = stmt.where(CheckItemModel.is_active.is_(True))
        stmt = stmt.order_by(CheckItemModel.sort_order.asc(), CheckItemModel.code.asc())
        return [self._to_domain(model) for model in session.execute(stmt).scalars().all()]

    def get_items(self, session: Session, item_ids: Sequence[str]) -> Dict[str, CheckItem]:
        if not item_ids:
            return {}
        stmt = select(CheckItemModel).where(CheckItemModel.id.in_(list(item_ids)))
        return {model.id: self._to_domain(model) for model in session.execute(stmt).scalars().all()}

    def get_plan(self, session: Session, day: date, *, target_grade: Optional[int] = None) -> DailyPlanModel | None:
        stmt = (
            select(DailyPlanModel)
            .options(selectinload(DailyPlanModel.items).selectinload(DailyPlanItemModel.check_item))
            .where(
                DailyPlanModel.plan_date == day,
                DailyPlanModel.scope_key == plan_scope_key(target_grade),
            )
        )
        return session.execute(stmt).scalar_one_or_none()

    def plans_by_date(
        self,
        session: Session,
        days: Iterable[date],
        *,
        target_grade: Optional[int] = None,
    ) -> Dict[date, DailyPlanModel]:
        day_list = list(days)
        if not day_list:
            return {}
        stmt = (
            select(DailyPlanModel)
            .options(selectinload(DailyPlanModel.items).selectinload(DailyPlanItemModel.check_item))
            .where(
                DailyPlanModel.plan_date.in_(day_list),
                DailyPlanModel.scope_key == plan_scope_key(target_grade),
            )
        )
        return {plan.plan_date: plan for plan in session.execute(stmt).scalars().all()}

    def inclusions(
        self,
        session: Session,
        *,
        start: Optional[date] = None,
        before: Optional[date] = None,
        target_grade: Optional[int] = None,
        any_scope: bool = False,
    ) -> List[PlanInclusion]:
        """Plan inclusions dated in ``[start, before)``, oldest first."""
        stmt = select(DailyPlanItemModel.check_item_id, DailyPlanModel.plan_date).join(
            DailyPlanModel, DailyPlanItemModel.plan_id == DailyPlanModel.id
        )
        if not any_scope:
            stmt = stmt.where(DailyPlanModel.scope_key == plan_scope_key(target_grade))
        if start is not None:
            stmt = stmt.where(DailyPlanModel.plan_date >= start)
        if before is not None:
            stmt = stmt.where(DailyPlanModel.plan_date < before)
        stmt = stmt.order_by(DailyPlanModel.plan_date.asc(), DailyPlanItemModel.sort_order.asc())
        return [
            PlanInclusion(check_item_id=item_id, plan_date=plan_date)
            for item_id, plan_date in session.execute(stmt).all()
        ]

    def replace_plan(
        self,
        session: Session,
        day: date,
        item_ids: Sequence[str],
        *,
        actor_id: Optional[str],
        target_grade: Optional[int] = None,
    ) -> DailyPlanModel:
        """Delete any plan for ``(day, scope)`` and create a fresh one with ``item_ids`` in order."""
        existing = self.get_plan(session, day, target_grade=target_grade)
        if existing is not None:
            session.delete(existing)
            # The unique (date, scope) key requires the delete to reach the database first.
            session.flush()

        plan = DailyPlanModel(
            plan_date=day,
            target_grade=target_grade,
            scope_key=plan_scope_key(target_grade),
            created_by=actor_id,
        )
        plan.items = [
            DailyPlanItemModel(check_item_id=item_id, sort_order=index)
            for index, item_id in enumerate(item_ids, start=1)
        ]
        session.add(plan)
        session.flush()
        return plan

    def daily_records(
        self,
        session: Session,
        *,
        start: date,
        before: date,
        class_id: Optional[str] = None,
    ) -> List[DailyCheckRecord]:
        """Daily-module check records dated in ``[start, before)``."""
        stmt = (
            select(CheckRecordModel, CheckItemModel.code)
            .join(CheckItemModel, CheckRecordModel.check_item_id == CheckItemModel.id)
            .where(
                CheckItemModel.module == "DAILY",
                CheckRecordModel.record_date >= start,
                CheckRecordModel.record_date < before,
            )
        )
        if class_id is not None:
            stmt = stmt.where(CheckRecordModel.class_id == class_id)
        stmt = stmt.order_by(CheckRecordModel.record_date.asc())
        return [
            DailyCheckRecord(
                check_item_id=record.check_item_id,
                code=code,
                record_date=record.record_date,
                passed=record.passed,
                severity=record.severity,
            )
            for record, code in session.execute(stmt).all()
        ]

    def weekly_records(
        self,
        session: Session,
        *,
        class_id: str,
        week_friday: date,
        exclude_codes: Iterable[str] = (),
    ) -> List[WeeklyCheckRecord]:
        stmt = (
            select(CheckRecordModel.option_value, CheckItemModel.code)
            .join(CheckItemModel, CheckRecordModel.check_item_id == CheckItemModel.id)
            .where(
                CheckItemModel.module == "WEEKLY",
                CheckRecordModel.class_id == class_id,
                CheckRecordModel.record_date == week_friday,
            )
        )
        excluded = set(exclude_codes)
        return [
            WeeklyCheckRecord(code=code, option_value=option_value)
            for option_value, code in session.execute(stmt).all()
            if code not in excluded
        ]

    def record_audit(
        self,
        session: Session,
        event_type: Union[EventName, str],
        actor: Optional[str],
        payload: Dict[str, Any],
    ) -> None:
        session.add(AuditEventModel(event_type=EventName(event_type).value, actor=actor, payload=payload))

    @staticmethod
    def _to_domain(model: CheckItemModel) -> CheckItem:
        return CheckItem(
            id=model.id,
            code=model.code,
            title=model.title,
            module=model.module,
            plan_category="resident" if model.plan_category == "resident" else "rotating",
            is_dynamic=model.is_dynamic,
            dynamic_date=model.dynamic_date,
            is_active=model.is_active,
            sort_order=model.sort_order,
            created_at=model.created_at,
        )


inspection_store = InspectionRepository()

__all__ = ["InspectionRepository", "inspection_store"]
