from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from leadflow.core.config import get_settings
from leadflow.pipeline.models import (
    Lead,
    LeadStatusLog,
    LeadUserMapping,
    PaymentInfo,
    PaymentTypeMaster,
    StatusTypeMaster,
    UserLeadTask,
)
from leadflow.pipeline.resolver import find_status_id
from leadflow.pipeline.roles import classify
from leadflow.pipeline.tags import ACTIVE_ACTIVITY_STATUSES, STATUS_SLUGS, PaymentTag, StatusTag
from leadflow.pipeline.visibility import visible_lead_ids
from leadflow.platform.cache.backend import CacheBackend
from leadflow.platform.cache.service import get_or_compute

logger = logging.getLogger("leadflow.dashboard")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def duration_breakdown(seconds: float) -> dict[str, int]:
    total_minutes = int(round(seconds / 60))
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)
    return {"days": days, "hours": hours, "minutes": minutes}


def average_stage_duration(
    rows: Iterable[tuple[int, int, datetime]],
    start_status_id: int,
    end_status_id: int,
) -> dict[str, Any]:
    """Mean time between two stages from a status log scan ordered by created_at.

    Only the first occurrence of each boundary status per lead counts, and
    leads whose end precedes their start are ignored.
    """
    firsts: dict[int, dict[str, datetime]] = {}
    for lead_id, status_id, created_at in rows:
        entry = firsts.setdefault(lead_id, {})
        if status_id == start_status_id:
            entry.setdefault("start", created_at)
        elif status_id == end_status_id:
            entry.setdefault("end", created_at)

    deltas = [
        (entry["end"] - entry["start"]).total_seconds()
        for entry in firsts.values()
        if "start" in entry and "end" in entry and entry["end"] >= entry["start"]
    ]
    if not deltas:
        return {"average_days": 0.0, "days": 0, "hours": 0, "minutes": 0, "leads_counted": 0}

    mean = sum(deltas) / len(deltas)
    return {
        "average_days": round(mean / 86400, 2),
        **duration_breakdown(mean),
        "leads_counted": len(deltas),
    }


def _money(value: Any) -> str:
    return f"{Decimal(str(value or 0)):.2f}"


@dataclass(slots=True)
class DashboardService:
    """Read-mostly rollups served through the aggregation cache.

    Nothing on the write path invalidates these keys, so every aggregate may
    lag the database by up to its TTL.
    """

    cache: CacheBackend
    now: Callable[[], datetime] = field(default=utcnow)

    def _scope(self, session: Session, user_id: int | None) -> tuple[str, int | None]:
        """Cache discriminator plus the user to scope by; admins and vendor-wide views get None."""
        if user_id is None or classify(session, user_id).is_admin:
            return "admin", None
        return str(user_id), user_id

    def _day_bounds(self) -> tuple[datetime, datetime]:
        today_start = self.now().replace(hour=0, minute=0, second=0, microsecond=0)
        return today_start, today_start + timedelta(days=1)

    def task_stats(self, session: Session, *, vendor_id: int, user_id: int) -> dict[str, int]:
        key = f"dashboard:tasks:{vendor_id}:{user_id}"

        def compute() -> dict[str, int]:
            today_start, tomorrow_start = self._day_bounds()
            base = select(func.count(UserLeadTask.id)).where(
                UserLeadTask.vendor_id == vendor_id,
                UserLeadTask.user_id == user_id,
                UserLeadTask.status == "open",
            )
            today = session.scalar(
                base.where(UserLeadTask.due_date >= today_start, UserLeadTask.due_date < tomorrow_start)
            )
            upcoming = session.scalar(base.where(UserLeadTask.due_date >= tomorrow_start))
            overdue = session.scalar(base.where(UserLeadTask.due_date < today_start))
            return {"today": today or 0, "upcoming": upcoming or 0, "overdue": overdue or 0}

        return get_or_compute(
            self.cache,
            key,
            get_settings().task_stats_ttl_seconds,
            compute,
            aggregate="task_stats",
        )

    def status_counts(self, session: Session, *, vendor_id: int, user_id: int | None = None) -> dict[str, Any]:
        mode, scoped_user_id = self._scope(session, user_id)
        key = f"dashboard:status-counts:{vendor_id}:{mode}"

        def compute() -> dict[str, Any]:
            base: Select = (
                select(func.count(Lead.id))
                .join(StatusTypeMaster, StatusTypeMaster.id == Lead.status_id)
                .where(
                    Lead.vendor_id == vendor_id,
                    Lead.is_deleted.is_(False),
                    StatusTypeMaster.vendor_id == vendor_id,
                    Lead.activity_status.in_(ACTIVE_ACTIVITY_STATUSES),
                )
            )
            total_my_tasks = None
            if scoped_user_id is not None:
                total_my_tasks = (
                    session.scalar(
                        select(func.count(UserLeadTask.id)).where(
                            UserLeadTask.vendor_id == vendor_id,
                            UserLeadTask.user_id == scoped_user_id,
                            UserLeadTask.status == "open",
                            UserLeadTask.closed_at.is_(None),
                        )
                    )
                    or 0
                )
                lead_ids = visible_lead_ids(session, vendor_id, scoped_user_id)
                if not lead_ids:
                    return {
                        "total_leads": 0,
                        "stages": {slug: 0 for slug in STATUS_SLUGS.values()},
                        "total_my_tasks": total_my_tasks,
                    }
                base = base.where(Lead.id.in_(lead_ids))

            stages = {
                slug: session.scalar(base.where(StatusTypeMaster.type == slug)) or 0
                for slug in STATUS_SLUGS.values()
            }
            return {
                "total_leads": session.scalar(base) or 0,
                "stages": stages,
                "total_my_tasks": total_my_tasks,
            }

        return get_or_compute(
            self.cache,
            key,
            get_settings().status_counts_ttl_seconds,
            compute,
            aggregate="status_counts",
        )

    def performance_snapshot(self, session: Session, *, vendor_id: int, user_id: int) -> dict[str, int]:
        key = f"dashboard:performance:{vendor_id}:{user_id}"

        def compute() -> dict[str, int]:
            assigned = (
                session.scalar(
                    select(func.count(LeadUserMapping.id)).where(
                        LeadUserMapping.vendor_id == vendor_id,
                        LeadUserMapping.user_id == user_id,
                        LeadUserMapping.status == "active",
                    )
                )
                or 0
            )
            completed = 0
            completed_status_id = find_status_id(session, vendor_id, StatusTag.COMPLETED)
            if completed_status_id is not None:
                completed = (
                    session.scalar(
                        select(func.count(func.distinct(Lead.id)))
                        .join(LeadUserMapping, LeadUserMapping.lead_id == Lead.id)
                        .where(
                            Lead.vendor_id == vendor_id,
                            Lead.status_id == completed_status_id,
                            LeadUserMapping.user_id == user_id,
                            LeadUserMapping.status == "active",
                        )
                    )
                    or 0
                )
            return {
                "total_leads_assigned": assigned,
                "total_completed_leads": completed,
                "total_pending_leads": assigned - completed,
            }

        return get_or_compute(
            self.cache,
            key,
            get_settings().performance_ttl_seconds,
            compute,
            aggregate="performance",
        )

    def stage_duration(self, session: Session, *, vendor_id: int, user_id: int | None = None) -> dict[str, Any]:
        """Average time from Open to Booking."""
        mode, scoped_user_id = self._scope(session, user_id)
        key = f"dashboard:stage-duration:{vendor_id}:{mode}"

        def compute() -> dict[str, Any]:
            open_id = find_status_id(session, vendor_id, StatusTag.OPEN)
            booking_id = find_status_id(session, vendor_id, StatusTag.BOOKING)
            if open_id is None or booking_id is None:
                return average_stage_duration([], 0, 0)
            stmt = (
                select(LeadStatusLog.lead_id, LeadStatusLog.status_id, LeadStatusLog.created_at)
                .where(
                    LeadStatusLog.vendor_id == vendor_id,
                    LeadStatusLog.status_id.in_((open_id, booking_id)),
                )
                .order_by(LeadStatusLog.created_at.asc(), LeadStatusLog.id.asc())
            )
            if scoped_user_id is not None:
                lead_ids = visible_lead_ids(session, vendor_id, scoped_user_id)
                if not lead_ids:
                    return average_stage_duration([], open_id, booking_id)
                stmt = stmt.where(LeadStatusLog.lead_id.in_(lead_ids))
            rows = session.execute(stmt).all()
            return average_stage_duration(((r.lead_id, r.status_id, r.created_at) for r in rows), open_id, booking_id)

        return get_or_compute(self.cache, key, get_settings().stage_duration_ttl_seconds, compute, aggregate="stage_duration")

    def bookings(self, session: Session, *, vendor_id: int, user_id: int | None = None) -> dict[str, Any]:
        """Booking count and booking value per range; the week starts on Monday."""
        mode, scoped_user_id = self._scope(session, user_id)
        key = f"dashboard:bookings:{vendor_id}:{mode}"

        def compute() -> dict[str, Any]:
            today_start, _ = self._day_bounds()
            ranges: dict[str, datetime | None] = {
                "today": today_start,
                "week": today_start - timedelta(days=today_start.weekday()),
                "month": today_start.replace(day=1),
                "year": today_start.replace(month=1, day=1),
                "overall": None,
            }
            booking_status_id = find_status_id(session, vendor_id, StatusTag.BOOKING)
            lead_ids: set[int] | None = None
            if scoped_user_id is not None:
                lead_ids = visible_lead_ids(session, vendor_id, scoped_user_id)

            result: dict[str, Any] = {}
            for name, since in ranges.items():
                if booking_status_id is None or lead_ids == set():
                    result[name] = {"count": 0, "value": _money(0)}
                    continue

                count_stmt = select(func.count(func.distinct(LeadStatusLog.lead_id))).where(
                    LeadStatusLog.vendor_id == vendor_id,
                    LeadStatusLog.status_id == booking_status_id,
                )
                value_stmt = (
                    select(func.sum(PaymentInfo.amount))
                    .join(PaymentTypeMaster, PaymentTypeMaster.id == PaymentInfo.payment_type_id)
                    .where(
                        PaymentInfo.vendor_id == vendor_id,
                        PaymentTypeMaster.tag == str(PaymentTag.BOOKING_AMOUNT),
                    )
                )
                if since is not None:
                    count_stmt = count_stmt.where(LeadStatusLog.created_at >= since)
                    value_stmt = value_stmt.where(PaymentInfo.payment_date >= since)
                if lead_ids is not None:
                    count_stmt = count_stmt.where(LeadStatusLog.lead_id.in_(lead_ids))
                    value_stmt = value_stmt.where(PaymentInfo.lead_id.in_(lead_ids))
                result[name] = {"count": session.scalar(count_stmt) or 0, "value": _money(session.scalar(value_stmt))}
            return result

        return get_or_compute(self.cache, key, get_settings().bookings_ttl_seconds, compute, aggregate="bookings")

    def activity_status_counts(self, session: Session, *, vendor_id: int, user_id: int | None = None) -> dict[str, int]:
        _, scoped_user_id = self._scope(session, user_id)
        base = select(func.count(Lead.id)).where(Lead.vendor_id == vendor_id, Lead.is_deleted.is_(False))
        if scoped_user_id is not None:
            lead_ids = visible_lead_ids(session, vendor_id, scoped_user_id)
            if not lead_ids:
                return {"total_on_going": 0, "open_on_going": 0, "on_hold": 0, "lost_approval": 0, "lost": 0}
            base = base.where(Lead.id.in_(lead_ids))

        open_status_id = find_status_id(session, vendor_id, StatusTag.OPEN)
        open_on_going = 0
        if open_status_id is not None:
            open_on_going = (
                session.scalar(base.where(Lead.activity_status == "onGoing", Lead.status_id == open_status_id)) or 0
            )
        return {
            "total_on_going": session.scalar(base.where(Lead.activity_status == "onGoing")) or 0,
            "open_on_going": open_on_going,
            "on_hold": session.scalar(base.where(Lead.activity_status == "onHold")) or 0,
            "lost_approval": session.scalar(base.where(Lead.activity_status == "lostApproval")) or 0,
            "lost": session.scalar(base.where(Lead.activity_status == "lost")) or 0,
        }
