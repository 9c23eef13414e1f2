"""Admin dashboard: KPIs with monthly trends, distributions, recent alerts and upcoming recruitment."""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.epicq.analytics import percentage_change, round_half_up
from src.epicq.epicq_config import settings
from src.epicq.epicq_database import AlertDB, CaseMetricsDB, HospitalDB, RecruitmentPeriodDB
from src.epicq.epicq_pydantic_models import (
    AlertTypeCount,
    DashboardKPIs,
    DashboardResponse,
    KPITrends,
    PeriodStatus,
    RecentAlert,
    StatusCount,
    UpcomingRecruitment,
)
from src.epicq.epicq_services import period_window

logger = logging.getLogger(__name__)

ACTIVE_HOSPITAL_STATUS = "active"
UNKNOWN_HOSPITAL = "Hospital desconocido"


def month_bounds(today: date) -> Tuple[date, date, date]:
    """First day of the current month, then first and last day of the previous one."""
    current_start = today.replace(day=1)
    previous_end = current_start - timedelta(days=1)
    return current_start, previous_end.replace(day=1), previous_end


class DashboardService:
    """Aggregates over hospitals, case metrics, alerts and recruitment periods."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _count_hospitals(
        self, created_before: Optional[datetime] = None, status: Optional[str] = None
    ) -> int:
        query = select(func.count()).select_from(HospitalDB)
        if created_before is not None:
            query = query.where(HospitalDB.created_at < created_before)
        if status is not None:
            query = query.where(HospitalDB.status == status)
        return await self.session.scalar(query) or 0

    async def _count_active_alerts(self, created_before: Optional[datetime] = None) -> int:
        query = select(func.count()).select_from(AlertDB).where(AlertDB.is_resolved.is_(False))
        if created_before is not None:
            query = query.where(AlertDB.created_at < created_before)
        return await self.session.scalar(query) or 0

    async def _case_totals(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> Tuple[int, int]:
        """Cases created and rounded average completion of the metrics recorded in ``[start, end]``."""
        query = select(
            func.sum(CaseMetricsDB.cases_created),
            func.avg(CaseMetricsDB.completion_percentage),
        )
        if start is not None:
            query = query.where(CaseMetricsDB.recorded_date >= start)
        if end is not None:
            query = query.where(CaseMetricsDB.recorded_date <= end)
        total, average = (await self.session.execute(query)).one()
        # PostgreSQL returns Decimal aggregates
        return int(total or 0), round_half_up(float(average) if average is not None else None)

    async def get_kpis(self, now: datetime) -> DashboardKPIs:
        """
        Headline numbers and their change against the previous month.

        Hospital and alert counts compare everything so far with what existed
        before the current month began; case totals and average completion
        compare the metrics recorded this month with those of last month.
        """
        today = now.date()
        current_start, previous_start, previous_end = month_bounds(today)
        month_start = datetime.combine(current_start, time.min)

        total_hospitals = await self._count_hospitals()
        active_hospitals = await self._count_hospitals(status=ACTIVE_HOSPITAL_STATUS)
        active_alerts = await self._count_active_alerts()
        total_cases, average_completion = await self._case_totals()

        month_cases, month_completion = await self._case_totals(current_start, today)
        last_month_cases, last_month_completion = await self._case_totals(previous_start, previous_end)

        trends = KPITrends(
            total_hospitals=percentage_change(
                total_hospitals, await self._count_hospitals(created_before=month_start)
            ),
            active_hospitals=percentage_change(
                active_hospitals,
                await self._count_hospitals(created_before=month_start, status=ACTIVE_HOSPITAL_STATUS),
            ),
            total_cases=percentage_change(month_cases, last_month_cases),
            average_completion=percentage_change(month_completion, last_month_completion),
            active_alerts=percentage_change(
                active_alerts, await self._count_active_alerts(created_before=month_start)
            ),
        )

        return DashboardKPIs(
            total_hospitals=total_hospitals,
            active_hospitals=active_hospitals,
            total_cases=total_cases,
            average_completion=average_completion,
            active_alerts=active_alerts,
            trends=trends,
        )

    async def get_hospitals_by_status(self) -> List[StatusCount]:
        count = func.count().label("count")
        result = await self.session.execute(
            select(HospitalDB.status, count).group_by(HospitalDB.status).order_by(count.desc())
        )
        return [StatusCount(status=status or "unknown", count=n) for status, n in result.all()]

    async def get_alerts_by_type(self) -> List[AlertTypeCount]:
        """Unresolved alerts per type, most frequent first."""
        count = func.count().label("count")
        result = await self.session.execute(
            select(AlertDB.type, count)
            .where(AlertDB.is_resolved.is_(False))
            .group_by(AlertDB.type)
            .order_by(count.desc())
        )
        return [AlertTypeCount(type=alert_type, count=n) for alert_type, n in result.all()]

    async def get_recent_alerts(self, limit: int = 5) -> List[RecentAlert]:
        result = await self.session.execute(
            select(AlertDB, HospitalDB.name)
            .outerjoin(HospitalDB, HospitalDB.id == AlertDB.hospital_id)
            .where(AlertDB.is_resolved.is_(False))
            .order_by(AlertDB.created_at.desc())
            .limit(limit)
        )
        return [
            RecentAlert(
                id=alert.id,
                title=alert.title,
                message=alert.message,
                severity=alert.severity,
                hospital_name=name or UNKNOWN_HOSPITAL,
                created_at=alert.created_at,
            )
            for alert, name in result.all()
        ]

    async def get_upcoming_recruitment(self, today: date, limit: int = 5) -> List[UpcomingRecruitment]:
        """Periods starting within the upcoming window, soonest first."""
        horizon = today + timedelta(days=settings.UPCOMING_PERIOD_WINDOW_DAYS)
        result = await self.session.execute(
            select(RecruitmentPeriodDB, HospitalDB.name)
            .outerjoin(HospitalDB, HospitalDB.id == RecruitmentPeriodDB.hospital_id)
            .where(
                RecruitmentPeriodDB.start_date >= today,
                RecruitmentPeriodDB.start_date <= horizon,
                RecruitmentPeriodDB.status != PeriodStatus.CANCELLED.value,
            )
            .order_by(RecruitmentPeriodDB.start_date)
            .limit(limit)
        )
        return [
            UpcomingRecruitment(
                id=period.id,
                hospital_id=period.hospital_id,
                hospital_name=name or UNKNOWN_HOSPITAL,
                period_number=period.period_number,
                start_date=period.start_date,
                end_date=period.end_date,
                status=period_window(period, today).status,
            )
            for period, name in result.all()
        ]

    async def get_dashboard(self, now: datetime, limit: int = 5) -> DashboardResponse:
        dashboard = DashboardResponse(
            kpis=await self.get_kpis(now),
            hospitals_by_status=await self.get_hospitals_by_status(),
            alerts_by_type=await self.get_alerts_by_type(),
            recent_alerts=await self.get_recent_alerts(limit),
            upcoming_recruitment=await self.get_upcoming_recruitment(now.date(), limit),
        )
        logger.info(
            f"📈 Dashboard: {dashboard.kpis.total_hospitals} hospital(s), "
            f"{dashboard.kpis.active_alerts} active alert(s)"
        )
        return dashboard
