"""Tests for the admin dashboard aggregates."""

from datetime import date, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.epicq.dashboard import DashboardService, month_bounds
from src.epicq.epicq_database import AlertDB, CaseMetricsDB, HospitalDB, RecruitmentPeriodDB
from src.epicq.epicq_pydantic_models import PeriodStatus

NOW = datetime(2030, 6, 15, 12, 0)


def alert(hospital_id: str, alert_type: str, created_at: datetime, resolved: bool = False) -> AlertDB:
    return AlertDB(
        hospital_id=hospital_id,
        type=alert_type,
        severity="medium",
        title=alert_type,
        message=f"{alert_type} for {hospital_id}",
        is_resolved=resolved,
        auto_resolved=False,
        created_at=created_at,
    )


async def seed(session: AsyncSession) -> tuple[str, str]:
    first = HospitalDB(name="H1", status="active", created_at=datetime(2030, 1, 1, 8, 0))
    second = HospitalDB(name="H2", status="inactive", created_at=datetime(2030, 6, 2, 8, 0))
    session.add_all([first, second])
    await session.flush()

    session.add_all(
        [
            CaseMetricsDB(hospital_id=first.id, recorded_date=date(2030, 5, 10), cases_created=10, completion_percentage=40),
            CaseMetricsDB(hospital_id=first.id, recorded_date=date(2030, 6, 5), cases_created=15, completion_percentage=60),
            CaseMetricsDB(hospital_id=second.id, recorded_date=date(2030, 6, 6), cases_created=5, completion_percentage=71),
            alert(first.id, "no_activity_30_days", datetime(2030, 5, 20)),
            alert(second.id, "missing_documentation", datetime(2030, 6, 10)),
            alert(first.id, "missing_documentation", datetime(2030, 6, 11)),
            alert(first.id, "low_completion_rate", datetime(2030, 4, 1), resolved=True),
            RecruitmentPeriodDB(
                hospital_id=first.id,
                period_number=1,
                start_date=date(2030, 6, 17),
                end_date=date(2030, 6, 23),
                status="planned",
            ),
            RecruitmentPeriodDB(
                hospital_id=second.id,
                period_number=1,
                start_date=date(2030, 6, 24),
                end_date=date(2030, 6, 30),
                status="cancelled",
            ),
            RecruitmentPeriodDB(
                hospital_id=second.id,
                period_number=2,
                start_date=date(2030, 10, 28),
                end_date=date(2030, 11, 3),
                status="planned",
            ),
        ]
    )
    await session.commit()
    return first.id, second.id


class TestMonthBounds:
    def test_previous_month_across_year_end(self) -> None:
        assert month_bounds(date(2030, 1, 20)) == (date(2030, 1, 1), date(2029, 12, 1), date(2029, 12, 31))

    def test_previous_month_of_march(self) -> None:
        assert month_bounds(date(2030, 3, 1)) == (date(2030, 3, 1), date(2030, 2, 1), date(2030, 2, 28))


class TestDashboardService:
    @pytest.mark.asyncio
    async def test_empty_database(self, db_session: AsyncSession) -> None:
        dashboard = await DashboardService(db_session).get_dashboard(NOW)

        assert dashboard.kpis.total_hospitals == 0
        assert dashboard.kpis.total_cases == 0
        assert dashboard.kpis.average_completion == 0
        assert dashboard.kpis.trends.total_hospitals == 0
        assert dashboard.recent_alerts == []
        assert dashboard.upcoming_recruitment == []

    @pytest.mark.asyncio
    async def test_kpis_and_monthly_trends(self, db_session: AsyncSession) -> None:
        await seed(db_session)

        kpis = await DashboardService(db_session).get_kpis(NOW)

        assert kpis.total_hospitals == 2
        assert kpis.active_hospitals == 1
        assert kpis.total_cases == 30
        # (40 + 60 + 71) / 3
        assert kpis.average_completion == 57
        assert kpis.active_alerts == 3

        assert kpis.trends.total_hospitals == 100
        assert kpis.trends.active_hospitals == 0
        # 20 cases this month against 10
        assert kpis.trends.total_cases == 100
        # 66% this month against 40%
        assert kpis.trends.average_completion == 65
        assert kpis.trends.active_alerts == 200

    @pytest.mark.asyncio
    async def test_distributions(self, db_session: AsyncSession) -> None:
        await seed(db_session)
        service = DashboardService(db_session)

        by_status = await service.get_hospitals_by_status()
        by_type = await service.get_alerts_by_type()

        assert {s.status: s.count for s in by_status} == {"active": 1, "inactive": 1}
        assert [(t.type, t.count) for t in by_type] == [
            ("missing_documentation", 2),
            ("no_activity_30_days", 1),
        ]

    @pytest.mark.asyncio
    async def test_recent_alerts_are_open_and_newest_first(self, db_session: AsyncSession) -> None:
        await seed(db_session)

        recent = await DashboardService(db_session).get_recent_alerts(limit=2)

        assert [(a.hospital_name, a.created_at) for a in recent] == [
            ("H1", datetime(2030, 6, 11)),
            ("H2", datetime(2030, 6, 10)),
        ]

    @pytest.mark.asyncio
    async def test_upcoming_recruitment_skips_cancelled_and_far_periods(self, db_session: AsyncSession) -> None:
        first_id, _ = await seed(db_session)

        upcoming = await DashboardService(db_session).get_upcoming_recruitment(NOW.date())

        assert len(upcoming) == 1
        assert upcoming[0].hospital_id == first_id
        assert upcoming[0].hospital_name == "H1"
        assert upcoming[0].start_date == date(2030, 6, 17)
        assert upcoming[0].status == PeriodStatus.PLANNED
