"""Hospital, recruitment period and case metric services backed by the database."""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.epicq.analytics import calculate_trend_from_history
from src.epicq.epicq_config import settings
from src.epicq.epicq_database import (
    CaseMetricsDB,
    HospitalContactDB,
    HospitalDB,
    HospitalDetailsDB,
    HospitalProgressDB,
    RecruitmentPeriodDB,
    new_id,
)
from src.epicq.epicq_pydantic_models import (
    CaseMetricsCreate,
    CompletionResult,
    CoordinatorStatsResponse,
    EthicsUpdate,
    FormStatusResponse,
    HospitalAlertState,
    HospitalBasic,
    HospitalCreate,
    HospitalDetails,
    HospitalFormStatus,
    HospitalFormUpdate,
    MetricSnapshot,
    PeriodStatus,
    PeriodValidationResult,
    PeriodWindow,
    PrimaryContact,
    RecruitmentPeriodCreate,
    RecruitmentPeriodResponse,
    RecruitmentPeriodUpsert,
    TrendSummary,
)
from src.epicq.format_utils import Locale, translate
from src.epicq.hospital_completion import (
    CORE_FORM_FIELDS,
    EXTENDED_FORM_FIELDS,
    FormFieldDef,
    build_checklist,
    is_urgent,
    score,
    score_checklist,
)
from src.epicq.recruitment_periods import (
    PeriodOverlapValidator,
    derive_period_status,
    transition_status,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.utcnow()


def period_window(period: RecruitmentPeriodDB, today: date) -> PeriodWindow:
    return PeriodWindow(
        id=period.id,
        start=period.start_date,
        end=period.end_date,
        period_number=period.period_number,
        status=derive_period_status(
            period.start_date, period.end_date, today, PeriodStatus(period.status)
        ),
    )


def period_response(period: RecruitmentPeriodDB, today: date) -> RecruitmentPeriodResponse:
    return RecruitmentPeriodResponse(
        id=period.id,
        hospital_id=period.hospital_id,
        period_number=period.period_number,
        start_date=period.start_date,
        end_date=period.end_date,
        status=period_window(period, today).status,
        target_cases=period.target_cases,
        notes=period.notes,
    )


class HospitalService:
    """Hospital records, the hospital form and its completion score."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_hospital(self, data: HospitalCreate) -> HospitalDB:
        hospital = HospitalDB(
            id=new_id(),
            project_id=data.project_id,
            name=data.name,
            province=data.province,
            city=data.city,
            participated_lasos=data.participated_lasos,
        )
        self.session.add(hospital)
        await self.session.commit()
        await self.session.refresh(hospital)
        logger.info(f"🏥 Created hospital {hospital.id} ({hospital.name})")
        return hospital

    async def get_hospital(self, hospital_id: str) -> Optional[HospitalDB]:
        return await self.session.get(HospitalDB, hospital_id)

    async def list_hospitals(self) -> Sequence[HospitalDB]:
        result = await self.session.execute(select(HospitalDB).order_by(HospitalDB.created_at))
        return result.scalars().all()

    async def _get_details(self, hospital_id: str) -> Optional[HospitalDetailsDB]:
        result = await self.session.execute(
            select(HospitalDetailsDB).where(HospitalDetailsDB.hospital_id == hospital_id)
        )
        return result.scalar_one_or_none()

    async def _get_primary_contact(self, hospital_id: str) -> Optional[HospitalContactDB]:
        result = await self.session.execute(
            select(HospitalContactDB)
            .where(
                HospitalContactDB.hospital_id == hospital_id,
                HospitalContactDB.role == "coordinator",
                HospitalContactDB.is_primary.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_progress(self, hospital_id: str) -> Optional[HospitalProgressDB]:
        result = await self.session.execute(
            select(HospitalProgressDB).where(HospitalProgressDB.hospital_id == hospital_id)
        )
        return result.scalar_one_or_none()

    async def get_form_records(
        self, hospital: HospitalDB
    ) -> Tuple[HospitalBasic, Optional[HospitalDetails], Optional[PrimaryContact]]:
        """Load the three records the form checklist is built from."""
        basic = HospitalBasic(
            name=hospital.name,
            province=hospital.province,
            city=hospital.city,
            participated_lasos=hospital.participated_lasos,
            created_at=hospital.created_at,
        )

        details_row = await self._get_details(hospital.id)
        details = None
        if details_row is not None:
            details = HospitalDetails(
                **{name: getattr(details_row, name) for name in HospitalDetails.model_fields}
            )

        contact_row = await self._get_primary_contact(hospital.id)
        contact = None
        if contact_row is not None:
            contact = PrimaryContact(
                name=contact_row.name,
                email=contact_row.email,
                phone=contact_row.phone,
                specialty=contact_row.specialty,
            )

        return basic, details, contact

    async def save_form(self, hospital: HospitalDB, form: HospitalFormUpdate) -> HospitalDB:
        """Save the submitted sections of the form; fields left out keep their value."""
        for name, value in form.basic.model_dump(exclude_unset=True).items():
            if name != "created_at":
                setattr(hospital, name, value)

        details_data = form.details.model_dump(exclude_unset=True)
        if details_data:
            details = await self._get_details(hospital.id)
            if details is None:
                details = HospitalDetailsDB(id=new_id(), hospital_id=hospital.id)
                self.session.add(details)
            for name, value in details_data.items():
                setattr(details, name, value)

        contact_data = form.contact.model_dump(exclude_unset=True)
        if contact_data:
            contact = await self._get_primary_contact(hospital.id)
            if contact is None:
                contact = HospitalContactDB(
                    id=new_id(), hospital_id=hospital.id, role="coordinator", is_primary=True
                )
                self.session.add(contact)
            for name, value in contact_data.items():
                setattr(contact, name, value)

        hospital.updated_at = utc_now()
        await self.session.commit()
        await self.session.refresh(hospital)
        logger.info(f"📝 Saved form for hospital {hospital.id}")
        return hospital

    async def save_ethics(self, hospital: HospitalDB, data: EthicsUpdate) -> HospitalProgressDB:
        progress = await self.get_progress(hospital.id)
        if progress is None:
            progress = HospitalProgressDB(id=new_id(), hospital_id=hospital.id)
            self.session.add(progress)

        progress.ethics_submitted = data.ethics_submitted
        progress.ethics_approved = data.ethics_approved
        progress.ethics_submitted_date = data.ethics_submitted_date
        progress.ethics_approved_date = data.ethics_approved_date
        await self.session.commit()
        await self.session.refresh(progress)
        return progress

    async def score_form(
        self,
        hospital: HospitalDB,
        fields: Sequence[FormFieldDef] = CORE_FORM_FIELDS,
    ) -> CompletionResult:
        basic, details, contact = await self.get_form_records(hospital)
        return score(basic, details, contact, fields)

    async def get_form_status(self, hospital: HospitalDB, now: datetime) -> FormStatusResponse:
        basic, details, contact = await self.get_form_records(hospital)
        checklist = build_checklist(basic, details, contact, EXTENDED_FORM_FIELDS)
        completion = score_checklist(checklist, EXTENDED_FORM_FIELDS)
        return FormStatusResponse(
            hospital_id=hospital.id,
            completion=completion,
            is_urgent=is_urgent(completion, hospital.created_at, now, settings.FORM_URGENCY_DAYS),
            fields=checklist,
        )

    async def get_coordinator_stats(
        self, hospital: HospitalDB, now: datetime
    ) -> CoordinatorStatsResponse:
        """Dashboard numbers for the hospital coordinator."""
        completion = await self.score_form(hospital)

        today = now.date()
        horizon = today + timedelta(days=settings.UPCOMING_PERIOD_WINDOW_DAYS)
        periods = await RecruitmentPeriodService(self.session).list_periods(hospital.id)
        upcoming = [
            period
            for period in periods
            if period_window(period, today).status == PeriodStatus.PLANNED
            and today <= period.start_date <= horizon
        ]

        return CoordinatorStatsResponse(
            form_completion=completion.percentage,
            upcoming_periods=len(upcoming),
            hospital_form_status=HospitalFormStatus(
                is_complete=completion.is_complete,
                is_urgent=is_urgent(
                    completion, hospital.created_at, now, settings.FORM_URGENCY_DAYS
                ),
                missing_fields=completion.missing_fields,
                completed_steps=completion.completed_count,
                total_steps=completion.total_required,
                last_updated=hospital.updated_at,
            ),
        )

    async def build_alert_state(self, hospital: HospitalDB, now: datetime) -> HospitalAlertState:
        """Collect everything the alert rules evaluate for one hospital."""
        today = now.date()
        progress = await self.get_progress(hospital.id)
        periods = await RecruitmentPeriodService(self.session).list_periods(hospital.id)
        metrics = await CaseMetricsService(self.session).list_metrics(hospital.id)

        average_completion = None
        if metrics:
            average_completion = sum(m.completion_percentage or 0 for m in metrics) / len(metrics)
        case_dates = [m.last_case_date for m in metrics if m.last_case_date is not None]

        return HospitalAlertState(
            hospital_id=hospital.id,
            hospital_name=hospital.name or hospital.id,
            project_id=hospital.project_id,
            created_at=hospital.created_at,
            last_case_date=max(case_dates) if case_dates else None,
            average_completion=average_completion,
            ethics_submitted=bool(progress and progress.ethics_submitted),
            ethics_approved=bool(progress and progress.ethics_approved),
            ethics_submitted_date=progress.ethics_submitted_date if progress else None,
            periods=[period_window(period, today) for period in periods],
            completion=await self.score_form(hospital),
        )


class RecruitmentPeriodService:
    """Recruitment periods of a hospital, validated before they are stored."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_periods(self, hospital_id: str) -> Sequence[RecruitmentPeriodDB]:
        result = await self.session.execute(
            select(RecruitmentPeriodDB)
            .where(RecruitmentPeriodDB.hospital_id == hospital_id)
            .order_by(RecruitmentPeriodDB.period_number)
        )
        return result.scalars().all()

    async def get_period(self, period_id: str) -> Optional[RecruitmentPeriodDB]:
        return await self.session.get(RecruitmentPeriodDB, period_id)

    @staticmethod
    def validator(locale: Locale) -> PeriodOverlapValidator:
        return PeriodOverlapValidator(
            require_weekly_window=settings.ENFORCE_WEEKLY_WINDOW,
            min_gap_months=settings.MIN_MONTHS_BETWEEN_PERIODS,
            locale=locale,
        )

    def _check_start(self, start: date, today: date, locale: Locale) -> Optional[PeriodValidationResult]:
        if not settings.ALLOW_PAST_START_DATES and start < today:
            return PeriodValidationResult(
                is_valid=False, message=translate("period.start_in_past", locale)
            )
        return None

    async def create_period(
        self,
        hospital_id: str,
        data: RecruitmentPeriodCreate,
        today: date,
        locale: Locale,
    ) -> Tuple[Optional[RecruitmentPeriodDB], PeriodValidationResult]:
        """
        Validate and store a new period.

        Returns:
            The stored period (None when rejected) and the validation result
        """
        rejected = self._check_start(data.start_date, today, locale)
        if rejected is not None:
            return None, rejected

        periods = await self.list_periods(hospital_id)
        windows = [period_window(period, today) for period in periods]
        counted = [w for w in windows if w.status != PeriodStatus.CANCELLED]
        if len(counted) >= settings.MAX_RECRUITMENT_PERIODS:
            return None, PeriodValidationResult(
                is_valid=False,
                message=translate(
                    "period.max_reached",
                    locale,
                    maximum=settings.MAX_RECRUITMENT_PERIODS,
                    count=len(counted),
                ),
            )

        period_number = max((p.period_number for p in periods), default=0) + 1
        result = self.validator(locale).validate(
            data.start_date, data.end_date, windows, period_number=period_number
        )
        if not result.is_valid:
            logger.info(f"🚫 Rejected period for hospital {hospital_id}: {result.message}")
            return None, result

        period = RecruitmentPeriodDB(
            id=new_id(),
            hospital_id=hospital_id,
            period_number=period_number,
            start_date=data.start_date,
            end_date=data.end_date,
            status=PeriodStatus.PLANNED.value,
            target_cases=data.target_cases,
            notes=data.notes,
        )
        self.session.add(period)
        await self.session.commit()
        await self.session.refresh(period)
        logger.info(f"📅 Created period {period_number} for hospital {hospital_id}")
        return period, result

    async def update_period(
        self,
        period: RecruitmentPeriodDB,
        data: RecruitmentPeriodCreate,
        today: date,
        locale: Locale,
    ) -> Tuple[Optional[RecruitmentPeriodDB], PeriodValidationResult]:
        """Move an existing period, keeping its number. Only planned periods can move."""
        current = period_window(period, today).status
        if current != PeriodStatus.PLANNED:
            logger.info(f"🚫 Rejected edit of {current.value} period {period.id}")
            return None, PeriodValidationResult(
                is_valid=False,
                message=translate("period.not_editable", locale),
                conflicting_period_id=period.id,
            )

        rejected = self._check_start(data.start_date, today, locale)
        if rejected is not None:
            return None, rejected

        periods = await self.list_periods(period.hospital_id)
        windows = [period_window(p, today) for p in periods]
        result = self.validator(locale).validate(
            data.start_date, data.end_date, windows, exclude_id=period.id
        )
        if not result.is_valid:
            logger.info(f"🚫 Rejected edit of period {period.id}: {result.message}")
            return None, result

        period.start_date = data.start_date
        period.end_date = data.end_date
        if "target_cases" in data.model_fields_set:
            period.target_cases = data.target_cases
        if "notes" in data.model_fields_set:
            period.notes = data.notes
        await self.session.commit()
        await self.session.refresh(period)
        return period, result

    async def upsert_period(
        self,
        hospital_id: str,
        data: RecruitmentPeriodUpsert,
        today: date,
        locale: Locale,
    ) -> Tuple[Optional[RecruitmentPeriodDB], PeriodValidationResult]:
        """Edit the period named by ``period_id``, or create a new one."""
        if data.period_id is None:
            return await self.create_period(hospital_id, data, today, locale)

        period = await self.get_period(data.period_id)
        if period is None or period.hospital_id != hospital_id:
            raise LookupError(f"Recruitment period {data.period_id} not found")
        return await self.update_period(period, data, today, locale)

    async def change_status(
        self, period: RecruitmentPeriodDB, target: PeriodStatus, today: date
    ) -> RecruitmentPeriodDB:
        """Apply a lifecycle transition; raises ValueError when it is not allowed."""
        current = period_window(period, today).status
        period.status = transition_status(current, target).value
        await self.session.commit()
        await self.session.refresh(period)
        logger.info(f"🔄 Period {period.id}: {current.value} -> {period.status}")
        return period

    async def delete_period(self, period: RecruitmentPeriodDB) -> None:
        await self.session.delete(period)
        await self.session.commit()
        logger.info(f"🗑️ Deleted period {period.id}")


class CaseMetricsService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record_metrics(self, hospital_id: str, data: CaseMetricsCreate) -> CaseMetricsDB:
        metrics = CaseMetricsDB(id=new_id(), hospital_id=hospital_id, **data.model_dump())
        self.session.add(metrics)
        await self.session.commit()
        await self.session.refresh(metrics)
        return metrics

    async def list_metrics(self, hospital_id: str) -> Sequence[CaseMetricsDB]:
        result = await self.session.execute(
            select(CaseMetricsDB)
            .where(CaseMetricsDB.hospital_id == hospital_id)
            .order_by(CaseMetricsDB.recorded_date)
        )
        return result.scalars().all()

    async def get_trend(self, hospital_id: str) -> TrendSummary:
        metrics = await self.list_metrics(hospital_id)
        history: List[MetricSnapshot] = [
            MetricSnapshot(
                recorded_date=m.recorded_date, completion_percentage=m.completion_percentage
            )
            for m in metrics
        ]
        return calculate_trend_from_history(history)
