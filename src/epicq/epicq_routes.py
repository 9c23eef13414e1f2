"""EPIC-Q API routes

Hospital form, recruitment periods, coordinator and admin dashboards, case metrics and alerts.

Seeds the default alert configurations on startup.

"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.epicq.alert_generation import (
    AlertConfigurationService,
    AlertService,
    alert_response,
    communication_response,
)
from src.epicq.dashboard import DashboardService
from src.epicq.epicq_config import settings
from src.epicq.epicq_database import (
    HospitalDB,
    async_session_maker,
    check_db_connection,
    close_db,
    get_db,
    init_db,
)
from src.epicq.epicq_pydantic_models import (
    AlertConfiguration,
    AlertConfigurationUpdate,
    AlertGenerationSummary,
    AlertResolveRequest,
    AlertResponse,
    AlertSeverity,
    AlertStats,
    AlertType,
    CaseMetricsCreate,
    CommunicationResponse,
    CoordinatorStatsResponse,
    DashboardResponse,
    EthicsUpdate,
    ErrorResponse,
    FormStatusResponse,
    HealthResponse,
    HospitalCreate,
    HospitalFormUpdate,
    HospitalResponse,
    PeriodStatus,
    PeriodStatusUpdate,
    PeriodValidationResult,
    RecruitmentPeriodCreate,
    RecruitmentPeriodResponse,
    RecruitmentPeriodUpsert,
    TrendSummary,
)
from src.epicq.epicq_services import (
    CaseMetricsService,
    HospitalService,
    RecruitmentPeriodService,
    period_response,
    period_window,
    utc_now,
)
from src.epicq.format_utils import Locale, get_locale

logger = logging.getLogger(__name__)


# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize and cleanup on startup/shutdown."""
    # Startup
    print(f"\n{'='*60}")
    print(f"🚀 Starting {settings.SERVICE_NAME} v{settings.VERSION}")
    print(f"{'='*60}\n")

    print("📊 Initializing database...")
    await init_db()
    print("✅ Database tables created")

    async with async_session_maker() as session:
        seeded = await AlertConfigurationService(session).seed_defaults()
    if seeded:
        print(f"⚙️ Seeded {seeded} default alert configuration(s)")

    if await check_db_connection():
        print("\n✅ PostgreSQL database connected")
    else:
        print("\n❌ PostgreSQL database NOT connected")
        print(" Warning: Database operations will fail")

    print(f"\n{'='*60}\n")

    yield

    # Shutdown
    print(f"\n🛑 Shutting down {settings.SERVICE_NAME}...")
    await close_db()
    print("✅ Cleanup complete\n")


router = APIRouter()
start_time = time.time()


def request_locale(
    locale: Optional[str] = Query(None, description="es, en or pt"),
    accept_language: Optional[str] = Header(None),
) -> Locale:
    """Locale from the ``locale`` query parameter, else Accept-Language, else the configured default."""
    if locale:
        return get_locale(locale)
    if accept_language:
        return get_locale(accept_language.split(",")[0].strip())
    return get_locale(settings.DEFAULT_LOCALE)


def validation_error(result: PeriodValidationResult) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": result.message},
    )


async def load_hospital(hospital_id: str, db: AsyncSession) -> HospitalDB:
    hospital = await HospitalService(db).get_hospital(hospital_id)
    if hospital is None:
        logger.warning(f"⚠️ Hospital {hospital_id} not found")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Hospital {hospital_id} not found",
        )
    return hospital


# ════════════════════════════════════════════════════════════════════════════
# Hospital Endpoints
# ════════════════════════════════════════════════════════════════════════════


@router.post(
    "/hospitals",
    response_model=HospitalResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Hospitals"],
)
async def create_hospital(data: HospitalCreate, db: AsyncSession = Depends(get_db)) -> HospitalResponse:
    hospital = await HospitalService(db).create_hospital(data)
    return HospitalResponse.model_validate(hospital)


@router.get(
    "/hospitals/{hospital_id}",
    response_model=HospitalResponse,
    tags=["Hospitals"],
    responses={404: {"model": ErrorResponse, "description": "Hospital not found"}},
)
async def get_hospital(hospital_id: str, db: AsyncSession = Depends(get_db)) -> HospitalResponse:
    return HospitalResponse.model_validate(await load_hospital(hospital_id, db))


@router.put(
    "/hospitals/{hospital_id}/form",
    response_model=FormStatusResponse,
    tags=["Hospitals"],
    summary="Save the hospital form",
)
async def save_hospital_form(
    hospital_id: str,
    form: HospitalFormUpdate,
    db: AsyncSession = Depends(get_db),
) -> FormStatusResponse:
    """Save basic information, structural details and the primary coordinator, then return the new form status."""
    hospital = await load_hospital(hospital_id, db)
    service = HospitalService(db)
    hospital = await service.save_form(hospital, form)
    return await service.get_form_status(hospital, utc_now())


@router.put(
    "/hospitals/{hospital_id}/ethics",
    response_model=EthicsUpdate,
    tags=["Hospitals"],
)
async def save_ethics(
    hospital_id: str,
    data: EthicsUpdate,
    db: AsyncSession = Depends(get_db),
) -> EthicsUpdate:
    hospital = await load_hospital(hospital_id, db)
    progress = await HospitalService(db).save_ethics(hospital, data)
    return EthicsUpdate(
        ethics_submitted=progress.ethics_submitted,
        ethics_approved=progress.ethics_approved,
        ethics_submitted_date=progress.ethics_submitted_date,
        ethics_approved_date=progress.ethics_approved_date,
    )


@router.get(
    "/hospitals/{hospital_id}/form-status",
    response_model=FormStatusResponse,
    tags=["Hospitals"],
)
async def get_form_status(hospital_id: str, db: AsyncSession = Depends(get_db)) -> FormStatusResponse:
    hospital = await load_hospital(hospital_id, db)
    return await HospitalService(db).get_form_status(hospital, utc_now())


# ════════════════════════════════════════════════════════════════════════════
# Recruitment Period Endpoints
# ════════════════════════════════════════════════════════════════════════════


@router.get(
    "/hospitals/{hospital_id}/recruitment-periods",
    response_model=List[RecruitmentPeriodResponse],
    tags=["Recruitment Periods"],
)
async def list_recruitment_periods(
    hospital_id: str, db: AsyncSession = Depends(get_db)
) -> List[RecruitmentPeriodResponse]:
    await load_hospital(hospital_id, db)
    today = utc_now().date()
    periods = await RecruitmentPeriodService(db).list_periods(hospital_id)
    return [period_response(period, today) for period in periods]


@router.post(
    "/hospitals/{hospital_id}/recruitment-periods",
    response_model=RecruitmentPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Recruitment Periods"],
    responses={400: {"model": ErrorResponse, "description": "Period rejected"}},
)
async def create_recruitment_period(
    hospital_id: str,
    data: RecruitmentPeriodCreate,
    locale: Locale = Depends(request_locale),
    db: AsyncSession = Depends(get_db),
) -> Any:
    await load_hospital(hospital_id, db)
    today = utc_now().date()
    period, result = await RecruitmentPeriodService(db).create_period(hospital_id, data, today, locale)
    if period is None:
        return validation_error(result)
    return period_response(period, today)


@router.put(
    "/hospitals/{hospital_id}/recruitment-periods",
    response_model=RecruitmentPeriodResponse,
    tags=["Recruitment Periods"],
    summary="Create or edit a recruitment period",
    responses={
        400: {"model": ErrorResponse, "description": "Period rejected"},
        404: {"model": ErrorResponse, "description": "Hospital or period not found"},
    },
)
async def upsert_recruitment_period(
    hospital_id: str,
    data: RecruitmentPeriodUpsert,
    locale: Locale = Depends(request_locale),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Validate and store a recruitment period.

    With ``periodId`` the existing period is moved to the new dates and keeps
    its number; without it a new period is created.

    Returns:
        The stored period, or 400 ``{"error": message}`` when rejected
    """
    await load_hospital(hospital_id, db)
    today = utc_now().date()
    try:
        period, result = await RecruitmentPeriodService(db).upsert_period(
            hospital_id, data, today, locale
        )
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    if period is None:
        return validation_error(result)
    return period_response(period, today)


@router.patch(
    "/recruitment-periods/{period_id}/status",
    response_model=RecruitmentPeriodResponse,
    tags=["Recruitment Periods"],
)
async def update_recruitment_period_status(
    period_id: str,
    data: PeriodStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> Any:
    service = RecruitmentPeriodService(db)
    period = await service.get_period(period_id)
    if period is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recruitment period {period_id} not found",
        )

    today = utc_now().date()
    try:
        period = await service.change_status(period, data.status, today)
    except ValueError as e:
        logger.warning(f"⚠️ {e}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    return period_response(period, today)


@router.delete(
    "/recruitment-periods/{period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Recruitment Periods"],
)
async def delete_recruitment_period(period_id: str, db: AsyncSession = Depends(get_db)) -> None:
    service = RecruitmentPeriodService(db)
    period = await service.get_period(period_id)
    if period is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recruitment period {period_id} not found",
        )
    if period_window(period, utc_now().date()).status == PeriodStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Completed recruitment periods cannot be deleted",
        )
    await service.delete_period(period)


# ════════════════════════════════════════════════════════════════════════════
# Coordinator Dashboard & Analytics Endpoints
# ════════════════════════════════════════════════════════════════════════════


@router.get(
    "/coordinator/stats",
    response_model=CoordinatorStatsResponse,
    tags=["Coordinator"],
)
async def get_coordinator_stats(
    hospital_id: str = Query(..., alias="hospitalId"),
    db: AsyncSession = Depends(get_db),
) -> CoordinatorStatsResponse:
    hospital = await load_hospital(hospital_id, db)
    return await HospitalService(db).get_coordinator_stats(hospital, utc_now())


@router.post(
    "/hospitals/{hospital_id}/case-metrics",
    status_code=status.HTTP_201_CREATED,
    response_model=CaseMetricsCreate,
    tags=["Analytics"],
)
async def record_case_metrics(
    hospital_id: str,
    data: CaseMetricsCreate,
    db: AsyncSession = Depends(get_db),
) -> CaseMetricsCreate:
    await load_hospital(hospital_id, db)
    metrics = await CaseMetricsService(db).record_metrics(hospital_id, data)
    return CaseMetricsCreate(
        recorded_date=metrics.recorded_date,
        cases_created=metrics.cases_created,
        cases_completed=metrics.cases_completed,
        completion_percentage=metrics.completion_percentage,
        last_case_date=metrics.last_case_date,
    )


@router.get(
    "/hospitals/{hospital_id}/trend",
    response_model=TrendSummary,
    tags=["Analytics"],
)
async def get_trend(hospital_id: str, db: AsyncSession = Depends(get_db)) -> TrendSummary:
    await load_hospital(hospital_id, db)
    return await CaseMetricsService(db).get_trend(hospital_id)


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    tags=["Analytics"],
    summary="Admin dashboard KPIs, distributions and upcoming recruitment",
)
async def get_dashboard(
    limit: int = Query(5, ge=1, le=50, description="Size of the recent alert and upcoming period lists"),
    db: AsyncSession = Depends(get_db),
) -> DashboardResponse:
    return await DashboardService(db).get_dashboard(utc_now(), limit)


# ════════════════════════════════════════════════════════════════════════════
# Alert Endpoints
# ════════════════════════════════════════════════════════════════════════════


@router.get(
    "/alert-configurations",
    response_model=List[AlertConfiguration],
    tags=["Alerts"],
)
async def list_alert_configurations(db: AsyncSession = Depends(get_db)) -> List[AlertConfiguration]:
    configurations = await AlertConfigurationService(db).get_all()
    return list(configurations.values())


@router.get(
    "/alert-configurations/{alert_type}",
    response_model=AlertConfiguration,
    tags=["Alerts"],
)
async def get_alert_configuration(
    alert_type: AlertType, db: AsyncSession = Depends(get_db)
) -> AlertConfiguration:
    return await AlertConfigurationService(db).get(alert_type)


@router.put(
    "/alert-configurations/{alert_type}",
    response_model=AlertConfiguration,
    tags=["Alerts"],
)
async def update_alert_configuration(
    alert_type: AlertType,
    data: AlertConfigurationUpdate,
    db: AsyncSession = Depends(get_db),
) -> AlertConfiguration:
    return await AlertConfigurationService(db).update(alert_type, data)


@router.get(
    "/alerts",
    tags=["Alerts"],
)
async def list_alerts(
    severity: Optional[AlertSeverity] = None,
    resolved: Optional[bool] = None,
    hospital_id: Optional[str] = Query(None, alias="hospitalId"),
    alert_type: Optional[AlertType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """List alerts, newest first, with optional filters and pagination."""
    alerts, total = await AlertService(db).list_alerts(
        severity=severity,
        resolved=resolved,
        hospital_id=hospital_id,
        alert_type=alert_type,
        page=page,
        limit=limit,
    )
    return {
        "alerts": [alert_response(alert).model_dump(mode="json", by_alias=True) for alert in alerts],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get(
    "/alerts/stats",
    response_model=AlertStats,
    tags=["Alerts"],
)
async def get_alert_stats(db: AsyncSession = Depends(get_db)) -> AlertStats:
    return await AlertService(db).get_stats()


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=AlertResponse,
    tags=["Alerts"],
)
async def resolve_alert(
    alert_id: str,
    data: AlertResolveRequest,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    service = AlertService(db)
    alert = await service.get_alert(alert_id)
    if alert is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Alert {alert_id} not found",
        )
    alert = await service.resolve_alert(alert, data.user_id, utc_now())
    return alert_response(alert)


@router.post(
    "/alerts/generate",
    response_model=AlertGenerationSummary,
    tags=["Alerts"],
    summary="Run every alert rule against every hospital",
)
async def generate_alerts(
    locale: Locale = Depends(request_locale),
    db: AsyncSession = Depends(get_db),
) -> AlertGenerationSummary:
    return await AlertService(db).run_all_alert_checks(utc_now(), locale)


@router.get(
    "/communications",
    response_model=List[CommunicationResponse],
    tags=["Alerts"],
)
async def list_communications(
    hospital_id: Optional[str] = Query(None, alias="hospitalId"),
    db: AsyncSession = Depends(get_db),
) -> List[CommunicationResponse]:
    communications = await AlertService(db).list_communications(hospital_id)
    return [communication_response(c) for c in communications]


# ════════════════════════════════════════════════════════════════════════════
# Health & Status Endpoints
# ════════════════════════════════════════════════════════════════════════════


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Health check endpoint."""
    db_connected = await check_db_connection(db)

    return HealthResponse(
        status="healthy" if db_connected else "degraded",
        service=settings.SERVICE_NAME,
        version=settings.VERSION,
        database_connected=db_connected,
        uptime_seconds=time.time() - start_time,
    )


@router.get(
    "/",
    tags=["Info"],
)
async def root() -> dict[str, Any]:
    """Root endpoint - service information."""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "status": "running",
        "default_locale": settings.DEFAULT_LOCALE,
        "docs": "/docs",
    }
