from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exchanged with the web client as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PeriodStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AlertType(str, Enum):
    NO_ACTIVITY = "no_activity_30_days"
    LOW_COMPLETION_RATE = "low_completion_rate"
    UPCOMING_RECRUITMENT_PERIOD = "upcoming_recruitment_period"
    ETHICS_APPROVAL_PENDING = "ethics_approval_pending"
    MISSING_DOCUMENTATION = "missing_documentation"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ════════════════════════════════════════════════════════════════════════════
# Hospital form records
# ════════════════════════════════════════════════════════════════════════════


class HospitalBasic(CamelModel):
    name: Optional[str] = Field(None, description="Hospital name")
    province: Optional[str] = None
    city: Optional[str] = None
    participated_lasos: Optional[bool] = Field(None, description="Took part in LASOS")
    created_at: Optional[datetime] = None


class HospitalDetails(CamelModel):
    num_beds: Optional[int] = Field(None, ge=0)
    num_operating_rooms: Optional[int] = Field(None, ge=0)
    num_icu_beds: Optional[int] = Field(None, ge=0)
    avg_weekly_surgeries: Optional[int] = Field(None, ge=0)
    financing_type: Optional[str] = Field(None, examples=["public"])
    has_preop_clinic: Optional[str] = Field(None, examples=["always"])
    has_residency_program: Optional[bool] = None
    has_rapid_response_team: Optional[bool] = None
    has_ethics_committee: Optional[bool] = None
    university_affiliated: Optional[bool] = None
    notes: Optional[str] = None


class PrimaryContact(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    specialty: Optional[str] = Field(None, description="Role or specialty of the coordinator")


class HospitalFormField(CamelModel):
    key: str
    label: str
    value: Any = None
    required: bool = True


class CompletionResult(CamelModel):
    percentage: int = Field(..., ge=0, le=100)
    is_complete: bool
    missing_fields: List[str] = Field(default_factory=list)
    completed_count: int = Field(..., ge=0)
    total_required: int = Field(..., ge=0)


# ════════════════════════════════════════════════════════════════════════════
# Recruitment periods
# ════════════════════════════════════════════════════════════════════════════


class PeriodWindow(CamelModel):
    """An existing recruitment interval as seen by the validator."""

    start: date
    end: date
    id: Optional[str] = None
    period_number: Optional[int] = None
    status: PeriodStatus = PeriodStatus.PLANNED


class PeriodValidationResult(CamelModel):
    is_valid: bool
    message: Optional[str] = None
    conflicting_period_id: Optional[str] = None


class RecruitmentPeriodCreate(CamelModel):
    start_date: date
    end_date: date
    target_cases: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class RecruitmentPeriodUpsert(RecruitmentPeriodCreate):
    period_id: Optional[str] = Field(None, description="Existing period to edit")


class PeriodStatusUpdate(CamelModel):
    status: PeriodStatus


class RecruitmentPeriodResponse(CamelModel):
    id: str
    hospital_id: str
    period_number: int
    start_date: date
    end_date: date
    status: PeriodStatus
    target_cases: Optional[int] = None
    notes: Optional[str] = None


# ════════════════════════════════════════════════════════════════════════════
# Hospitals
# ════════════════════════════════════════════════════════════════════════════


class HospitalCreate(CamelModel):
    name: str = Field(..., min_length=1)
    province: Optional[str] = None
    city: Optional[str] = None
    participated_lasos: Optional[bool] = None
    project_id: Optional[str] = None


class HospitalResponse(CamelModel):
    id: str
    project_id: Optional[str] = None
    name: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    participated_lasos: Optional[bool] = None
    status: str
    created_at: datetime
    updated_at: datetime


class HospitalFormUpdate(CamelModel):
    """Full hospital form as submitted by the coordinator."""

    basic: HospitalBasic = Field(default_factory=HospitalBasic)
    details: HospitalDetails = Field(default_factory=HospitalDetails)
    contact: PrimaryContact = Field(default_factory=PrimaryContact)


class EthicsUpdate(CamelModel):
    ethics_submitted: bool = False
    ethics_approved: bool = False
    ethics_submitted_date: Optional[date] = None
    ethics_approved_date: Optional[date] = None


class FormStatusResponse(CamelModel):
    hospital_id: str
    completion: CompletionResult
    is_urgent: bool
    fields: List[HospitalFormField] = Field(default_factory=list)


class HospitalFormStatus(CamelModel):
    is_complete: bool
    is_urgent: bool
    missing_fields: List[str] = Field(default_factory=list)
    completed_steps: int
    total_steps: int
    last_updated: Optional[datetime] = None


class CoordinatorStatsResponse(CamelModel):
    form_completion: int
    upcoming_periods: int
    hospital_form_status: HospitalFormStatus


# ════════════════════════════════════════════════════════════════════════════
# Case metrics & analytics
# ════════════════════════════════════════════════════════════════════════════


class CaseMetricsCreate(CamelModel):
    recorded_date: date
    cases_created: int = Field(0, ge=0)
    cases_completed: int = Field(0, ge=0)
    completion_percentage: float = Field(0.0, ge=0.0, le=100.0)
    last_case_date: Optional[date] = None


class MetricSnapshot(CamelModel):
    recorded_date: date
    completion_percentage: Optional[float] = None


class TrendSummary(CamelModel):
    avg_velocity: float
    trend: str = Field(..., examples=["improving", "stable", "declining"])
    confidence: str = Field(..., examples=["high", "medium", "low"])
    data_points: int = 0


# ════════════════════════════════════════════════════════════════════════════
# Admin dashboard
# ════════════════════════════════════════════════════════════════════════════


class KPITrends(CamelModel):
    """Month-over-month change of each KPI, in percent."""

    total_hospitals: int = 0
    active_hospitals: int = 0
    total_cases: int = 0
    average_completion: int = 0
    active_alerts: int = 0


class DashboardKPIs(CamelModel):
    total_hospitals: int = 0
    active_hospitals: int = 0
    total_cases: int = 0
    average_completion: int = 0
    active_alerts: int = 0
    trends: KPITrends = Field(default_factory=KPITrends)


class StatusCount(CamelModel):
    status: str
    count: int


class AlertTypeCount(CamelModel):
    type: str
    count: int


class RecentAlert(CamelModel):
    id: str
    title: str
    message: str
    severity: str
    hospital_name: str
    created_at: datetime


class UpcomingRecruitment(CamelModel):
    id: str
    hospital_id: str
    hospital_name: str
    period_number: Optional[int] = None
    start_date: date
    end_date: date
    status: PeriodStatus


class DashboardResponse(CamelModel):
    kpis: DashboardKPIs
    hospitals_by_status: List[StatusCount] = Field(default_factory=list)
    alerts_by_type: List[AlertTypeCount] = Field(default_factory=list)
    recent_alerts: List[RecentAlert] = Field(default_factory=list)
    upcoming_recruitment: List[UpcomingRecruitment] = Field(default_factory=list)


# ════════════════════════════════════════════════════════════════════════════
# Alerts
# ════════════════════════════════════════════════════════════════════════════


class AlertConfiguration(CamelModel):
    alert_type: AlertType
    enabled: bool = True
    notify_admin: bool = True
    notify_coordinator: bool = True
    auto_send_email: bool = False
    threshold_value: Optional[int] = Field(None, ge=0)


class AlertConfigurationUpdate(CamelModel):
    enabled: Optional[bool] = None
    notify_admin: Optional[bool] = None
    notify_coordinator: Optional[bool] = None
    auto_send_email: Optional[bool] = None
    threshold_value: Optional[int] = Field(None, ge=0)


class HospitalAlertState(CamelModel):
    """Everything the alert rules look at for one hospital."""

    hospital_id: str
    hospital_name: str
    project_id: Optional[str] = None
    created_at: datetime
    last_case_date: Optional[date] = None
    average_completion: Optional[float] = None
    ethics_submitted: bool = False
    ethics_approved: bool = False
    ethics_submitted_date: Optional[date] = None
    periods: List[PeriodWindow] = Field(default_factory=list)
    completion: Optional[CompletionResult] = None


class AlertDraft(CamelModel):
    hospital_id: str
    project_id: Optional[str] = None
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AlertResponse(CamelModel):
    id: str
    hospital_id: str
    project_id: Optional[str] = None
    type: str
    severity: str
    title: str
    message: str
    is_resolved: bool
    auto_resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AlertResolveRequest(CamelModel):
    user_id: str = Field(..., min_length=1)


class AlertStats(CamelModel):
    total: int = 0
    active: int = 0
    resolved: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class AlertGenerationResult(CamelModel):
    alert_type: AlertType
    generated: int = 0
    skipped: int = 0
    resolved: int = 0
    errors: List[str] = Field(default_factory=list)


class AlertGenerationSummary(CamelModel):
    total_generated: int = 0
    total_skipped: int = 0
    total_resolved: int = 0
    total_errors: int = 0
    results: List[AlertGenerationResult] = Field(default_factory=list)


class CommunicationResponse(CamelModel):
    id: str
    hospital_id: str
    project_id: Optional[str] = None
    alert_id: Optional[str] = None
    type: str
    subject: str
    body: str
    channels: List[str] = Field(default_factory=list)
    recipients: List[str] = Field(default_factory=list)
    status: str
    created_at: datetime


# ════════════════════════════════════════════════════════════════════════════
# Service
# ════════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(CamelModel):
    status: str
    service: str
    version: str
    database_connected: bool
    uptime_seconds: float
