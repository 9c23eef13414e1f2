"""Database models and session management for the EPIC-Q management service."""

import uuid
from datetime import date, datetime
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.epicq.epicq_config import settings


def new_id() -> str:
    return str(uuid.uuid4())


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""

    pass


class HospitalDB(Base):
    """Basic hospital information."""

    __tablename__ = "hospitals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    project_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    participated_lasos: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class HospitalDetailsDB(Base):
    """Structural data of a hospital (one row per hospital)."""

    __tablename__ = "hospital_details"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    hospital_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("hospitals.id", ondelete="CASCADE"), unique=True
    )
    num_beds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    num_operating_rooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    num_icu_beds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    avg_weekly_surgeries: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    financing_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    has_preop_clinic: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    has_residency_program: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    has_rapid_response_team: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    has_ethics_committee: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    university_affiliated: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class HospitalContactDB(Base):
    """Hospital contact; the form reads the primary coordinator."""

    __tablename__ = "hospital_contacts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    hospital_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("hospitals.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String(50), default="coordinator")
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specialty: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)


class HospitalProgressDB(Base):
    """Ethics committee progress of a hospital."""

    __tablename__ = "hospital_progress"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    hospital_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("hospitals.id", ondelete="CASCADE"), unique=True
    )
    ethics_submitted: Mapped[bool] = mapped_column(Boolean, default=False)
    ethics_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    ethics_submitted_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    ethics_approved_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class RecruitmentPeriodDB(Base):
    """Recruitment window of a hospital."""

    __tablename__ = "recruitment_periods"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    hospital_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("hospitals.id", ondelete="CASCADE"), index=True
    )
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="planned")
    target_cases: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_period_hospital_number", "hospital_id", "period_number"),
    )


class CaseMetricsDB(Base):
    """Snapshot of case recruitment metrics for a hospital."""

    __tablename__ = "case_metrics"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    hospital_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("hospitals.id", ondelete="CASCADE"), index=True
    )
    recorded_date: Mapped[date] = mapped_column(Date, nullable=False)
    cases_created: Mapped[int] = mapped_column(Integer, default=0)
    cases_completed: Mapped[int] = mapped_column(Integer, default=0)
    completion_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    last_case_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class AlertDB(Base):
    """Alert raised by rule evaluation."""

    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    hospital_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    project_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    auto_resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes
    alert_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    __table_args__ = (
        Index("idx_alert_hospital_type_resolved", "hospital_id", "type", "is_resolved"),
    )


class AlertConfigurationDB(Base):
    """Per-type alert configuration."""

    __tablename__ = "alert_configurations"

    alert_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_admin: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_coordinator: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_send_email: Mapped[bool] = mapped_column(Boolean, default=False)
    threshold_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class CommunicationDB(Base):
    """Communication queued for one or more channels."""

    __tablename__ = "communications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    hospital_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    project_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    alert_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(50), default="auto_alert")
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    channels: Mapped[list[str]] = mapped_column(JSON, default=list)
    recipients: Mapped[list[str]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# Database engine and session
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,  # Test connections before using
)

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


async def check_db_connection(session: Optional[AsyncSession] = None) -> bool:
    """Check if database is connected, on the given session or a fresh one."""
    try:
        if session is not None:
            await session.execute(text("SELECT 1"))
            return True
        async with async_session_maker() as new_session:
            await new_session.execute(text("SELECT 1"))
            return True
    except Exception:
        return False
