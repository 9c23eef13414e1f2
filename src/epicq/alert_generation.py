"""Alert persistence: configurations, the generation run, resolution and queued communications."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.epicq.alert_rules import ALERT_RULES, default_configuration, evaluate_rule
from src.epicq.epicq_database import (
    AlertConfigurationDB,
    AlertDB,
    CommunicationDB,
    HospitalDB,
    new_id,
)
from src.epicq.epicq_pydantic_models import (
    AlertConfiguration,
    AlertConfigurationUpdate,
    AlertDraft,
    AlertGenerationResult,
    AlertGenerationSummary,
    AlertResponse,
    AlertSeverity,
    AlertStats,
    AlertType,
    CommunicationResponse,
)
from src.epicq.epicq_services import HospitalService
from src.epicq.format_utils import DEFAULT_LOCALE, Locale

logger = logging.getLogger(__name__)

COMMUNICATION_CHANNELS = ["email", "in_app"]


def alert_response(alert: AlertDB) -> AlertResponse:
    return AlertResponse(
        id=alert.id,
        hospital_id=alert.hospital_id,
        project_id=alert.project_id,
        type=alert.type,
        severity=alert.severity,
        title=alert.title,
        message=alert.message,
        is_resolved=alert.is_resolved,
        auto_resolved=alert.auto_resolved,
        created_at=alert.created_at,
        resolved_at=alert.resolved_at,
        resolved_by=alert.resolved_by,
        metadata=alert.alert_metadata or {},
    )


def communication_response(communication: CommunicationDB) -> CommunicationResponse:
    return CommunicationResponse(
        id=communication.id,
        hospital_id=communication.hospital_id,
        project_id=communication.project_id,
        alert_id=communication.alert_id,
        type=communication.type,
        subject=communication.subject,
        body=communication.body,
        channels=communication.channels or [],
        recipients=communication.recipients or [],
        status=communication.status,
        created_at=communication.created_at,
    )


def _to_configuration(row: AlertConfigurationDB) -> AlertConfiguration:
    return AlertConfiguration(
        alert_type=AlertType(row.alert_type),
        enabled=row.enabled,
        notify_admin=row.notify_admin,
        notify_coordinator=row.notify_coordinator,
        auto_send_email=row.auto_send_email,
        threshold_value=row.threshold_value,
    )


class AlertConfigurationService:
    """Per-type alert settings; types never saved fall back to their defaults."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def seed_defaults(self) -> int:
        """Store the default configuration of every type that has none yet."""
        existing = await self._rows()
        created = 0
        for alert_type in AlertType:
            if alert_type.value in existing:
                continue
            config = default_configuration(alert_type)
            self.session.add(
                AlertConfigurationDB(
                    alert_type=alert_type.value,
                    **config.model_dump(exclude={"alert_type"}),
                )
            )
            created += 1
        if created:
            await self.session.commit()
        return created

    async def _rows(self) -> Dict[str, AlertConfigurationDB]:
        result = await self.session.execute(select(AlertConfigurationDB))
        return {row.alert_type: row for row in result.scalars().all()}

    async def get_all(self) -> Dict[AlertType, AlertConfiguration]:
        rows = await self._rows()
        return {
            alert_type: (
                _to_configuration(rows[alert_type.value])
                if alert_type.value in rows
                else default_configuration(alert_type)
            )
            for alert_type in AlertType
        }

    async def get(self, alert_type: AlertType) -> AlertConfiguration:
        row = await self.session.get(AlertConfigurationDB, alert_type.value)
        if row is None:
            return default_configuration(alert_type)
        return _to_configuration(row)

    async def update(
        self, alert_type: AlertType, data: AlertConfigurationUpdate
    ) -> AlertConfiguration:
        row = await self.session.get(AlertConfigurationDB, alert_type.value)
        if row is None:
            defaults = default_configuration(alert_type)
            row = AlertConfigurationDB(
                alert_type=alert_type.value,
                **defaults.model_dump(exclude={"alert_type"}),
            )
            self.session.add(row)

        for name, value in data.model_dump(exclude_unset=True).items():
            setattr(row, name, value)

        await self.session.commit()
        await self.session.refresh(row)
        logger.info(f"⚙️ Updated alert configuration {alert_type.value}")
        return _to_configuration(row)


class AlertService:
    """Alert listing, manual resolution and the periodic generation run."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_alert(self, alert_id: str) -> Optional[AlertDB]:
        return await self.session.get(AlertDB, alert_id)

    async def list_alerts(
        self,
        severity: Optional[AlertSeverity] = None,
        resolved: Optional[bool] = None,
        hospital_id: Optional[str] = None,
        alert_type: Optional[AlertType] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[AlertDB], int]:
        """Return one page of alerts, newest first, and the total matching count."""
        filters = []
        if severity is not None:
            filters.append(AlertDB.severity == severity.value)
        if resolved is not None:
            filters.append(AlertDB.is_resolved.is_(resolved))
        if hospital_id is not None:
            filters.append(AlertDB.hospital_id == hospital_id)
        if alert_type is not None:
            filters.append(AlertDB.type == alert_type.value)

        total = await self.session.scalar(
            select(func.count()).select_from(AlertDB).where(*filters)
        )
        result = await self.session.execute(
            select(AlertDB)
            .where(*filters)
            .order_by(AlertDB.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_stats(self) -> AlertStats:
        result = await self.session.execute(
            select(AlertDB.severity, AlertDB.is_resolved, func.count()).group_by(
                AlertDB.severity, AlertDB.is_resolved
            )
        )
        stats = AlertStats()
        for severity, is_resolved, count in result.all():
            stats.total += count
            if is_resolved:
                stats.resolved += count
                continue
            stats.active += count
            # Severity counters only cover open alerts
            if severity in AlertStats.model_fields:
                setattr(stats, severity, getattr(stats, severity) + count)
        return stats

    async def resolve_alert(self, alert: AlertDB, user_id: str, now: datetime) -> AlertDB:
        if not alert.is_resolved:
            self._mark_resolved(alert, now, resolved_by=user_id, auto=False)
            await self.session.commit()
            await self.session.refresh(alert)
            logger.info(f"✅ Alert {alert.id} resolved by {user_id}")
        return alert

    async def list_communications(self, hospital_id: Optional[str] = None) -> Sequence[CommunicationDB]:
        query = select(CommunicationDB).order_by(CommunicationDB.created_at.desc())
        if hospital_id is not None:
            query = query.where(CommunicationDB.hospital_id == hospital_id)
        result = await self.session.execute(query)
        return result.scalars().all()

    async def _open_alerts(self) -> Dict[Tuple[str, str], AlertDB]:
        result = await self.session.execute(
            select(AlertDB)
            .where(AlertDB.is_resolved.is_(False))
            .order_by(AlertDB.created_at)
        )
        return {(alert.hospital_id, alert.type): alert for alert in result.scalars().all()}

    @staticmethod
    def _mark_resolved(
        alert: AlertDB, now: datetime, resolved_by: Optional[str], auto: bool
    ) -> None:
        alert.is_resolved = True
        alert.auto_resolved = auto
        alert.resolved_at = now
        alert.resolved_by = resolved_by

    def _create_alert(self, draft: AlertDraft, now: datetime) -> AlertDB:
        alert = AlertDB(
            id=new_id(),
            hospital_id=draft.hospital_id,
            project_id=draft.project_id,
            type=draft.type.value,
            severity=draft.severity.value,
            title=draft.title,
            message=draft.message,
            is_resolved=False,
            auto_resolved=False,
            created_at=now,
            alert_metadata=draft.metadata,
        )
        self.session.add(alert)
        return alert

    def _queue_communication(
        self, alert: AlertDB, config: AlertConfiguration, now: datetime
    ) -> Optional[CommunicationDB]:
        recipients = []
        if config.notify_admin:
            recipients.append("admin")
        if config.notify_coordinator:
            recipients.append("coordinator")
        if not recipients:
            logger.warning(f"⚠️ Alert {alert.id} has no recipients configured, no communication queued")
            return None

        communication = CommunicationDB(
            id=new_id(),
            hospital_id=alert.hospital_id,
            project_id=alert.project_id,
            alert_id=alert.id,
            type="auto_alert",
            subject=alert.title,
            body=alert.message,
            channels=list(COMMUNICATION_CHANNELS),
            recipients=recipients,
            status="pending",
            created_at=now,
        )
        self.session.add(communication)
        return communication

    async def run_all_alert_checks(
        self, now: datetime, locale: Locale = DEFAULT_LOCALE
    ) -> AlertGenerationSummary:
        """
        Evaluate every enabled rule against every hospital.

        A hospital keeps at most one open alert per type: a firing rule with
        an open alert is skipped, and an open alert whose rule no longer fires
        is resolved automatically. Failures are recorded per type and do not
        stop the run.

        Args:
            now: Evaluation time
            locale: Language of the generated titles and messages

        Returns:
            AlertGenerationSummary with per-type counts and errors
        """
        configurations = await AlertConfigurationService(self.session).get_all()
        hospital_service = HospitalService(self.session)
        hospital_ids = [hospital.id for hospital in await hospital_service.list_hospitals()]
        open_alerts = await self._open_alerts()

        results = {alert_type: AlertGenerationResult(alert_type=alert_type) for alert_type in ALERT_RULES}
        logger.info(f"🔔 Running alert checks for {len(hospital_ids)} hospital(s)")

        # Committed per hospital; a failed hospital is rolled back alone
        for hospital_id in hospital_ids:
            try:
                hospital = await self.session.get(HospitalDB, hospital_id)
                state = await hospital_service.build_alert_state(hospital, now)
            except Exception as e:
                logger.error(f"❌ Failed to load state for hospital {hospital_id}: {e}", exc_info=True)
                for result in results.values():
                    result.errors.append(f"Hospital {hospital_id}: {e}")
                await self.session.rollback()
                open_alerts = await self._open_alerts()
                continue

            for alert_type, result in results.items():
                config = configurations[alert_type]
                if not config.enabled:
                    continue

                key = (hospital_id, alert_type.value)
                try:
                    draft = evaluate_rule(state, config, now, locale)
                    existing = open_alerts.get(key)

                    if draft is None:
                        if existing is not None:
                            self._mark_resolved(existing, now, resolved_by=None, auto=True)
                            del open_alerts[key]
                            result.resolved += 1
                        continue

                    if existing is not None:
                        result.skipped += 1
                        continue

                    alert = self._create_alert(draft, now)
                    open_alerts[key] = alert
                    result.generated += 1
                    if config.auto_send_email:
                        self._queue_communication(alert, config, now)
                except Exception as e:
                    logger.error(
                        f"❌ Rule {alert_type.value} failed for hospital {hospital_id}: {e}",
                        exc_info=True,
                    )
                    result.errors.append(f"Hospital {hospital_id}: {e}")

            await self.session.commit()

        summary = AlertGenerationSummary(
            total_generated=sum(r.generated for r in results.values()),
            total_skipped=sum(r.skipped for r in results.values()),
            total_resolved=sum(r.resolved for r in results.values()),
            total_errors=sum(len(r.errors) for r in results.values()),
            results=list(results.values()),
        )
        logger.info(
            f"📊 Alert checks complete: {summary.total_generated} generated, "
            f"{summary.total_skipped} skipped, {summary.total_resolved} resolved, "
            f"{summary.total_errors} errors"
        )
        return summary
