"""Alert rules: pure predicates over a hospital's state.

Each rule receives the hospital state, its alert configuration and the
evaluation time, and returns an ``AlertDraft`` when the alert should fire.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional

from src.epicq.epicq_pydantic_models import (
    AlertConfiguration,
    AlertDraft,
    AlertSeverity,
    AlertType,
    HospitalAlertState,
    PeriodStatus,
)
from src.epicq.format_utils import (
    DEFAULT_LOCALE,
    Locale,
    format_date_long,
    format_day_name,
    format_percentage,
    translate,
)

AlertRule = Callable[[HospitalAlertState, AlertConfiguration, datetime, Locale], Optional[AlertDraft]]

DEFAULT_THRESHOLDS: Dict[AlertType, int] = {
    AlertType.NO_ACTIVITY: 30,  # days without a new case
    AlertType.LOW_COMPLETION_RATE: 70,  # percent
    AlertType.UPCOMING_RECRUITMENT_PERIOD: 14,  # days before start
    AlertType.ETHICS_APPROVAL_PENDING: 60,  # days since submission
    AlertType.MISSING_DOCUMENTATION: 7,  # grace days after the hospital joined
}


def default_configuration(alert_type: AlertType) -> AlertConfiguration:
    return AlertConfiguration(
        alert_type=alert_type,
        enabled=True,
        notify_admin=True,
        # Inactivity goes to admins only
        notify_coordinator=alert_type != AlertType.NO_ACTIVITY,
        auto_send_email=alert_type == AlertType.UPCOMING_RECRUITMENT_PERIOD,
        threshold_value=DEFAULT_THRESHOLDS[alert_type],
    )


def threshold_for(config: AlertConfiguration) -> int:
    if config.threshold_value is not None:
        return config.threshold_value
    return DEFAULT_THRESHOLDS[config.alert_type]


def _days_between(earlier: date, later: date) -> int:
    return (later - earlier).days


def check_no_activity(
    state: HospitalAlertState,
    config: AlertConfiguration,
    now: datetime,
    locale: Locale = DEFAULT_LOCALE,
) -> Optional[AlertDraft]:
    threshold = threshold_for(config)
    # A hospital without any case is measured from the day it joined
    last_activity = state.last_case_date or state.created_at.date()
    days = _days_between(last_activity, now.date())
    if days <= threshold:
        return None

    return AlertDraft(
        hospital_id=state.hospital_id,
        project_id=state.project_id,
        type=AlertType.NO_ACTIVITY,
        severity=AlertSeverity.HIGH,
        title=translate("alert.no_activity.title", locale),
        message=translate("alert.no_activity.message", locale, hospital=state.hospital_name, days=days),
        metadata={
            "hospital_name": state.hospital_name,
            "last_activity": last_activity.isoformat(),
            "days_since_activity": days,
            "threshold_days": threshold,
        },
    )


def check_low_completion_rate(
    state: HospitalAlertState,
    config: AlertConfiguration,
    now: datetime,
    locale: Locale = DEFAULT_LOCALE,
) -> Optional[AlertDraft]:
    threshold = threshold_for(config)
    if state.average_completion is None or state.average_completion >= threshold:
        return None

    return AlertDraft(
        hospital_id=state.hospital_id,
        project_id=state.project_id,
        type=AlertType.LOW_COMPLETION_RATE,
        severity=AlertSeverity.MEDIUM,
        title=translate("alert.low_completion.title", locale),
        message=translate(
            "alert.low_completion.message",
            locale,
            hospital=state.hospital_name,
            rate=format_percentage(state.average_completion, locale, decimals=1),
            threshold=format_percentage(threshold, locale),
        ),
        metadata={
            "hospital_name": state.hospital_name,
            "completion_rate": round(state.average_completion, 2),
            "threshold_percentage": threshold,
        },
    )


def check_upcoming_recruitment_period(
    state: HospitalAlertState,
    config: AlertConfiguration,
    now: datetime,
    locale: Locale = DEFAULT_LOCALE,
) -> Optional[AlertDraft]:
    threshold = threshold_for(config)
    today = now.date()
    upcoming = [
        period
        for period in state.periods
        if period.status == PeriodStatus.PLANNED
        and 0 <= _days_between(today, period.start) <= threshold
    ]
    if not upcoming:
        return None

    period = min(upcoming, key=lambda p: p.start)
    days_until_start = _days_between(today, period.start)

    return AlertDraft(
        hospital_id=state.hospital_id,
        project_id=state.project_id,
        type=AlertType.UPCOMING_RECRUITMENT_PERIOD,
        severity=AlertSeverity.MEDIUM,
        title=translate("alert.upcoming_period.title", locale),
        message=translate(
            "alert.upcoming_period.message",
            locale,
            number=period.period_number,
            hospital=state.hospital_name,
            days=days_until_start,
            day=format_day_name(period.start, locale),
            start=format_date_long(period.start, locale),
        ),
        metadata={
            "hospital_name": state.hospital_name,
            "period_id": period.id,
            "period_number": period.period_number,
            "start_date": period.start.isoformat(),
            "days_until_start": days_until_start,
            "threshold_days": threshold,
        },
    )


def ethics_severity(days_pending: int, threshold: int) -> AlertSeverity:
    if days_pending >= 2 * threshold:
        return AlertSeverity.CRITICAL
    if days_pending >= 1.5 * threshold:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def check_ethics_approval_pending(
    state: HospitalAlertState,
    config: AlertConfiguration,
    now: datetime,
    locale: Locale = DEFAULT_LOCALE,
) -> Optional[AlertDraft]:
    if not state.ethics_submitted or state.ethics_approved or state.ethics_submitted_date is None:
        return None

    threshold = threshold_for(config)
    days_pending = _days_between(state.ethics_submitted_date, now.date())
    if days_pending <= threshold:
        return None

    return AlertDraft(
        hospital_id=state.hospital_id,
        project_id=state.project_id,
        type=AlertType.ETHICS_APPROVAL_PENDING,
        severity=ethics_severity(days_pending, threshold),
        title=translate("alert.ethics_pending.title", locale),
        message=translate(
            "alert.ethics_pending.message", locale, hospital=state.hospital_name, days=days_pending
        ),
        metadata={
            "hospital_name": state.hospital_name,
            "ethics_submission_date": state.ethics_submitted_date.isoformat(),
            "days_pending": days_pending,
            "threshold_days": threshold,
        },
    )


def check_missing_documentation(
    state: HospitalAlertState,
    config: AlertConfiguration,
    now: datetime,
    locale: Locale = DEFAULT_LOCALE,
) -> Optional[AlertDraft]:
    if state.completion is None or not state.completion.missing_fields:
        return None

    grace_days = threshold_for(config)
    if now - state.created_at <= timedelta(days=grace_days):
        return None

    missing = state.completion.missing_fields
    return AlertDraft(
        hospital_id=state.hospital_id,
        project_id=state.project_id,
        type=AlertType.MISSING_DOCUMENTATION,
        severity=AlertSeverity.MEDIUM,
        title=translate("alert.missing_docs.title", locale),
        message=translate(
            "alert.missing_docs.message", locale, hospital=state.hospital_name, fields=", ".join(missing)
        ),
        metadata={
            "hospital_name": state.hospital_name,
            "missing_fields": missing,
            "completion_percentage": state.completion.percentage,
            "grace_days": grace_days,
        },
    )


ALERT_RULES: Dict[AlertType, AlertRule] = {
    AlertType.ETHICS_APPROVAL_PENDING: check_ethics_approval_pending,
    AlertType.MISSING_DOCUMENTATION: check_missing_documentation,
    AlertType.UPCOMING_RECRUITMENT_PERIOD: check_upcoming_recruitment_period,
    AlertType.NO_ACTIVITY: check_no_activity,
    AlertType.LOW_COMPLETION_RATE: check_low_completion_rate,
}


def evaluate_rule(
    state: HospitalAlertState,
    config: AlertConfiguration,
    now: datetime,
    locale: Locale = DEFAULT_LOCALE,
) -> Optional[AlertDraft]:
    """Run one rule; a disabled configuration never fires."""
    if not config.enabled:
        return None
    return ALERT_RULES[config.alert_type](state, config, now, locale)
