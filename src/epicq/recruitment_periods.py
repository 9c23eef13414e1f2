"""Recruitment period rules: ordering, overlap, weekly window and spacing.

A hospital recruits in short weekly windows. Each window must start on a
Monday and last exactly seven days, may not overlap another window of the
same hospital, and consecutive windows (by period number) must be at least
``min_gap_months`` apart. Months are counted as 30 days.
"""

from datetime import date
from typing import Iterable, List, Optional, Tuple

from src.epicq.epicq_pydantic_models import (
    PeriodStatus,
    PeriodValidationResult,
    PeriodWindow,
)
from src.epicq.format_utils import DEFAULT_LOCALE, Locale, format_date_short, translate

PERIOD_LENGTH_DAYS = 7
DAYS_PER_MONTH = 30
MONDAY = 0

LIFECYCLE_ORDER = [PeriodStatus.PLANNED, PeriodStatus.ACTIVE, PeriodStatus.COMPLETED]

ALLOWED_TRANSITIONS: dict[PeriodStatus, set[PeriodStatus]] = {
    PeriodStatus.PLANNED: {PeriodStatus.ACTIVE, PeriodStatus.CANCELLED},
    PeriodStatus.ACTIVE: {PeriodStatus.COMPLETED, PeriodStatus.CANCELLED},
    PeriodStatus.COMPLETED: set(),
    PeriodStatus.CANCELLED: set(),
}


def periods_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Inclusive overlap: sharing a single day counts."""
    return start_a <= end_b and end_a >= start_b


def months_between(earlier_end: date, later_start: date) -> int:
    return (later_start - earlier_end).days // DAYS_PER_MONTH


def derive_period_status(
    start: date,
    end: date,
    today: date,
    stored: PeriodStatus = PeriodStatus.PLANNED,
) -> PeriodStatus:
    """Status as seen on ``today``.

    The calendar can only move a period forward from its stored status, so a
    period started or closed by hand keeps that status. Cancelled is final.
    """
    if stored == PeriodStatus.CANCELLED:
        return PeriodStatus.CANCELLED
    if today < start:
        by_calendar = PeriodStatus.PLANNED
    elif today <= end:
        by_calendar = PeriodStatus.ACTIVE
    else:
        by_calendar = PeriodStatus.COMPLETED
    return max(stored, by_calendar, key=LIFECYCLE_ORDER.index)


def transition_status(current: PeriodStatus, target: PeriodStatus) -> PeriodStatus:
    if target == current:
        return current
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValueError(
            f"Cannot move recruitment period from '{current.value}' to '{target.value}'"
        )
    return target


class PeriodOverlapValidator:
    """Accepts or rejects a proposed recruitment interval for one hospital."""

    def __init__(
        self,
        require_weekly_window: bool = True,
        min_gap_months: int = 4,
        locale: Locale = DEFAULT_LOCALE,
    ) -> None:
        self.require_weekly_window = require_weekly_window
        self.min_gap_months = min_gap_months
        self.locale = locale

    def validate(
        self,
        new_start: date,
        new_end: date,
        existing: Iterable[PeriodWindow],
        exclude_id: Optional[str] = None,
        period_number: Optional[int] = None,
    ) -> PeriodValidationResult:
        """
        Validate ``[new_start, new_end]`` against the hospital's other periods.

        Rules run in order and the first failure is returned:
        start before end, no overlap, weekly window, order by number, spacing.

        Args:
            new_start: First day of the proposed period
            new_end: Last day of the proposed period (inclusive)
            existing: The hospital's current periods
            exclude_id: Id of the period being edited, ignored for comparisons
            period_number: Number of the proposed period; defaults to the
                edited period's own number, or to the next free number

        Returns:
            PeriodValidationResult with ``is_valid`` and a display message
        """
        existing = list(existing)
        if period_number is None and exclude_id is not None:
            period_number = next(
                (p.period_number for p in existing if p.id == exclude_id), None
            )

        others = self._numbered(
            p
            for p in existing
            if (exclude_id is None or p.id != exclude_id)
            and p.status != PeriodStatus.CANCELLED
        )

        if new_start >= new_end:
            return self._fail("period.start_after_end")

        for number, period in others:
            if periods_overlap(new_start, new_end, period.start, period.end):
                return self._fail(
                    "period.overlap",
                    conflicting_period_id=period.id,
                    number=number,
                    start=format_date_short(period.start, self.locale),
                    end=format_date_short(period.end, self.locale),
                )

        if self.require_weekly_window:
            if new_start.weekday() != MONDAY:
                return self._fail("period.not_monday")
            if (new_end - new_start).days != PERIOD_LENGTH_DAYS - 1:
                return self._fail("period.not_seven_days")

        if others:
            if period_number is None:
                period_number = max(number for number, _ in others) + 1
            return self._check_sequence(new_start, new_end, period_number, others)

        return PeriodValidationResult(is_valid=True)

    def _check_sequence(
        self,
        new_start: date,
        new_end: date,
        period_number: int,
        others: List[Tuple[int, PeriodWindow]],
    ) -> PeriodValidationResult:
        # Periods are ordered by number: each one starts after the previous one ends
        before = [(n, p) for n, p in others if n < period_number]
        after = [(n, p) for n, p in others if n > period_number]

        if before:
            previous_number, previous = max(before, key=lambda item: item[0])
            if new_start <= previous.end:
                return self._fail(
                    "period.out_of_order",
                    conflicting_period_id=previous.id,
                    previous=previous_number,
                    current=period_number,
                )
            months = months_between(previous.end, new_start)
            if months < self.min_gap_months:
                return self._fail(
                    "period.min_gap",
                    conflicting_period_id=previous.id,
                    previous=previous_number,
                    current=period_number,
                    months=months,
                    minimum=self.min_gap_months,
                )

        if after:
            next_number, following = min(after, key=lambda item: item[0])
            if following.start <= new_end:
                return self._fail(
                    "period.out_of_order",
                    conflicting_period_id=following.id,
                    previous=period_number,
                    current=next_number,
                )
            months = months_between(new_end, following.start)
            if months < self.min_gap_months:
                return self._fail(
                    "period.min_gap",
                    conflicting_period_id=following.id,
                    previous=period_number,
                    current=next_number,
                    months=months,
                    minimum=self.min_gap_months,
                )

        return PeriodValidationResult(is_valid=True)

    @staticmethod
    def _numbered(periods: Iterable[PeriodWindow]) -> List[Tuple[int, PeriodWindow]]:
        # Periods without a stored number are numbered by their position in time
        ordered = sorted(periods, key=lambda p: (p.start, p.end))
        return [
            (p.period_number if p.period_number is not None else index, p)
            for index, p in enumerate(ordered, start=1)
        ]

    def _fail(
        self,
        key: str,
        conflicting_period_id: Optional[str] = None,
        **params: object,
    ) -> PeriodValidationResult:
        return PeriodValidationResult(
            is_valid=False,
            message=translate(key, self.locale, **params),
            conflicting_period_id=conflicting_period_id,
        )
