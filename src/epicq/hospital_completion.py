"""Completion scoring of the hospital form filled in by coordinators."""

import math
from datetime import datetime, timedelta
from typing import Any, List, NamedTuple, Optional, Sequence

from src.epicq.epicq_pydantic_models import (
    CompletionResult,
    HospitalBasic,
    HospitalDetails,
    HospitalFormField,
    PrimaryContact,
)

URGENCY_GRACE_DAYS = 7


class FormFieldDef(NamedTuple):
    key: str
    label: str
    source: str  # "basic", "details" or "contact"
    attribute: str
    boolean: bool = False
    required: bool = True


BASIC_FIELDS: List[FormFieldDef] = [
    FormFieldDef("name", "Nombre del Hospital", "basic", "name"),
    FormFieldDef("province", "Provincia", "basic", "province"),
    FormFieldDef("city", "Ciudad", "basic", "city"),
    FormFieldDef("participated_lasos", "Participación en LASOS", "basic", "participated_lasos", boolean=True),
]

STRUCTURAL_FIELDS: List[FormFieldDef] = [
    FormFieldDef("num_beds", "Número de Camas", "details", "num_beds"),
    FormFieldDef("num_operating_rooms", "Quirófanos", "details", "num_operating_rooms"),
    FormFieldDef("num_icu_beds", "Camas UCI", "details", "num_icu_beds"),
    FormFieldDef("avg_weekly_surgeries", "Cirugías Semanales Promedio", "details", "avg_weekly_surgeries"),
    FormFieldDef("financing_type", "Tipo de Financiamiento", "details", "financing_type"),
    FormFieldDef("has_preop_clinic", "Clínica Preoperatoria", "details", "has_preop_clinic"),
]

STRUCTURAL_FLAG_FIELDS: List[FormFieldDef] = [
    FormFieldDef("has_residency_program", "Programa de Residencia", "details", "has_residency_program", boolean=True),
    FormFieldDef("has_rapid_response_team", "Equipo de Respuesta Rápida", "details", "has_rapid_response_team", boolean=True),
    FormFieldDef("has_ethics_committee", "Tiene Comité de Ética", "details", "has_ethics_committee", boolean=True),
    FormFieldDef("university_affiliated", "Afiliado a Universidad", "details", "university_affiliated", boolean=True),
]

COORDINATOR_FIELDS: List[FormFieldDef] = [
    FormFieldDef("coordinator_name", "Nombre del Coordinador", "contact", "name"),
    FormFieldDef("coordinator_email", "Email del Coordinador", "contact", "email"),
    FormFieldDef("coordinator_phone", "Teléfono del Coordinador", "contact", "phone"),
    FormFieldDef("coordinator_role", "Cargo del Coordinador", "contact", "specialty"),
]

# Checklist behind the coordinator dashboard
CORE_FORM_FIELDS: List[FormFieldDef] = BASIC_FIELDS + STRUCTURAL_FIELDS + COORDINATOR_FIELDS

# Full hospital form, including the structural yes/no questions
EXTENDED_FORM_FIELDS: List[FormFieldDef] = (
    BASIC_FIELDS + STRUCTURAL_FIELDS + STRUCTURAL_FLAG_FIELDS + COORDINATOR_FIELDS
)


def is_field_complete(value: Any, boolean: bool = False) -> bool:
    """A yes/no answer counts only when explicitly given; None is not "no"."""
    if boolean:
        return value is True or value is False
    return value is not None and value != ""


def build_checklist(
    basic: Optional[HospitalBasic],
    details: Optional[HospitalDetails],
    contact: Optional[PrimaryContact],
    fields: Sequence[FormFieldDef] = CORE_FORM_FIELDS,
) -> List[HospitalFormField]:
    sources = {"basic": basic, "details": details, "contact": contact}
    checklist = []
    for field in fields:
        record = sources[field.source]
        value = getattr(record, field.attribute, None) if record is not None else None
        checklist.append(
            HospitalFormField(key=field.key, label=field.label, value=value, required=field.required)
        )
    return checklist


def score_checklist(
    checklist: Sequence[HospitalFormField],
    fields: Sequence[FormFieldDef] = CORE_FORM_FIELDS,
) -> CompletionResult:
    boolean_keys = {field.key for field in fields if field.boolean}
    required = [field for field in checklist if field.required]

    missing = [
        field.label
        for field in required
        if not is_field_complete(field.value, field.key in boolean_keys)
    ]
    total = len(required)
    completed = total - len(missing)

    if total == 0:
        return CompletionResult(
            percentage=0,
            is_complete=False,
            missing_fields=[],
            completed_count=0,
            total_required=0,
        )

    return CompletionResult(
        # Half-up rounding, 92.5 -> 93
        percentage=math.floor(completed / total * 100 + 0.5),
        is_complete=completed == total,
        missing_fields=missing,
        completed_count=completed,
        total_required=total,
    )


def score(
    basic: Optional[HospitalBasic],
    details: Optional[HospitalDetails],
    contact: Optional[PrimaryContact],
    fields: Sequence[FormFieldDef] = CORE_FORM_FIELDS,
) -> CompletionResult:
    """
    Score the hospital form from its three source records.

    Args:
        basic: Name, location and LASOS participation
        details: Structural data; None when never filled in
        contact: Primary coordinator contact; None when missing
        fields: Checklist to score against

    Returns:
        CompletionResult with the missing labels in checklist order
    """
    return score_checklist(build_checklist(basic, details, contact, fields), fields)


def is_urgent(
    result: CompletionResult,
    created_at: Optional[datetime],
    now: datetime,
    grace_days: int = URGENCY_GRACE_DAYS,
) -> bool:
    if result.is_complete or created_at is None:
        return False
    return now - created_at > timedelta(days=grace_days)
