"""Locale-aware formatting of dates, percentages and user-facing messages.

The locale is always passed in explicitly; nothing here caches a formatter
per process.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional, Union


class Locale(str, Enum):
    ES = "es"
    EN = "en"
    PT = "pt"


DEFAULT_LOCALE = Locale.ES

LOCALE_CONFIG: dict[Locale, dict[str, str]] = {
    Locale.ES: {"code": "es-AR", "date_format": "DD/MM/YYYY", "decimal": ","},
    Locale.EN: {"code": "en-US", "date_format": "MM/DD/YYYY", "decimal": "."},
    Locale.PT: {"code": "pt-BR", "date_format": "DD/MM/YYYY", "decimal": ","},
}

MONTH_NAMES: dict[Locale, list[str]] = {
    Locale.ES: [
        "enero", "febrero", "marzo", "abril", "mayo", "junio",
        "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
    ],
    Locale.EN: [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
    Locale.PT: [
        "janeiro", "fevereiro", "março", "abril", "maio", "junho",
        "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
    ],
}

# Monday first, as returned by date.weekday()
DAY_NAMES: dict[Locale, list[str]] = {
    Locale.ES: ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"],
    Locale.EN: ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"],
    Locale.PT: [
        "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
        "sexta-feira", "sábado", "domingo",
    ],
}

MESSAGES: dict[str, dict[Locale, str]] = {
    # Recruitment periods
    "period.start_after_end": {
        Locale.ES: "La fecha de fin debe ser posterior a la fecha de inicio",
        Locale.EN: "The start date must precede the end date",
        Locale.PT: "A data de início deve ser anterior à data de término",
    },
    "period.overlap": {
        Locale.ES: "El período se superpone con el Período {number} ({start} - {end})",
        Locale.EN: "The period overlaps with Period {number} ({start} - {end})",
        Locale.PT: "O período se sobrepõe ao Período {number} ({start} - {end})",
    },
    "period.not_monday": {
        Locale.ES: "Debe iniciar en lunes",
        Locale.EN: "Must start on Monday",
        Locale.PT: "Deve começar na segunda-feira",
    },
    "period.not_seven_days": {
        Locale.ES: "Debe ser exactamente 7 días consecutivos",
        Locale.EN: "Must be exactly 7 consecutive days",
        Locale.PT: "Deve ter exatamente 7 dias consecutivos",
    },
    "period.min_gap": {
        Locale.ES: (
            "Período {previous} → Período {current}: {months} meses "
            "(mínimo {minimum} meses requerido)"
        ),
        Locale.EN: (
            "Period {previous} → Period {current}: {months} months "
            "(minimum {minimum} months required)"
        ),
        Locale.PT: (
            "Período {previous} → Período {current}: {months} meses "
            "(mínimo de {minimum} meses exigido)"
        ),
    },
    "period.out_of_order": {
        Locale.ES: "El Período {current} debe ser posterior al Período {previous}",
        Locale.EN: "Period {current} must come after Period {previous}",
        Locale.PT: "O Período {current} deve ser posterior ao Período {previous}",
    },
    "period.not_editable": {
        Locale.ES: "Solo se pueden modificar períodos planificados",
        Locale.EN: "Only planned periods can be edited",
        Locale.PT: "Somente períodos planejados podem ser editados",
    },
    "period.start_in_past": {
        Locale.ES: "La fecha de inicio no puede ser menor a la fecha actual",
        Locale.EN: "The start date cannot be earlier than today",
        Locale.PT: "A data de início não pode ser anterior à data atual",
    },
    "period.max_reached": {
        Locale.ES: (
            "Este hospital solo puede tener {maximum} períodos de reclutamiento. "
            "Ya se han creado {count}."
        ),
        Locale.EN: (
            "This hospital can only have {maximum} recruitment periods. "
            "{count} have already been created."
        ),
        Locale.PT: (
            "Este hospital só pode ter {maximum} períodos de recrutamento. "
            "Já foram criados {count}."
        ),
    },
    # Alerts
    "alert.no_activity.title": {
        Locale.ES: "Hospital Sin Actividad",
        Locale.EN: "Hospital Without Activity",
        Locale.PT: "Hospital Sem Atividade",
    },
    "alert.no_activity.message": {
        Locale.ES: "El hospital {hospital} no ha tenido actividad en los últimos {days} días.",
        Locale.EN: "Hospital {hospital} has had no activity in the last {days} days.",
        Locale.PT: "O hospital {hospital} não teve atividade nos últimos {days} dias.",
    },
    "alert.low_completion.title": {
        Locale.ES: "Tasa de Completitud Baja",
        Locale.EN: "Low Completion Rate",
        Locale.PT: "Taxa de Conclusão Baixa",
    },
    "alert.low_completion.message": {
        Locale.ES: (
            "El hospital {hospital} tiene una tasa de completitud del {rate}, "
            "por debajo del umbral del {threshold}."
        ),
        Locale.EN: (
            "Hospital {hospital} has a completion rate of {rate}, "
            "below the {threshold} threshold."
        ),
        Locale.PT: (
            "O hospital {hospital} tem uma taxa de conclusão de {rate}, "
            "abaixo do limite de {threshold}."
        ),
    },
    "alert.upcoming_period.title": {
        Locale.ES: "Período de Reclutamiento Próximo",
        Locale.EN: "Upcoming Recruitment Period",
        Locale.PT: "Período de Recrutamento Próximo",
    },
    "alert.upcoming_period.message": {
        Locale.ES: "El Período {number} de reclutamiento de {hospital} comienza en {days} días ({day} {start}).",
        Locale.EN: "Recruitment Period {number} for {hospital} starts in {days} days ({day}, {start}).",
        Locale.PT: "O Período {number} de recrutamento de {hospital} começa em {days} dias ({day}, {start}).",
    },
    "alert.ethics_pending.title": {
        Locale.ES: "Aprobación de Ética Pendiente",
        Locale.EN: "Ethics Approval Pending",
        Locale.PT: "Aprovação Ética Pendente",
    },
    "alert.ethics_pending.message": {
        Locale.ES: "El hospital {hospital} tiene la aprobación de ética pendiente desde hace {days} días.",
        Locale.EN: "Hospital {hospital} has had ethics approval pending for {days} days.",
        Locale.PT: "O hospital {hospital} está com a aprovação ética pendente há {days} dias.",
    },
    "alert.missing_docs.title": {
        Locale.ES: "Documentación Faltante",
        Locale.EN: "Missing Documentation",
        Locale.PT: "Documentação Faltante",
    },
    "alert.missing_docs.message": {
        Locale.ES: "El hospital {hospital} tiene documentación faltante: {fields}.",
        Locale.EN: "Hospital {hospital} has missing documentation: {fields}.",
        Locale.PT: "O hospital {hospital} tem documentação faltante: {fields}.",
    },
}


def get_locale(value: Optional[Union[str, Locale]]) -> Locale:
    """Resolve a locale code such as "en" or "pt-BR", falling back to Spanish."""
    if isinstance(value, Locale):
        return value
    if not value:
        return DEFAULT_LOCALE
    try:
        return Locale(value.split("-")[0].lower())
    except ValueError:
        return DEFAULT_LOCALE


def translate(key: str, locale: Locale, **params: Any) -> str:
    templates = MESSAGES[key]
    template = templates.get(locale, templates[DEFAULT_LOCALE])
    return template.format(**params)


def format_date_short(value: date, locale: Locale) -> str:
    pattern = LOCALE_CONFIG[locale]["date_format"]
    return (
        pattern.replace("YYYY", f"{value.year:04d}")
        .replace("MM", f"{value.month:02d}")
        .replace("DD", f"{value.day:02d}")
    )


def format_date_long(value: date, locale: Locale) -> str:
    month = MONTH_NAMES[locale][value.month - 1]
    if locale == Locale.EN:
        return f"{month} {value.day}, {value.year}"
    return f"{value.day} de {month} de {value.year}"


def format_day_name(value: date, locale: Locale) -> str:
    return DAY_NAMES[locale][value.weekday()]


def format_percentage(value: float, locale: Locale, decimals: int = 0) -> str:
    """Format a 0-100 value as a percentage, e.g. 65.5 -> "65,5%" in Spanish."""
    text = f"{value:.{decimals}f}"
    separator = LOCALE_CONFIG[locale]["decimal"]
    if separator != ".":
        text = text.replace(".", separator)
    return f"{text}%"
