"""Tests for hospital form completion scoring."""

from datetime import datetime

from src.epicq.epicq_pydantic_models import (
    CompletionResult,
    HospitalBasic,
    HospitalDetails,
    HospitalFormField,
    PrimaryContact,
)
from src.epicq.hospital_completion import (
    CORE_FORM_FIELDS,
    EXTENDED_FORM_FIELDS,
    is_field_complete,
    is_urgent,
    score,
    score_checklist,
)


def complete_records() -> tuple[HospitalBasic, HospitalDetails, PrimaryContact]:
    basic = HospitalBasic(name="H1", province="BA", city="LP", participated_lasos=True)
    details = HospitalDetails(
        num_beds=10,
        num_operating_rooms=2,
        num_icu_beds=3,
        avg_weekly_surgeries=20,
        financing_type="public",
        has_preop_clinic="always",
        has_residency_program=True,
        has_rapid_response_team=False,
        has_ethics_committee=True,
        university_affiliated=False,
    )
    contact = PrimaryContact(name="Dr. X", email="x@h.com", phone="221-555", specialty="surgeon")
    return basic, details, contact


class TestScore:
    """Completion percentage and missing labels."""

    def test_missing_phone(self) -> None:
        basic, details, contact = complete_records()
        contact = contact.model_copy(update={"phone": None})

        result = score(basic, details, contact)

        assert result.total_required == 14
        assert result.completed_count == 13
        assert result.percentage == 93
        assert not result.is_complete
        assert result.missing_fields == ["Teléfono del Coordinador"]

    def test_complete_form(self) -> None:
        result = score(*complete_records())
        assert result.percentage == 100
        assert result.is_complete
        assert result.missing_fields == []

    def test_empty_string_counts_as_missing(self) -> None:
        basic, details, contact = complete_records()
        basic = basic.model_copy(update={"city": ""})
        result = score(basic, details, contact)
        assert result.missing_fields == ["Ciudad"]

    def test_missing_records_count_every_field(self) -> None:
        basic = HospitalBasic(name="H1", province="BA", city="LP", participated_lasos=True)
        result = score(basic, None, None)
        assert result.completed_count == 4
        assert result.total_required == 14
        # 4 / 14 = 28.57
        assert result.percentage == 29
        assert result.missing_fields[0] == "Número de Camas"
        assert result.missing_fields[-1] == "Cargo del Coordinador"

    def test_missing_labels_follow_checklist_order(self) -> None:
        basic, details, contact = complete_records()
        basic = basic.model_copy(update={"province": None})
        contact = contact.model_copy(update={"email": None})
        details = details.model_copy(update={"num_beds": None})
        result = score(basic, details, contact)
        assert result.missing_fields == ["Provincia", "Número de Camas", "Email del Coordinador"]

    def test_lasos_false_is_an_answer(self) -> None:
        basic, details, contact = complete_records()
        basic = basic.model_copy(update={"participated_lasos": False})
        assert score(basic, details, contact).is_complete

    def test_unanswered_ethics_committee_is_missing(self) -> None:
        basic, details, contact = complete_records()
        details = details.model_copy(update={"has_ethics_committee": None})

        result = score(basic, details, contact, EXTENDED_FORM_FIELDS)

        assert not result.is_complete
        assert "Tiene Comité de Ética" in result.missing_fields

    def test_ethics_committee_false_is_complete(self) -> None:
        basic, details, contact = complete_records()
        details = details.model_copy(update={"has_ethics_committee": False})

        result = score(basic, details, contact, EXTENDED_FORM_FIELDS)

        assert result.is_complete
        assert result.total_required == 18

    def test_no_required_fields(self) -> None:
        result = score_checklist([], CORE_FORM_FIELDS)
        assert result.percentage == 0
        assert not result.is_complete
        assert result.total_required == 0

    def test_half_rounds_up(self) -> None:
        # 1 of 8 = 12.5
        checklist = [HospitalFormField(key=f"f{i}", label=f"F{i}", value=None) for i in range(8)]
        checklist[0].value = "x"
        assert score_checklist(checklist, []).percentage == 13


class TestHelpers:
    def test_is_field_complete(self) -> None:
        assert is_field_complete(0)
        assert is_field_complete("x")
        assert not is_field_complete(None)
        assert not is_field_complete("")
        assert is_field_complete(False, boolean=True)
        assert not is_field_complete(None, boolean=True)

    def test_incomplete_form_is_urgent_after_a_week(self) -> None:
        result = CompletionResult(
            percentage=50, is_complete=False, completed_count=7, total_required=14
        )
        created = datetime(2030, 1, 1, 9, 0)
        assert not is_urgent(result, created, datetime(2030, 1, 8, 9, 0))
        assert is_urgent(result, created, datetime(2030, 1, 8, 9, 1))

    def test_complete_form_is_never_urgent(self) -> None:
        result = CompletionResult(
            percentage=100, is_complete=True, completed_count=14, total_required=14
        )
        assert not is_urgent(result, datetime(2020, 1, 1), datetime(2030, 1, 1))
