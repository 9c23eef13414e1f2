"""API tests for the EPIC-Q routes."""

from datetime import date, timedelta
from typing import Any

from fastapi.testclient import TestClient

from src.epicq.epicq_services import utc_now

API = "/api/epicq"


def create_hospital(client: TestClient, **fields: Any) -> str:
    payload = {"name": "H1", "province": "BA", "city": "LP", "participatedLasos": True}
    payload.update(fields)
    response = client.post(f"{API}/hospitals", json=payload)
    assert response.status_code == 201
    return response.json()["id"]


def next_monday() -> date:
    today = utc_now().date()
    return today + timedelta(days=7 - today.weekday())


def put_period(client: TestClient, hospital_id: str, start: date, end: date, **extra: Any) -> Any:
    body = {"startDate": start.isoformat(), "endDate": end.isoformat(), **extra}
    return client.put(f"{API}/hospitals/{hospital_id}/recruitment-periods", json=body)


class TestService:
    def test_root(self, client: TestClient) -> None:
        response = client.get(f"{API}/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "EPIC-Q Management"
        assert data["status"] == "running"

    def test_health_check(self, client: TestClient) -> None:
        response = client.get(f"{API}/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["databaseConnected"] is True
        assert "uptimeSeconds" in data


class TestHospitals:
    def test_create_and_get(self, client: TestClient) -> None:
        hospital_id = create_hospital(client, projectId="epicq")

        response = client.get(f"{API}/hospitals/{hospital_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "H1"
        assert data["projectId"] == "epicq"
        assert data["participatedLasos"] is True

    def test_unknown_hospital(self, client: TestClient) -> None:
        assert client.get(f"{API}/hospitals/missing").status_code == 404

    def test_form_and_coordinator_stats(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        form = {
            "details": {
                "numBeds": 10,
                "numOperatingRooms": 2,
                "numIcuBeds": 3,
                "avgWeeklySurgeries": 20,
                "financingType": "public",
                "hasPreopClinic": "always",
            },
            "contact": {"name": "Dr. X", "email": "x@h.com", "phone": None, "specialty": "surgeon"},
        }
        response = client.put(f"{API}/hospitals/{hospital_id}/form", json=form)
        assert response.status_code == 200
        assert response.json()["completion"]["totalRequired"] == 18

        response = client.get(f"{API}/coordinator/stats", params={"hospitalId": hospital_id})

        assert response.status_code == 200
        data = response.json()
        assert data["formCompletion"] == 93
        assert data["upcomingPeriods"] == 0
        status = data["hospitalFormStatus"]
        assert status["isComplete"] is False
        assert status["isUrgent"] is False
        assert status["missingFields"] == ["Teléfono del Coordinador"]
        assert status["completedSteps"] == 13
        assert status["totalSteps"] == 14

    def test_form_status_lists_fields(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        response = client.get(f"{API}/hospitals/{hospital_id}/form-status")
        assert response.status_code == 200
        data = response.json()
        assert len(data["fields"]) == 18
        assert data["fields"][0]["label"] == "Nombre del Hospital"
        assert "Tiene Comité de Ética" in data["completion"]["missingFields"]

    def test_coordinator_stats_requires_hospital(self, client: TestClient) -> None:
        assert client.get(f"{API}/coordinator/stats").status_code == 422
        assert client.get(f"{API}/coordinator/stats", params={"hospitalId": "x"}).status_code == 404


class TestRecruitmentPeriods:
    def test_create_then_reject_close_second_period(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)

        first = put_period(client, hospital_id, date(2030, 1, 7), date(2030, 1, 13))
        assert first.status_code == 200
        assert first.json()["periodNumber"] == 1
        assert first.json()["status"] == "planned"

        second = put_period(client, hospital_id, date(2030, 4, 8), date(2030, 4, 14))
        assert second.status_code == 400
        assert second.json() == {
            "error": "Período 1 → Período 2: 2 meses (mínimo 4 meses requerido)"
        }

        third = put_period(client, hospital_id, date(2030, 5, 13), date(2030, 5, 19))
        assert third.status_code == 200
        assert third.json()["periodNumber"] == 2

    def test_validation_message_follows_accept_language(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        put_period(client, hospital_id, date(2030, 1, 7), date(2030, 1, 13))

        response = client.put(
            f"{API}/hospitals/{hospital_id}/recruitment-periods",
            json={"startDate": "2030-01-13", "endDate": "2030-01-19"},
            headers={"Accept-Language": "en-US,en;q=0.9"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "The period overlaps with Period 1 (01/07/2030 - 01/13/2030)"

    def test_not_monday(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        response = client.post(
            f"{API}/hospitals/{hospital_id}/recruitment-periods",
            json={"startDate": "2030-01-08", "endDate": "2030-01-14"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Debe iniciar en lunes"}

    def test_start_in_past(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        response = put_period(client, hospital_id, date(2020, 1, 6), date(2020, 1, 12))
        assert response.status_code == 400
        assert response.json() == {"error": "La fecha de inicio no puede ser menor a la fecha actual"}

    def test_edit_existing_period(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        period_id = put_period(client, hospital_id, date(2030, 1, 7), date(2030, 1, 13)).json()["id"]

        response = put_period(
            client, hospital_id, date(2030, 1, 14), date(2030, 1, 20), periodId=period_id
        )

        assert response.status_code == 200
        assert response.json()["id"] == period_id
        assert response.json()["periodNumber"] == 1
        listing = client.get(f"{API}/hospitals/{hospital_id}/recruitment-periods").json()
        assert [p["startDate"] for p in listing] == ["2030-01-14"]

    def test_edit_of_completed_period_is_rejected(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        period_id = put_period(client, hospital_id, date(2030, 1, 7), date(2030, 1, 13)).json()["id"]
        for target in ["active", "completed"]:
            client.patch(f"{API}/recruitment-periods/{period_id}/status", json={"status": target})

        response = put_period(
            client, hospital_id, date(2030, 3, 4), date(2030, 3, 10), periodId=period_id
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Solo se pueden modificar períodos planificados"}
        listing = client.get(f"{API}/hospitals/{hospital_id}/recruitment-periods").json()
        assert listing[0]["startDate"] == "2030-01-07"
        assert listing[0]["status"] == "completed"
        assert client.delete(f"{API}/recruitment-periods/{period_id}").status_code == 409

    def test_new_period_must_follow_the_last_one(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        put_period(client, hospital_id, date(2030, 11, 4), date(2030, 11, 10))

        response = client.put(
            f"{API}/hospitals/{hospital_id}/recruitment-periods",
            params={"locale": "en"},
            json={"startDate": "2030-01-07", "endDate": "2030-01-13"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Period 2 must come after Period 1"}

    def test_edit_unknown_period(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        response = put_period(
            client, hospital_id, date(2030, 1, 7), date(2030, 1, 13), periodId="missing"
        )
        assert response.status_code == 404

    def test_status_lifecycle_and_delete(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        period_id = put_period(client, hospital_id, date(2030, 1, 7), date(2030, 1, 13)).json()["id"]

        active = client.patch(f"{API}/recruitment-periods/{period_id}/status", json={"status": "active"})
        assert active.status_code == 200
        assert active.json()["status"] == "active"

        back = client.patch(f"{API}/recruitment-periods/{period_id}/status", json={"status": "planned"})
        assert back.status_code == 400
        assert "error" in back.json()

        client.patch(f"{API}/recruitment-periods/{period_id}/status", json={"status": "completed"})
        assert client.delete(f"{API}/recruitment-periods/{period_id}").status_code == 409

    def test_delete_planned_period(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        period_id = put_period(client, hospital_id, date(2030, 1, 7), date(2030, 1, 13)).json()["id"]

        assert client.delete(f"{API}/recruitment-periods/{period_id}").status_code == 204
        assert client.delete(f"{API}/recruitment-periods/{period_id}").status_code == 404
        assert client.get(f"{API}/hospitals/{hospital_id}/recruitment-periods").json() == []

    def test_upcoming_period_in_coordinator_stats(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        start = next_monday()
        put_period(client, hospital_id, start, start + timedelta(days=6))

        data = client.get(f"{API}/coordinator/stats", params={"hospitalId": hospital_id}).json()

        assert data["upcomingPeriods"] == 1


class TestCaseMetrics:
    def test_trend(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        for day, value in [("2030-01-01", 10), ("2030-01-02", 12), ("2030-01-03", 14)]:
            response = client.post(
                f"{API}/hospitals/{hospital_id}/case-metrics",
                json={"recordedDate": day, "completionPercentage": value},
            )
            assert response.status_code == 201

        data = client.get(f"{API}/hospitals/{hospital_id}/trend").json()

        assert data["avgVelocity"] == 2.0
        assert data["trend"] == "stable"
        assert data["dataPoints"] == 3


class TestAlertConfigurations:
    def test_defaults_are_listed(self, client: TestClient) -> None:
        response = client.get(f"{API}/alert-configurations")
        assert response.status_code == 200
        by_type = {c["alertType"]: c for c in response.json()}
        assert len(by_type) == 5
        assert by_type["no_activity_30_days"]["thresholdValue"] == 30
        assert by_type["upcoming_recruitment_period"]["autoSendEmail"] is True

    def test_update(self, client: TestClient) -> None:
        response = client.put(
            f"{API}/alert-configurations/low_completion_rate",
            json={"thresholdValue": 50, "enabled": False},
        )
        assert response.status_code == 200

        data = client.get(f"{API}/alert-configurations/low_completion_rate").json()
        assert data["thresholdValue"] == 50
        assert data["enabled"] is False

    def test_unknown_type(self, client: TestClient) -> None:
        assert client.get(f"{API}/alert-configurations/not_a_type").status_code == 422


class TestAlerts:
    def test_generate_dedupe_and_resolve(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        client.post(
            f"{API}/hospitals/{hospital_id}/case-metrics",
            json={"recordedDate": "2024-01-01", "completionPercentage": 40, "lastCaseDate": "2024-01-01"},
        )

        first = client.post(f"{API}/alerts/generate").json()
        second = client.post(f"{API}/alerts/generate").json()

        assert first["totalGenerated"] == 2
        assert second["totalGenerated"] == 0
        assert second["totalSkipped"] == 2

        listing = client.get(f"{API}/alerts", params={"resolved": "false"}).json()
        assert listing["total"] == 2
        types = {a["type"]: a for a in listing["alerts"]}
        assert set(types) == {"no_activity_30_days", "low_completion_rate"}
        assert types["no_activity_30_days"]["severity"] == "high"

        stats = client.get(f"{API}/alerts/stats").json()
        assert stats["active"] == 2
        assert stats["high"] == 1
        assert stats["medium"] == 1

        alert_id = types["no_activity_30_days"]["id"]
        resolved = client.post(f"{API}/alerts/{alert_id}/resolve", json={"userId": "admin-1"})
        assert resolved.status_code == 200
        assert resolved.json()["isResolved"] is True
        assert resolved.json()["autoResolved"] is False
        assert resolved.json()["resolvedBy"] == "admin-1"

        assert client.get(f"{API}/alerts/stats").json()["resolved"] == 1

    def test_resolve_unknown_alert(self, client: TestClient) -> None:
        response = client.post(f"{API}/alerts/missing/resolve", json={"userId": "admin-1"})
        assert response.status_code == 404

    def test_upcoming_period_creates_communication(self, client: TestClient) -> None:
        hospital_id = create_hospital(client)
        start = next_monday()
        put_period(client, hospital_id, start, start + timedelta(days=6))

        summary = client.post(f"{API}/alerts/generate", params={"locale": "en"}).json()
        assert summary["totalGenerated"] == 1

        communications = client.get(f"{API}/communications", params={"hospitalId": hospital_id}).json()
        assert len(communications) == 1
        assert communications[0]["subject"] == "Upcoming Recruitment Period"
        assert communications[0]["recipients"] == ["admin", "coordinator"]
        assert communications[0]["status"] == "pending"


class TestDashboard:
    def test_dashboard_counts_hospitals_and_alerts(self, client: TestClient) -> None:
        hospital_id = create_hospital(client, name="Central")
        client.post(
            f"{API}/hospitals/{hospital_id}/case-metrics",
            json={"recordedDate": "2024-01-01", "casesCreated": 12, "completionPercentage": 40, "lastCaseDate": "2024-01-01"},
        )
        client.post(f"{API}/alerts/generate")

        response = client.get(f"{API}/dashboard", params={"limit": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["kpis"]["totalHospitals"] == 1
        assert data["kpis"]["activeHospitals"] == 1
        assert data["kpis"]["totalCases"] == 12
        assert data["kpis"]["averageCompletion"] == 40
        assert data["kpis"]["activeAlerts"] == 2
        assert set(data["kpis"]["trends"]) == {
            "totalHospitals",
            "activeHospitals",
            "totalCases",
            "averageCompletion",
            "activeAlerts",
        }
        assert data["hospitalsByStatus"] == [{"status": "active", "count": 1}]
        assert sorted(t["type"] for t in data["alertsByType"]) == ["low_completion_rate", "no_activity_30_days"]
        assert len(data["recentAlerts"]) == 1
        assert data["recentAlerts"][0]["hospitalName"] == "Central"

    def test_dashboard_lists_upcoming_period(self, client: TestClient) -> None:
        hospital_id = create_hospital(client, name="Central")
        start = next_monday()
        put_period(client, hospital_id, start, start + timedelta(days=6))

        data = client.get(f"{API}/dashboard").json()

        assert [p["hospitalName"] for p in data["upcomingRecruitment"]] == ["Central"]
        assert data["upcomingRecruitment"][0]["startDate"] == start.isoformat()
        assert data["upcomingRecruitment"][0]["status"] == "planned"

    def test_limit_is_bounded(self, client: TestClient) -> None:
        assert client.get(f"{API}/dashboard", params={"limit": 0}).status_code == 422
