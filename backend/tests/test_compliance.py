"""Tests for pest control compliance tracking."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from cafe_pos.schemas.compliance import PestControlCreate
from cafe_pos.services.compliance_service import (
    ALERT_DUE_SOON,
    ALERT_NO_RECORDS,
    ALERT_OVERDUE,
    ALERT_RENEWAL_REQUIRED,
    build_pest_control_row,
    normalize_pest_control_row,
    summarize_pest_control,
)

NOW = datetime(2025, 3, 14, 18, 0, tzinfo=timezone.utc)


def service_row(days_ago, next_in_days=None, **extra):
    row = {
        "id": f"svc-{days_ago}",
        "service_date": (NOW - timedelta(days=days_ago)).isoformat(),
        "provider_name": "Fumigaciones del Centro",
        "createdAt": (NOW - timedelta(days=days_ago)).isoformat(),
    }
    if next_in_days is not None:
        row["next_service_date"] = (NOW + timedelta(days=next_in_days)).isoformat()
    row.update(extra)
    return row


class TestPestControlSummary:

    def test_no_records(self):
        summary = summarize_pest_control([], alert_days=80, now=NOW)
        assert summary.latest is None
        assert summary.days_since is None
        assert summary.alert_message == ALERT_NO_RECORDS
        assert summary.alert is False

    def test_recent_service_has_no_alert(self):
        summary = summarize_pest_control([service_row(20, next_in_days=40)], alert_days=80, now=NOW)
        assert summary.days_since == 20
        assert summary.alert_message is None
        assert summary.alert is False

    def test_renewal_required_after_alert_days(self):
        summary = summarize_pest_control([service_row(81)], alert_days=80, now=NOW)
        assert summary.alert_message == ALERT_RENEWAL_REQUIRED
        assert summary.alert is True

    def test_exactly_alert_days_is_due_soon(self):
        summary = summarize_pest_control([service_row(80)], alert_days=80, now=NOW)
        assert summary.alert_message == ALERT_DUE_SOON
        assert summary.alert is False

    def test_due_soon_window(self):
        assert summarize_pest_control([service_row(70)], alert_days=80, now=NOW).alert_message == ALERT_DUE_SOON
        assert summarize_pest_control([service_row(69)], alert_days=80, now=NOW).alert_message is None

    def test_next_service_date_passed_is_overdue(self):
        summary = summarize_pest_control([service_row(30, next_in_days=-1)], alert_days=80, now=NOW)
        assert summary.alert_message == ALERT_OVERDUE

    def test_latest_record_wins(self):
        rows = [service_row(120), service_row(5), service_row(60)]
        summary = summarize_pest_control(rows, alert_days=80, now=NOW)
        assert summary.latest.id == "svc-5"
        assert summary.days_since == 5

    def test_camel_case_columns_accepted(self):
        record = normalize_pest_control_row({
            "id": "x",
            "serviceDate": "2025-01-01T10:00:00Z",
            "providerName": "Plagas SA",
            "staffId": "staff-1",
            "created_at": "2025-01-01T10:05:00Z",
        })
        assert record.provider_name == "Plagas SA"
        assert record.staff_id == "staff-1"
        assert record.service_date.year == 2025

    def test_build_row_assigns_identity(self):
        body = PestControlCreate(
            service_date=datetime(2025, 3, 1, 10, 0),
            provider_name="  ",
            certificate_number="CERT-88",
        )
        row = build_pest_control_row(body, now=NOW)
        assert row["id"]
        assert row["createdAt"] == NOW.isoformat()
        assert row["service_date"] == "2025-03-01T10:00:00+00:00"
        assert row["provider_name"] is None
        assert row["certificate_number"] == "CERT-88"


class TestPestControlRoutes:

    def test_status_without_records(self, client: TestClient):
        response = client.get("/api/v1/compliance/pest-control")
        assert response.status_code == 200
        data = response.json()
        assert data["latest"] is None
        assert data["alert_message"] == ALERT_NO_RECORDS

    def test_record_service_online(self, client: TestClient, remote):
        service_date = (datetime.now(timezone.utc) - timedelta(days=10)).isoformat()
        response = client.post(
            "/api/v1/compliance/pest-control",
            json={"service_date": service_date, "provider_name": "Fumigaciones del Centro", "certificate_number": "C-1"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["pending_sync"] is False
        assert data["record"]["certificate_number"] == "C-1"
        assert len(remote.tables["pest_control_logs"]) == 1

        status = client.get("/api/v1/compliance/pest-control").json()
        assert status["days_since"] == 10
        assert status["alert"] is False
        assert status["source"] == "remote"

    def test_record_service_offline_is_queued(self, client: TestClient, remote, queue):
        remote.offline = True
        service_date = (datetime.now(timezone.utc) - timedelta(days=85)).isoformat()

        response = client.post("/api/v1/compliance/pest-control", json={"service_date": service_date})

        assert response.status_code == 202
        assert response.json()["pending_sync"] is True
        [record] = queue.list_records()
        assert record.scope == "pest_control:insert"

        # Served from the local mirror while the breaker is open
        status = client.get("/api/v1/compliance/pest-control").json()
        assert status["source"] == "local"
        assert status["alert_message"] == ALERT_RENEWAL_REQUIRED
        assert status["alert"] is True

    def test_invalid_body_rejected(self, client: TestClient):
        response = client.post("/api/v1/compliance/pest-control", json={"provider_name": "x"})
        assert response.status_code == 422
