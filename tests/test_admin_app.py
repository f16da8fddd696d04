"""Tests for the health and admin HTTP endpoints."""

from datetime import date, time, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import BUYER, NOW

from viewings.app import create_app
from viewings.errors import StoreError
from viewings.models import AppointmentStatus, ViewingAppointment

TOKEN = {"Authorization": "Bearer secret"}


class FakeSettings:
    def __init__(self, admin_api_key="secret", debug=False):
        self.admin_api_key = admin_api_key
        self.debug = debug


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.setattr("viewings.auth.settings", FakeSettings())
    with TestClient(create_app(service)) as test_client:
        yield test_client


class TestHealth:
    def test_health_is_public(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["pending_requests"] == 0


class TestAdminAuth:
    def test_missing_token(self, client):
        assert client.get("/admin/pending").status_code == 401

    def test_locked_without_key(self, client, monkeypatch):
        monkeypatch.setattr("viewings.auth.settings", FakeSettings(admin_api_key=""))
        assert client.get("/admin/pending", headers=TOKEN).status_code == 403

    def test_health_open_while_admin_locked(self, client, monkeypatch):
        monkeypatch.setattr("viewings.auth.settings", FakeSettings(admin_api_key=""))

        assert client.get("/health").status_code == 200
        resp = client.get("/admin/appointments/stats")
        assert resp.status_code == 403
        assert "ADMIN_API_KEY" in resp.json()["detail"]


class TestPending:
    def test_lists_redacted_entries(self, client, service):
        client.portal.call(service.handle_viewing_interest, "I want to see it", BUYER, "prop-1")

        resp = client.get("/admin/pending", headers=TOKEN)

        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        [entry] = body["pending"]
        assert entry["phone"] == "+30***02"
        assert entry["kind"] == "slot_selection"
        assert entry["property_id"] == "prop-1"
        assert entry["expires_in"] == pytest.approx(1800)


class TestStats:
    def test_counts(self, client, store):
        client.portal.call(store.create, ViewingAppointment(
            property_id="prop-1", user_id=BUYER.id, appointment_date=date(2025, 3, 10),
            start_time=time(14), end_time=time(17),
        ))

        body = client.get("/admin/appointments/stats", headers=TOKEN).json()

        assert body["total"] == 1
        assert body["upcoming"] == 1
        assert body["pending_owner_approval"] == 1

    def test_store_failure(self, client, service):
        service.statistics = AsyncMock(side_effect=StoreError("down"))

        resp = client.get("/admin/appointments/stats", headers=TOKEN)

        assert resp.status_code == 502


class TestExpireStale:
    def test_explicit_hours(self, client, store):
        client.portal.call(store.create, ViewingAppointment(
            property_id="prop-1", user_id=BUYER.id, appointment_date=date(2025, 3, 10),
            start_time=time(14), end_time=time(17), created_at=NOW - timedelta(hours=30),
        ))

        resp = client.post("/admin/appointments/expire-stale?max_age_hours=24", headers=TOKEN)

        assert resp.json() == {"expired": 1, "max_age_hours": 24}
        [appointment] = client.portal.call(store.list_all)
        assert appointment.status == AppointmentStatus.CANCELLED

    def test_hours_required_when_unconfigured(self, client, monkeypatch):
        monkeypatch.setattr("viewings.app.settings.stale_pending_hours", 0)

        resp = client.post("/admin/appointments/expire-stale", headers=TOKEN)

        assert resp.status_code == 400

    def test_rejects_non_positive_hours(self, client):
        resp = client.post("/admin/appointments/expire-stale?max_age_hours=0", headers=TOKEN)
        assert resp.status_code == 422
