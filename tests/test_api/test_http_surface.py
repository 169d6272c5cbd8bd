"""
Tests for the HTTP surface.

Covers:
- /health provider modes
- POST /api/v1/updates batch summary and idempotence
- Location risk and forecast, invalid coordinates → 422
- Incident listing, lookup, status transitions, evidence
- Notifications feed, subject projections, group networks
"""

import base64

import pytest


@pytest.fixture
def seeded_incident(services, make_incident_data):
    """Create one incident directly through the lifecycle manager."""

    async def _seed():
        return await services.incidents.create(make_incident_data())

    return _seed


# ── Health ────────────────────────────────────────────────────────────────


class TestHealth:
    @pytest.mark.asyncio
    async def test_reports_degraded_providers(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["service"] == "riskwatch"
        assert data["pipeline_running"] is False
        assert data["providers"]["weather"] == "simulated"
        assert data["providers"]["model"] == "local-fallback"
        assert data["providers"]["persistence"] == "local-buffer"


# ── Updates ───────────────────────────────────────────────────────────────


class TestUpdates:
    @pytest.mark.asyncio
    async def test_push_batch(self, client):
        batch = [
            {"subject_id": "T1", "name": "Asha", "latitude": 28.6139, "longitude": 77.2090,
             "family_id": "F1", "update_marker": 1},
            {"subject_id": "T2", "latitude": 28.6140, "longitude": 77.2091, "family_id": "F1",
             "update_marker": 1},
        ]
        resp = await client.post("/api/v1/updates", json=batch)
        assert resp.status_code == 200
        summary = resp.json()
        assert summary["received"] == 2
        assert summary["processed"] == 2
        assert summary["failed"] == 0

        again = await client.post("/api/v1/updates", json=batch)
        assert again.json()["skipped_duplicates"] == 2

        subjects = (await client.get("/api/v1/subjects")).json()
        assert {s["update"]["subject_id"] for s in subjects} == {"T1", "T2"}

        group = (await client.get("/api/v1/groups/F1")).json()
        assert set(group["members"]) == {"T1", "T2"}

    @pytest.mark.asyncio
    async def test_rejects_missing_subject_id(self, client):
        resp = await client.post("/api/v1/updates", json=[{"latitude": 28.6}])
        assert resp.status_code == 422


# ── Risk ──────────────────────────────────────────────────────────────────


class TestRisk:
    @pytest.mark.asyncio
    async def test_assess(self, client):
        resp = await client.get("/api/v1/risk", params={"lat": 28.6139, "lon": 77.2090})
        assert resp.status_code == 200
        data = resp.json()
        assert 0.0 <= data["overall"] <= 1.0
        assert data["level"] in ("Green", "Yellow", "Red")

    @pytest.mark.asyncio
    async def test_invalid_coordinate(self, client):
        resp = await client.get("/api/v1/risk", params={"lat": 200, "lon": 77.2})
        assert resp.status_code == 422
        assert resp.json()["status"] == 422

    @pytest.mark.asyncio
    async def test_forecast(self, client):
        resp = await client.get("/api/v1/risk/forecast", params={"lat": 28.6, "lon": 77.2, "hours": 24})
        assert resp.status_code == 200
        assert [p["hour"] for p in resp.json()] == [23, 5, 11, 17]

    @pytest.mark.asyncio
    async def test_forecast_horizon_bounds(self, client):
        resp = await client.get("/api/v1/risk/forecast", params={"lat": 28.6, "lon": 77.2, "hours": 500})
        assert resp.status_code == 422


# ── Incidents ─────────────────────────────────────────────────────────────


class TestIncidents:
    @pytest.mark.asyncio
    async def test_list_and_get(self, client, seeded_incident):
        incident = await seeded_incident()

        listing = (await client.get("/api/v1/incidents")).json()
        assert [i["incident_id"] for i in listing] == [incident.incident_id]

        resp = await client.get(f"/api/v1/incidents/{incident.incident_id}")
        assert resp.status_code == 200
        assert resp.json()["status"] == "Assigned"

        filtered = (await client.get("/api/v1/incidents", params={"status": "Closed"})).json()
        assert filtered == []

    @pytest.mark.asyncio
    async def test_unknown_incident(self, client):
        resp = await client.get("/api/v1/incidents/INC-00000000-0000")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Incident 'INC-00000000-0000' not found", "status": 404}

    @pytest.mark.asyncio
    async def test_status_transitions(self, client, seeded_incident):
        incident = await seeded_incident()
        url = f"/api/v1/incidents/{incident.incident_id}/status"

        rejected = await client.patch(url, json={"status": "Closed"})
        assert rejected.status_code == 409

        accepted = await client.patch(url, json={"status": "Resolved", "remarks": "Subject safe",
                                                 "updated_by": "Officer Smith"})
        assert accepted.status_code == 200
        assert accepted.json()["previous_status"] == "Assigned"
        assert accepted.json()["status"] == "Resolved"

    @pytest.mark.asyncio
    async def test_add_evidence(self, client, seeded_incident):
        incident = await seeded_incident()
        body = {
            "type": "photo",
            "description": "Scene",
            "filename": "scene.jpg",
            "content_base64": base64.b64encode(b"jpeg-bytes").decode(),
            "content_type": "image/jpeg",
            "added_by": "Officer Smith",
        }
        resp = await client.post(f"/api/v1/incidents/{incident.incident_id}/evidence", json=body)
        assert resp.status_code == 201
        # no blob storage configured: recorded without a url
        assert resp.json()["url"] is None
        assert len(incident.evidence) == 1

    @pytest.mark.asyncio
    async def test_evidence_bad_base64(self, client, seeded_incident):
        incident = await seeded_incident()
        resp = await client.post(
            f"/api/v1/incidents/{incident.incident_id}/evidence",
            json={"type": "photo", "content_base64": "not base64!"},
        )
        assert resp.status_code == 422


# ── Notifications / subjects ──────────────────────────────────────────────


class TestReadModels:
    @pytest.mark.asyncio
    async def test_notifications_after_incident(self, client, seeded_incident):
        await seeded_incident()
        resp = await client.get("/api/v1/notifications", params={"limit": 10})
        assert resp.status_code == 200
        assert len(resp.json()) >= 1

    @pytest.mark.asyncio
    async def test_unknown_subject_and_group(self, client):
        assert (await client.get("/api/v1/subjects/nobody")).status_code == 404
        assert (await client.get("/api/v1/groups/nobody")).status_code == 404

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        resp = await client.get("/api/v1/notifications", headers={"X-Request-ID": "req-42"})
        assert resp.headers["X-Request-ID"] == "req-42"
        assert resp.headers["X-Response-Time"].endswith("ms")
