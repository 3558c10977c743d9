"""
Tests for the HTTP API.

Each test gets its own in-memory database; request sessions come from the
same engine as the factories so stored rows are visible to the endpoints.
"""

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from expo_conflicts.api.dependencies import get_db_session
from expo_conflicts.api.main import app


def at(hour, minute=0):
    return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def client(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db_session():
        db = TestingSessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db_session] = override_get_db_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def overlapping(make_activity):
    a = make_activity("Opening", at(9), at(10), location="Hall 1")
    b = make_activity("Panel", at(9, 30), at(10, 30), location="Hall 1")
    return a, b


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database_connected"] is True

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
        assert "X-Response-Time" in response.headers

    def test_request_id_generated(self, client):
        assert client.get("/health").headers["X-Request-ID"]


class TestActivityConflictEndpoints:
    """Test detection, reporting and listing."""

    def test_detect_is_idempotent(self, client, event_id, overlapping):
        first = client.post(f"/events/{event_id}/activity-conflicts/detect")
        second = client.post(f"/events/{event_id}/activity-conflicts/detect")

        assert first.status_code == 200
        assert first.json()["newly_created"] == 2
        assert second.json()["newly_created"] == 0
        assert second.json()["total_found"] == 2
        assert {r["kind"] for r in first.json()["records"]} == {"time_overlap", "same_location"}
        assert all(r["conflict_type"] == "schedule" for r in first.json()["records"])

    def test_list_and_statistics(self, client, event_id, overlapping):
        client.post(f"/events/{event_id}/activity-conflicts/detect")

        listed = client.get(f"/events/{event_id}/activity-conflicts")
        stats = client.get(f"/events/{event_id}/activity-conflicts/statistics")

        assert len(listed.json()) == 2
        assert stats.json()["total"] == 2
        assert stats.json()["pending"] == 2

    def test_report_then_duplicate(self, client, event_id, overlapping):
        a, b = overlapping
        body = {
            "activity_a_id": str(a.id),
            "activity_b_id": str(b.id),
            "kind": "time_overlap",
            "description": "Reported by the venue",
        }

        created = client.post(f"/events/{event_id}/activity-conflicts", json=body)
        duplicate = client.post(f"/events/{event_id}/activity-conflicts", json=body)

        assert created.status_code == 201
        assert created.json()["detection_method"] == "manual"
        assert duplicate.status_code == 422
        assert duplicate.json()["error_type"] == "constraint_violation"
        assert duplicate.json()["retryable"] is False

    def test_report_unknown_activity(self, client, event_id, overlapping):
        a, _ = overlapping
        response = client.post(
            f"/events/{event_id}/activity-conflicts",
            json={
                "activity_a_id": str(a.id),
                "activity_b_id": str(uuid.uuid4()),
                "kind": "time_overlap",
                "description": "ghost activity",
            },
        )
        assert response.status_code == 404
        assert response.json()["error_type"] == "not_found"

    def test_malformed_actor_header(self, client, event_id):
        response = client.post(f"/events/{event_id}/activity-conflicts/detect", headers={"X-User-ID": "bob"})
        assert response.status_code == 400


class TestWorkflowEndpoints:
    """Test transitions and their error codes."""

    @pytest.fixture
    def conflict_id(self, client, event_id, overlapping):
        records = client.post(f"/events/{event_id}/activity-conflicts/detect").json()["records"]
        return next(r["id"] for r in records if r["kind"] == "time_overlap")

    def test_assign_and_get(self, client, conflict_id):
        reviewer = str(uuid.uuid4())
        response = client.post(
            f"/conflicts/{conflict_id}/transitions",
            json={"action": "assign", "reviewer_id": reviewer},
            headers={"X-User-ID": reviewer},
        )

        assert response.status_code == 200
        assert response.json()["state"] == "en_revision"
        assert response.json()["assigned_to"] == reviewer

        fetched = client.get(f"/conflicts/{conflict_id}").json()
        assert fetched["version"] == 2
        assert fetched["change_history"][-1]["actor_id"] == reviewer

    def test_invalid_transition_is_409(self, client, conflict_id):
        response = client.post(
            f"/conflicts/{conflict_id}/transitions",
            json={"action": "resolve", "resolution_action": "none", "description": "ok", "resolver_id": str(uuid.uuid4())},
        )
        assert response.status_code == 409
        assert response.json()["error_type"] == "invalid_transition"

    def test_missing_field_is_422(self, client, conflict_id):
        response = client.post(f"/conflicts/{conflict_id}/transitions", json={"action": "assign"})
        assert response.status_code == 422
        assert response.json()["details"]["missing"] == ["reviewer_id"]

    def test_unknown_conflict_is_404(self, client):
        response = client.get(f"/conflicts/{uuid.uuid4()}")
        assert response.status_code == 404

    def test_expired_listing_is_empty_without_deadlines(self, client, conflict_id):
        assert client.get("/conflicts/expired").json() == []


class TestStandEndpoints:
    """Test stand requests, stand conflicts and history."""

    def test_stand_flow(self, client, event_id, make_company):
        stand_id = str(uuid.uuid4())
        veteran = make_company("Veteran", participations=4, rating=4.0, first_year=2020)
        newcomer = make_company("Newcomer")
        for company in (veteran, newcomer):
            response = client.post(
                f"/events/{event_id}/assignment-requests",
                json={"company_id": str(company.id), "stand_id": stand_id},
            )
            assert response.status_code == 201

        candidates = client.get(f"/events/{event_id}/stand-conflicts/candidates").json()
        assert len(candidates) == 1
        assert candidates[0]["companies"][0]["name"] == "Veteran"

        opened = client.post(f"/events/{event_id}/stand-conflicts/open").json()
        assert opened["skipped_stand_ids"] == []
        conflict_id = opened["created"][0]["id"]
        assert opened["created"][0]["conflict_type"] == "stand"

        organizer = str(uuid.uuid4())
        client.post(f"/conflicts/{conflict_id}/transitions", json={"action": "assign", "reviewer_id": organizer})
        resolved = client.post(
            f"/conflicts/{conflict_id}/transitions",
            json={
                "action": "resolve",
                "resolution_action": "priority",
                "description": "Higher score",
                "resolver_id": organizer,
                "assigned_company": str(veteran.id),
            },
        )
        assert resolved.status_code == 200
        assert resolved.json()["assigned_company"] == str(veteran.id)

        history = client.get(f"/events/{event_id}/history", params={"conflict_id": conflict_id}).json()
        assert len(history) == 1

        reverted = client.post(f"/history/{history[0]['id']}/revert", json={"reason": "Appeal upheld"})
        again = client.post(f"/history/{history[0]['id']}/revert", json={"reason": "Appeal upheld"})
        assert reverted.status_code == 201
        assert reverted.json()["reverts_entry_id"] == history[0]["id"]
        assert again.status_code == 409

    def test_duplicate_request_is_422(self, client, event_id, make_company):
        company = make_company()
        body = {"company_id": str(company.id), "stand_id": str(uuid.uuid4())}
        client.post(f"/events/{event_id}/assignment-requests", json=body)

        response = client.post(f"/events/{event_id}/assignment-requests", json=body)

        assert response.status_code == 422

    def test_priority_score(self, client, make_company):
        company = make_company(participations=3, rating=4.2, first_year=2022)
        response = client.get(f"/companies/{company.id}/priority-score")
        assert response.status_code == 200
        assert 0 <= response.json()["score"] <= 100

    def test_unknown_company_score(self, client):
        assert client.get(f"/companies/{uuid.uuid4()}/priority-score").status_code == 404


class TestSchedulingEndpoints:
    def test_slots(self, client, event_id, make_activity):
        make_activity("Booked", at(9), at(10))

        response = client.post(f"/events/{event_id}/slots", json={"start_date": "2026-03-02", "end_date": "2026-03-02"})

        assert response.status_code == 200
        assert response.json()["total"] == 9
        assert response.json()["occupied"] == 1

    def test_bad_range_is_422(self, client, event_id):
        response = client.post(f"/events/{event_id}/slots", json={"start_date": "2026-03-06", "end_date": "2026-03-02"})
        assert response.status_code == 422
        assert response.json()["error_type"] == "computation_error"

    def test_auto_schedule(self, client, event_id, make_activity):
        keynote = make_activity("Keynote", activity_type="keynote")

        response = client.post(
            f"/events/{event_id}/auto-schedule",
            json={"start_date": "2026-03-02", "end_date": "2026-03-02"},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["scheduled"][0]["activity_id"] == str(keynote.id)
        assert body["summary"]["scheduled"] == 1

    def test_slot_suggestions(self, client, event_id, make_activity):
        keynote = make_activity("Keynote", activity_type="keynote")

        response = client.post(
            f"/events/{event_id}/activities/{keynote.id}/slot-suggestions",
            json={"start_date": "2026-03-02", "end_date": "2026-03-02", "limit": 3},
        )

        assert response.status_code == 200
        assert len(response.json()) == 3
        assert response.json()[0]["score"] == 150
