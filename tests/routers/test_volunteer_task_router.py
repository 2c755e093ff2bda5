"""Tests for volunteer task router endpoints."""

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session

from app.utils.clock import utcnow


class TestTaskStatus:
    """Test the PATCH /tasks/{task_id}/status endpoint."""

    def test_accept_opens_pickup_event(
        self, client: TestClient, approved_claim, make_task, volunteer
    ):
        task = make_task(approved_claim)

        response = client.patch(
            f"/tasks/{task.id_task}/status",
            json={"status": "accepted", "id_volunteer": volunteer.id_volunteer},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        assert response.json()["accepted_at"] is not None

        event = client.get(f"/tasks/{task.id_task}/pickup-event")
        assert event.status_code == 200
        assert event.json()["event_number"].startswith("PKP-")
        assert event.json()["status"] == "scheduled"

    def test_decline_needs_reason(self, client: TestClient, approved_claim, make_task):
        task = make_task(approved_claim)

        response = client.patch(f"/tasks/{task.id_task}/status", json={"status": "declined"})

        assert response.status_code == 422
        assert response.json()["field"] == "reason"

    def test_decline(self, client: TestClient, approved_claim, make_task):
        task = make_task(approved_claim)

        response = client.patch(
            f"/tasks/{task.id_task}/status",
            json={"status": "declined", "reason": "Car broke down"},
        )

        assert response.status_code == 200
        assert response.json()["decline_reason"] == "Car broke down"

    def test_other_volunteer_forbidden(
        self, client: TestClient, approved_claim, make_task, other_volunteer
    ):
        task = make_task(approved_claim)

        response = client.patch(
            f"/tasks/{task.id_task}/status",
            json={"status": "accepted", "id_volunteer": other_volunteer.id_volunteer},
        )

        assert response.status_code == 403

    def test_skipping_ahead_rejected(self, client: TestClient, approved_claim, make_task):
        task = make_task(approved_claim)

        response = client.patch(f"/tasks/{task.id_task}/status", json={"status": "completed"})

        assert response.status_code == 409
        data = response.json()
        assert data["current_status"] == "assigned"
        assert data["requested_status"] == "completed"

    def test_unknown_task(self, client: TestClient):
        response = client.patch("/tasks/999/status", json={"status": "accepted"})

        assert response.status_code == 404

    def test_no_event_before_acceptance(
        self, client: TestClient, approved_claim, make_task
    ):
        task = make_task(approved_claim)

        response = client.get(f"/tasks/{task.id_task}/pickup-event")

        assert response.status_code == 404


class TestTaskLogs:
    def test_evidence_issue_and_communication(self, client: TestClient, accepted_task):
        base = f"/tasks/{accepted_task.id_task}"

        evidence = client.post(
            f"{base}/evidence",
            json={"evidence_type": "pickup_photo", "url": "https://cdn.example.com/p/1.jpg"},
        )
        issue = client.post(
            f"{base}/issues",
            json={"issue_type": "traffic", "description": "Road works on the bridge"},
        )
        communication = client.post(
            f"{base}/communications",
            json={"channel": "call", "with_party": "donor", "summary": "Running late"},
        )

        assert evidence.status_code == 200
        assert issue.status_code == 200
        assert communication.status_code == 200
        data = communication.json()
        assert len(data["evidence"]) == 1
        assert data["issues"][0]["issue_type"] == "traffic"
        assert data["communication_log"][0]["with_party"] == "donor"

    def test_delay(self, client: TestClient, accepted_task):
        response = client.post(
            f"/tasks/{accepted_task.id_task}/delays",
            json={"minutes": 15, "reason": "Traffic"},
        )

        assert response.status_code == 200
        assert response.json()["delays"][0]["minutes"] == 15


class TestReschedule:
    def test_reschedule(self, client: TestClient, accepted_task):
        new_time = utcnow() + timedelta(hours=3)

        response = client.post(
            f"/tasks/{accepted_task.id_task}/reschedule",
            json={"new_time": new_time.isoformat(), "reason": "Donor asked for later"},
        )

        assert response.status_code == 200
        assert len(response.json()["reschedule_history"]) == 1

    def test_past_time_rejected(self, client: TestClient, accepted_task):
        past = utcnow() - timedelta(hours=1)

        response = client.post(
            f"/tasks/{accepted_task.id_task}/reschedule",
            json={"new_time": past.isoformat(), "reason": "Oops"},
        )

        assert response.status_code == 422


class TestTaskListings:
    def test_by_volunteer(self, client: TestClient, accepted_task, volunteer):
        response = client.get(
            f"/tasks/by-volunteer/{volunteer.id_volunteer}", params={"status": "accepted"}
        )

        assert response.status_code == 200
        assert [t["id_task"] for t in response.json()] == [accepted_task.id_task]

    def test_overdue(
        self, client: TestClient, session: Session, approved_claim, make_task, now
    ):
        task = make_task(approved_claim)
        task.pickup_scheduled_time = now - timedelta(minutes=30)
        session.add(task)
        session.commit()

        response = client.get("/tasks/overdue")

        assert response.status_code == 200
        overdue = response.json()
        assert [t["id_task"] for t in overdue] == [task.id_task]
        assert overdue[0]["is_overdue"] is True
