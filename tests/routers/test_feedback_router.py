"""Tests for feedback router endpoints."""

from fastapi.testclient import TestClient


def _feedback_json(reviewer: tuple[str, int], reviewee: tuple[str, int], **extra) -> dict:
    data = {
        "feedback_type": "delivery",
        "overall_rating": 5,
        "reviewer": {"actor_type": reviewer[0], "actor_id": reviewer[1]},
        "reviewee": {"actor_type": reviewee[0], "actor_id": reviewee[1]},
    }
    data.update(extra)
    return data


class TestSubmitFeedback:
    def test_submit_published(self, client: TestClient, ngo, volunteer):
        response = client.post(
            "/feedback/",
            json=_feedback_json(
                ("ngo", ngo.id_ngo), ("volunteer", volunteer.id_volunteer), comment="Great"
            ),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["feedback_number"].startswith("FBK-")
        assert data["status"] == "published"

        stats = client.get(f"/actors/volunteer/{volunteer.id_volunteer}/stats").json()
        assert stats["total_ratings"] == 1
        assert stats["average_rating"] == 5.0

    def test_submit_for_moderation(self, client: TestClient, ngo, volunteer):
        response = client.post(
            "/feedback/",
            params={"auto_publish": False},
            json=_feedback_json(("ngo", ngo.id_ngo), ("volunteer", volunteer.id_volunteer)),
        )

        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        published = client.post(f"/feedback/{response.json()['id_feedback']}/publish")
        assert published.status_code == 200
        assert published.json()["status"] == "published"

    def test_self_review(self, client: TestClient, ngo):
        response = client.post(
            "/feedback/",
            json=_feedback_json(("ngo", ngo.id_ngo), ("ngo", ngo.id_ngo)),
        )

        assert response.status_code == 422
        assert response.json()["field"] == "reviewee"

    def test_rating_out_of_range(self, client: TestClient, ngo, volunteer):
        response = client.post(
            "/feedback/",
            json=_feedback_json(
                ("ngo", ngo.id_ngo), ("volunteer", volunteer.id_volunteer), overall_rating=6
            ),
        )

        assert response.status_code == 422

    def test_duplicate_for_same_task(self, client: TestClient, accepted_task, ngo, volunteer):
        body = _feedback_json(
            ("ngo", ngo.id_ngo),
            ("volunteer", volunteer.id_volunteer),
            id_task=accepted_task.id_task,
        )
        client.post("/feedback/", json=body)

        response = client.post("/feedback/", json=body)

        assert response.status_code == 409

    def test_unknown_reviewee(self, client: TestClient, ngo):
        response = client.post(
            "/feedback/", json=_feedback_json(("ngo", ngo.id_ngo), ("volunteer", 999))
        )

        assert response.status_code == 404


class TestFeedbackFollowUp:
    def test_response_and_dispute(self, client: TestClient, ngo, volunteer):
        created = client.post(
            "/feedback/",
            json=_feedback_json(
                ("ngo", ngo.id_ngo), ("volunteer", volunteer.id_volunteer), overall_rating=2
            ),
        ).json()
        volunteer_ref = {"actor_type": "volunteer", "actor_id": volunteer.id_volunteer}

        reply = client.post(
            f"/feedback/{created['id_feedback']}/response",
            json={"responder": volunteer_ref, "comment": "The address was wrong"},
        )
        dispute = client.post(
            f"/feedback/{created['id_feedback']}/dispute",
            json={"disputer": volunteer_ref, "reason": "Address was wrong"},
        )

        assert reply.status_code == 200
        assert reply.json()["response_comment"] == "The address was wrong"
        assert dispute.status_code == 200
        assert dispute.json()["status"] == "disputed"

    def test_only_reviewee_replies(self, client: TestClient, ngo, volunteer):
        created = client.post(
            "/feedback/",
            json=_feedback_json(("ngo", ngo.id_ngo), ("volunteer", volunteer.id_volunteer)),
        ).json()

        response = client.post(
            f"/feedback/{created['id_feedback']}/response",
            json={
                "responder": {"actor_type": "ngo", "actor_id": ngo.id_ngo},
                "comment": "Me again",
            },
        )

        assert response.status_code == 403

    def test_moderation_hides(self, client: TestClient, ngo, volunteer):
        created = client.post(
            "/feedback/",
            json=_feedback_json(("ngo", ngo.id_ngo), ("volunteer", volunteer.id_volunteer)),
        ).json()

        response = client.post(
            f"/feedback/{created['id_feedback']}/moderation",
            json={"moderation_status": "flagged", "note": "Spam"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "hidden"
        assert response.json()["counted_in_stats"] is False

    def test_unknown_feedback(self, client: TestClient):
        response = client.get("/feedback/999")

        assert response.status_code == 404
