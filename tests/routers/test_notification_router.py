"""Tests for notification router endpoints."""

from fastapi.testclient import TestClient


class TestNotificationFeed:
    def test_feed_and_unread_count(self, client: TestClient, make_donation, donor):
        donation = make_donation()

        feed = client.get(f"/notifications/donor/{donor.id_donor}")
        count = client.get(f"/notifications/donor/{donor.id_donor}/unread-count")

        assert feed.status_code == 200
        assert feed.json()[0]["entity_id"] == donation.id_donation
        assert feed.json()[0]["new_status"] == "available"
        assert count.json() == {"unread_count": 1}

    def test_mark_read(self, client: TestClient, make_donation, donor):
        make_donation()
        feed = client.get(f"/notifications/donor/{donor.id_donor}").json()

        response = client.patch(
            f"/notifications/donor/{donor.id_donor}/mark-read",
            json={"notification_ids": [n["id_notification"] for n in feed]},
        )

        assert response.status_code == 200
        assert response.json() == {"marked_count": 1}
        unread = client.get(
            f"/notifications/donor/{donor.id_donor}", params={"unread_only": True}
        )
        assert unread.json() == []

    def test_mark_read_needs_ids(self, client: TestClient, donor):
        response = client.patch(
            f"/notifications/donor/{donor.id_donor}/mark-read",
            json={"notification_ids": []},
        )

        assert response.status_code == 422

    def test_unknown_actor(self, client: TestClient):
        response = client.get("/notifications/volunteer/999")

        assert response.status_code == 404
