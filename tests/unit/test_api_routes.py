"""API tests through FastAPI's TestClient

Covers signup/login, journals and likes, the mailbox, health checks,
error mapping and validation responses.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from starlit.api.app import create_app
from starlit.observability.telemetry import get_counter


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


def _signup(client, email="nova@example.com", nickname="Nova") -> dict:
    response = client.post(
        "/api/users/signup",
        json={"nickname": nickname, "email": email, "password": "stardust", "age": 29},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _mails(client, user_id) -> list[dict]:
    return client.get(f"/api/mail/{user_id}").json()["mails"]


class TestUsers:
    def test_signup(self, client):
        """Test that signup creates the account and its welcome mails"""
        body = _signup(client, email="  Nova@Example.com ")

        user = body["user"]
        assert user["email"] == "nova@example.com"
        assert user["nickname"] == "Nova"
        assert "password" not in user
        assert "version" not in user
        assert body["mailsGenerated"] >= 3

        types = [m["mailType"] for m in _mails(client, user["id"])]
        assert {"welcome", "reward", "story"} <= set(types)

    def test_duplicate_signup(self, client):
        _signup(client)
        response = client.post(
            "/api/users/signup",
            json={"nickname": "Other", "email": "nova@example.com", "password": "x"},
        )
        assert response.status_code == 409
        assert response.json() == {"detail": "Email is already registered."}

    def test_signup_validation(self, client):
        """Test that bad fields are named without echoing the validation rules"""
        response = client.post(
            "/api/users/signup",
            json={"nickname": "   ", "email": "not-an-email", "password": "x"},
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error_count"] == 2
        assert sorted(body["invalid_fields"]) == ["email", "nickname"]
        assert get_counter("api.validation_errors") == 1

    def test_login(self, client):
        """Test that login runs the daily automation and reports the coins earned"""
        user_id = _signup(client)["user"]["id"]

        response = client.post(
            "/api/users/login", json={"email": "NOVA@example.com", "password": "stardust"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["coinsEarned"] == 10
        assert body["streakBonus"] == 0
        assert body["mailsGenerated"] == len(body["mails"])
        assert body["user"]["id"] == user_id
        assert body["user"]["current_streak"] == 1

        again = client.post(
            "/api/users/login", json={"email": "nova@example.com", "password": "stardust"}
        ).json()
        assert again["coinsEarned"] == 0

    def test_login_failures(self, client):
        _signup(client)

        wrong = client.post(
            "/api/users/login", json={"email": "nova@example.com", "password": "nope"}
        )
        assert wrong.status_code == 401
        assert wrong.json() == {"detail": "Incorrect password."}

        missing = client.post(
            "/api/users/login", json={"email": "sol@example.com", "password": "stardust"}
        )
        assert missing.status_code == 404
        assert missing.json() == {"detail": "User not found."}
        assert get_counter("api.errors.404") == 1

    def test_get_user(self, client):
        user_id = _signup(client)["user"]["id"]

        assert client.get(f"/api/users/{user_id}").json()["user"]["id"] == user_id
        assert client.get("/api/users/ghost").status_code == 404

    def test_assign_story(self, client):
        user_id = _signup(client)["user"]["id"]

        response = client.post(f"/api/users/{user_id}/story", json={"storyName": "Moonwake"})
        assert response.status_code == 200
        progress = response.json()["user"]["story_progress"]
        assert progress["story_name"] == "Moonwake"
        assert progress["current_chapter"] == 1

        unknown = client.post(f"/api/users/{user_id}/story", json={"storyName": "Nope"})
        assert unknown.status_code == 404
        assert unknown.json() == {"detail": "Story not found."}


class TestJournals:
    def test_create_journal(self, client):
        user_id = _signup(client)["user"]["id"]

        response = client.post(
            "/api/journals",
            json={
                "userId": user_id,
                "title": "First Light",
                "content": "the sky turned gold",
                "mood": "Happy",
                "tags": ["sky"],
            },
        )
        assert response.status_code == 201
        body = response.json()
        assert body["slug"] == "first-light"
        assert body["wordCount"] == 4
        assert body["mood"] == "Happy"
        assert body["collections"] == ["All"]
        assert body["likeCount"] == 0

    def test_invalid_mood(self, client):
        user_id = _signup(client)["user"]["id"]
        response = client.post(
            "/api/journals",
            json={"userId": user_id, "title": "t", "content": "c", "mood": "Ecstatic"},
        )
        assert response.status_code == 422
        assert response.json()["invalid_fields"] == ["mood"]

    def test_public_journal_needs_author(self, client):
        user_id = _signup(client)["user"]["id"]
        response = client.post(
            "/api/journals",
            json={
                "userId": user_id,
                "title": "t",
                "content": "c",
                "mood": "Sad",
                "isPublic": True,
            },
        )
        assert response.status_code == 400
        assert "author_name" in response.json()["detail"]

    def test_unknown_author(self, client):
        response = client.post(
            "/api/journals",
            json={"userId": "ghost", "title": "t", "content": "c", "mood": "Sad"},
        )
        assert response.status_code == 404

    def test_like_and_notification(self, client):
        """Test that the first like notifies the author through their mailbox"""
        author_id = _signup(client)["user"]["id"]
        fan_id = _signup(client, email="fan@example.com", nickname="Fan")["user"]["id"]
        journal_id = client.post(
            "/api/journals",
            json={"userId": author_id, "title": "Harbor", "content": "c", "mood": "Happy"},
        ).json()["id"]

        liked = client.post(f"/api/journals/{journal_id}/like", json={"userId": fan_id})
        assert liked.json() == {"liked": True, "likeCount": 1, "notificationSent": True}

        unliked = client.post(f"/api/journals/{journal_id}/like", json={"userId": fan_id})
        assert unliked.json() == {"liked": False, "likeCount": 0, "notificationSent": False}

        other = [m for m in _mails(client, author_id) if m["mailType"] == "other"]
        assert len(other) == 1
        assert other[0]["metadata"] == {"kind": "like", "journal_id": journal_id, "milestone": 1}

        missing = client.post("/api/journals/nope/like", json={"userId": fan_id})
        assert missing.status_code == 404
        assert missing.json() == {"detail": "Journal not found."}


class TestMailbox:
    def test_list_shape(self, client):
        user_id = _signup(client)["user"]["id"]
        response = client.get(f"/api/mail/{user_id}")

        body = response.json()
        assert body["total"] == len(body["mails"])
        mail = body["mails"][0]
        for key in ("id", "sender", "title", "content", "mailType", "rewardAmount", "date"):
            assert key in mail
        assert mail["read"] is False
        assert mail["rewardClaimed"] is False

    def test_limit_bounds(self, client):
        user_id = _signup(client)["user"]["id"]
        assert len(client.get(f"/api/mail/{user_id}?limit=1").json()["mails"]) == 1
        assert client.get(f"/api/mail/{user_id}?limit=0").status_code == 422

    def test_mark_read(self, client):
        user_id = _signup(client)["user"]["id"]
        other_id = _signup(client, email="other@example.com")["user"]["id"]
        mail_id = _mails(client, user_id)[0]["id"]

        response = client.put(f"/api/mail/{mail_id}/read", json={"userId": user_id})
        assert response.status_code == 200
        assert next(m for m in _mails(client, user_id) if m["id"] == mail_id)["read"] is True

        forbidden = client.put(f"/api/mail/{mail_id}/read", json={"userId": other_id})
        assert forbidden.status_code == 403

        missing = client.put("/api/mail/nope/read", json={"userId": user_id})
        assert missing.status_code == 404

    def test_claim_reward_once(self, client):
        """Test that the signup reward pays out exactly once"""
        user_id = _signup(client)["user"]["id"]
        reward = next(m for m in _mails(client, user_id) if m["mailType"] == "reward")

        response = client.put(f"/api/mail/{reward['id']}/claim-reward", json={"userId": user_id})
        assert response.status_code == 200
        assert response.json() == {"amount": 50, "coins": 50}
        assert get_counter("mail.reward_claimed") == 1

        again = client.put(f"/api/mail/{reward['id']}/claim-reward", json={"userId": user_id})
        assert again.status_code == 400
        assert again.json() == {"detail": "Reward already claimed."}

        assert client.get(f"/api/users/{user_id}").json()["user"]["coins"] == 50

    def test_claim_plain_mail(self, client):
        user_id = _signup(client)["user"]["id"]
        welcome = next(m for m in _mails(client, user_id) if m["mailType"] == "welcome")

        response = client.put(f"/api/mail/{welcome['id']}/claim-reward", json={"userId": user_id})
        assert response.status_code == 400

    def test_delete(self, client):
        user_id = _signup(client)["user"]["id"]
        mails = _mails(client, user_id)

        assert client.delete(f"/api/mail/{mails[0]['id']}").status_code == 200
        assert len(_mails(client, user_id)) == len(mails) - 1
        assert client.delete(f"/api/mail/{mails[0]['id']}").status_code == 404


class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["service"] == "Starlit Journals API"
        assert body["catalogs"] == {"writing_prompts": 1, "stories": 1}

    def test_database_health(self, client):
        body = client.get("/health/db").json()
        assert body["status"] == "healthy"
        assert body["pool"]["pool_size"] >= 1
        assert body["schema_valid"] is True
        assert body["warning"] is None


def test_auth_endpoints_rate_limited(engine):
    """Test that the app wires rate limiting onto login"""
    client = TestClient(create_app(engine, requests_per_minute=2))
    payload = {"email": "nobody@example.com", "password": "x"}

    assert client.post("/api/users/login", json=payload).status_code == 404
    assert client.post("/api/users/login", json=payload).status_code == 404
    assert client.post("/api/users/login", json=payload).status_code == 429
    # Other routes are unaffected
    assert client.get("/health").status_code == 200
