import os
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from src.reminder_api.main import app  # noqa: E402
from src.reminder_api.repositories import (  # noqa: E402
    InMemoryRepository,
    get_assignment_repository,
    get_audit_log_repository,
)

client = TestClient(app)

TODAY = date(2024, 6, 10)


class FailingRepository(InMemoryRepository):
    def __init__(self, fail_on):
        super().__init__()
        self._fail_on = fail_on

    def list_open_assignments(self):
        if self._fail_on == "fetch":
            raise ConnectionError("connection refused")
        return super().list_open_assignments()

    def insert_many(self, rows):
        if self._fail_on == "write":
            raise RuntimeError("insert rejected")
        return super().insert_many(rows)


def seed_scenario(repo):
    for aid, due, status in [
        ("X", "2024-06-13", "in_progress"),
        ("Y", "2024-06-04", "assigned"),
        ("Z", "2024-06-05", "assigned"),
        ("W", "2024-06-13", "completed"),
    ]:
        repo.add_assignment(
            {
                "id": aid,
                "due_date": due,
                "status": status,
                "assigned_to": f"user-{aid}",
                "module": {"title": f"Module {aid}"},
                "user": {"email": f"{aid.lower()}@example.com", "first_name": "Kim", "last_name": "Ng"},
            }
        )


@pytest.fixture
def repo(monkeypatch):
    store = InMemoryRepository()
    app.dependency_overrides[get_assignment_repository] = lambda: store
    app.dependency_overrides[get_audit_log_repository] = lambda: store
    monkeypatch.setattr("src.reminder_api.jobs.current_date", lambda tz_name: TODAY)
    yield store
    app.dependency_overrides.clear()


def use_repository(store):
    app.dependency_overrides[get_assignment_repository] = lambda: store
    app.dependency_overrides[get_audit_log_repository] = lambda: store


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestRunEndpoint:
    def test_run_returns_processed_count(self, repo):
        seed_scenario(repo)

        res = client.post("/api/v1/reminders/run")

        assert res.status_code == 200
        assert res.json() == {"processed": 2}
        rows, total = repo.list()
        assert total == 2
        assert {r["payload"]["reason"] for r in rows} == {"3 days before due", "overdue +6 days"}

    def test_run_with_nothing_due(self, repo):
        res = client.post("/api/v1/reminders/run")
        assert res.status_code == 200
        assert res.json() == {"processed": 0}

    def test_run_rejects_get(self, repo):
        res = client.get("/api/v1/reminders/run")
        assert res.status_code == 405

    def test_fetch_failure_returns_500(self, repo):
        use_repository(FailingRepository("fetch"))

        res = client.post("/api/v1/reminders/run")

        assert res.status_code == 500
        body = res.json()
        assert body["error"] == "UpstreamFetchError"
        assert "connection refused" in body["message"]

    def test_write_failure_returns_500_and_records_nothing(self, repo):
        failing = FailingRepository("write")
        seed_scenario(failing)
        use_repository(failing)

        res = client.post("/api/v1/reminders/run")

        assert res.status_code == 500
        assert res.json()["error"] == "UpstreamWriteError"
        assert failing.list() == ([], 0)


class TestTriggerAuth:
    def test_token_required_when_enabled(self, repo, monkeypatch):
        monkeypatch.setenv("ENABLE_TRIGGER_AUTH", "true")
        monkeypatch.setenv("TRIGGER_TOKEN", "s3cret")

        missing = client.post("/api/v1/reminders/run")
        wrong = client.post("/api/v1/reminders/run", headers={"Authorization": "Bearer nope"})
        ok = client.post("/api/v1/reminders/run", headers={"Authorization": "Bearer s3cret"})

        assert missing.status_code == 401
        assert missing.headers["www-authenticate"] == "Bearer"
        assert wrong.status_code == 401
        assert wrong.json()["detail"] == "Invalid authentication credentials"
        assert ok.status_code == 200

    def test_enabled_without_configured_token(self, repo, monkeypatch):
        monkeypatch.setenv("ENABLE_TRIGGER_AUTH", "true")
        monkeypatch.delenv("TRIGGER_TOKEN", raising=False)

        res = client.post("/api/v1/reminders/run", headers={"Authorization": "Bearer anything"})

        assert res.status_code == 401
        assert res.json()["detail"] == "Server authentication not configured"


class TestPreviewEndpoint:
    def test_preview_for_explicit_day(self, repo):
        seed_scenario(repo)

        res = client.get("/api/v1/reminders/preview?today=2024-06-11")

        assert res.status_code == 200
        body = res.json()
        assert body["today"] == "2024-06-11"
        # X is now 2 days out, Y 7 days overdue, Z 6 days overdue
        assert [(d["assignment_id"], d["reason"]) for d in body["items"]] == [("Z", "overdue +6 days")]
        assert body["items"][0]["snapshot"] == {
            "due_date": "2024-06-05",
            "email": "z@example.com",
            "module": "Module Z",
        }
        assert repo.list() == ([], 0)

    def test_preview_defaults_to_today(self, repo):
        seed_scenario(repo)

        res = client.get("/api/v1/reminders/preview")

        assert res.status_code == 200
        body = res.json()
        assert body["today"] == "2024-06-10"
        assert [d["assignment_id"] for d in body["items"]] == ["X", "Y"]

    def test_preview_invalid_day(self, repo):
        res = client.get("/api/v1/reminders/preview?today=tomorrow")
        assert res.status_code == 400


class TestAuditLogEndpoint:
    def test_lists_recorded_reminders(self, repo):
        seed_scenario(repo)
        client.post("/api/v1/reminders/run")

        res = client.get("/api/v1/audit-logs/?action=reminder&limit=10")

        assert res.status_code == 200
        page = res.json()
        assert page["total"] == 2
        assert page["limit"] == 10
        assert page["offset"] == 0
        for item in page["items"]:
            assert item["entity"] == "assignment"
            assert item["actor_user_id"] is None
            datetime.fromisoformat(item["created_at"])

    def test_search_and_entity_filters(self, repo):
        seed_scenario(repo)
        client.post("/api/v1/reminders/run")

        res = client.get("/api/v1/audit-logs/?q=y@example&limit=10")
        assert [i["entity_id"] for i in res.json()["items"]] == ["Y"]

        res = client.get("/api/v1/audit-logs/?entity_id=X")
        assert res.json()["total"] == 1

    def test_pagination(self, repo):
        repo.insert_many(
            [
                {"actor_user_id": None, "action": "reminder", "entity": "assignment", "entity_id": f"a{i}", "payload": {}}
                for i in range(5)
            ]
        )

        page = client.get("/api/v1/audit-logs/?limit=2&offset=4").json()

        assert page["total"] == 5
        assert len(page["items"]) == 1
        assert page["items"][0]["entity_id"] == "a0"

    def test_inverted_date_range(self, repo):
        res = client.get("/api/v1/audit-logs/?date_from=2024-06-10&date_to=2024-06-01")
        assert res.status_code == 400
        assert res.json()["detail"] == "date_from must not be after date_to"

    def test_validation_error_format(self, repo):
        res = client.get("/api/v1/audit-logs/?limit=-1")
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)
