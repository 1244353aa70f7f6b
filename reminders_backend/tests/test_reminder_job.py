from datetime import date

import pytest

from src.reminder_api.errors import UpstreamFetchError, UpstreamWriteError
from src.reminder_api.jobs import preview_reminders, run_reminder_job
from src.reminder_api.repositories import InMemoryRepository

TODAY = date(2024, 6, 10)


def seed(repo, assignment_id, due_date, status="assigned", email=None, title="Module"):
    repo.add_assignment(
        {
            "id": assignment_id,
            "due_date": due_date,
            "status": status,
            "assigned_to": f"user-{assignment_id}",
            "module": {"title": title},
            "user": {"email": email or f"{assignment_id}@example.com", "first_name": "A", "last_name": "B"},
        }
    )


class BrokenSource(InMemoryRepository):
    def list_open_assignments(self):
        raise ConnectionError("database unreachable")


class RejectingSink(InMemoryRepository):
    def insert_many(self, rows):
        raise RuntimeError("insert rejected")


class TestRunReminderJob:
    def test_records_one_row_per_decision(self):
        repo = InMemoryRepository()
        seed(repo, "X", "2024-06-13", status="in_progress", title="Lockout Tagout")
        seed(repo, "Y", "2024-06-04")
        seed(repo, "Z", "2024-06-05")
        seed(repo, "done", "2024-06-13", status="completed")

        result = run_reminder_job(repo, repo, today=TODAY)

        assert result.processed == 2
        rows, total = repo.list()
        assert total == 2
        by_id = {r["entity_id"]: r for r in rows}
        assert set(by_id) == {"X", "Y"}
        x = by_id["X"]
        assert x["actor_user_id"] is None
        assert x["action"] == "reminder"
        assert x["entity"] == "assignment"
        assert x["payload"] == {
            "reason": "3 days before due",
            "email": "X@example.com",
            "module": "Lockout Tagout",
            "due_date": "2024-06-13",
        }
        assert by_id["Y"]["payload"]["reason"] == "overdue +6 days"

    def test_nothing_due_writes_nothing(self):
        repo = InMemoryRepository()
        seed(repo, "far", "2024-07-30")

        result = run_reminder_job(repo, repo, today=TODAY)

        assert result.processed == 0
        assert repo.list() == ([], 0)

    def test_malformed_rows_do_not_block_the_batch(self):
        repo = InMemoryRepository()
        seed(repo, "bad", "next tuesday")
        seed(repo, "good", "2024-06-11")

        result = run_reminder_job(repo, repo, today=TODAY)

        assert result.processed == 1
        rows, _ = repo.list()
        assert rows[0]["entity_id"] == "good"
        assert rows[0]["payload"]["reason"] == "1 days before due"

    def test_rerun_on_same_day_records_again(self):
        repo = InMemoryRepository()
        seed(repo, "A", "2024-06-13")

        run_reminder_job(repo, repo, today=TODAY)
        run_reminder_job(repo, repo, today=TODAY)

        _, total = repo.list()
        assert total == 2

    def test_defaults_to_today_in_configured_timezone(self, monkeypatch):
        monkeypatch.setenv("REMINDER_TIMEZONE", "UTC")
        monkeypatch.setattr("src.reminder_api.jobs.current_date", lambda tz_name: TODAY)
        repo = InMemoryRepository()
        seed(repo, "A", "2024-06-08")

        result = run_reminder_job(repo, repo)

        assert result.processed == 1
        rows, _ = repo.list()
        assert rows[0]["payload"]["reason"] == "overdue +2 days"


class TestRunReminderJobFailures:
    def test_fetch_failure_aborts_without_writing(self):
        source = BrokenSource()
        sink = InMemoryRepository()

        with pytest.raises(UpstreamFetchError):
            run_reminder_job(source, sink, today=TODAY)

        assert sink.list() == ([], 0)

    def test_write_failure_is_reported(self):
        repo = RejectingSink()
        seed(repo, "A", "2024-06-13")

        with pytest.raises(UpstreamWriteError) as exc_info:
            run_reminder_job(repo, repo, today=TODAY)

        assert "1 reminder decisions" in str(exc_info.value)

    def test_write_failure_not_raised_when_nothing_is_due(self):
        repo = RejectingSink()
        seed(repo, "A", "2024-08-01")

        assert run_reminder_job(repo, repo, today=TODAY).processed == 0


class TestPreview:
    def test_preview_does_not_write(self):
        repo = InMemoryRepository()
        seed(repo, "A", "2024-06-13")

        decisions = preview_reminders(repo, TODAY)

        assert [d.reason for d in decisions] == ["3 days before due"]
        assert repo.list() == ([], 0)

    def test_preview_fetch_failure(self):
        with pytest.raises(UpstreamFetchError):
            preview_reminders(BrokenSource(), TODAY)
