from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from services.reminders.main import get_messenger, get_store
from services.scheduler.main import app
from shared.contracts.enums import ReminderStatus, ReminderType


@pytest.fixture
def client(store, messenger):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_messenger] = lambda: messenger
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_adherence_job_reports_alerts(client, store, amoxicillin, prescribe, add_reminder):
    add_reminder(prescribe(amoxicillin), datetime.now(timezone.utc) - timedelta(hours=5), status=ReminderStatus.SENT)

    body = client.post("/jobs/check-adherence").json()

    assert body["job"] == "check-adherence"
    assert body["adherence_reminders_created"] == 2
    assert body["reminders_processed"] == 0


def test_dispatch_job_counts_failures(client, messenger, amoxicillin, prescribe, add_reminder, patient):
    add_reminder(prescribe(amoxicillin), datetime.now(timezone.utc) - timedelta(minutes=2))
    messenger.failing_numbers.add(patient.phone)

    body = client.post("/jobs/send-reminders").json()

    assert body["reminders_processed"] == 1
    assert body["reminders_failed"] == 1


def test_tick_delivers_alerts_created_in_the_same_run(client, store, messenger, amoxicillin, prescribe, add_reminder):
    add_reminder(prescribe(amoxicillin), datetime.now(timezone.utc) - timedelta(hours=4), status=ReminderStatus.SENT)

    body = client.post("/jobs/tick").json()

    assert body["adherence_reminders_created"] == 2
    assert body["reminders_processed"] == 2
    assert body["reminders_failed"] == 0
    alerts = [r for r in store.reminders.values() if r.reminder_type == ReminderType.ADHERENCE]
    assert {r.status for r in alerts} == {ReminderStatus.SENT}
    assert len(messenger.sent) == 2


def test_job_error_is_reported_as_json(client, store, amoxicillin, prescribe, add_reminder):
    reminder = add_reminder(
        prescribe(amoxicillin), datetime.now(timezone.utc) - timedelta(hours=4), status=ReminderStatus.SENT
    )
    del store.patient_medications[reminder.patient_medication_id]

    res = client.post("/jobs/check-adherence")

    assert res.status_code == 500
    assert "patient_medications record not found" in res.json()["error"]


def test_health():
    assert TestClient(app).get("/health").json() == {"status": "ok", "service": "scheduler"}


def test_unexpected_job_failure_is_json_500(store, messenger, monkeypatch):
    def unreachable(cutoff):
        raise RuntimeError("connection to reminder store lost")

    monkeypatch.setattr(store, "sent_dose_reminders_before", unreachable)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_messenger] = lambda: messenger
    try:
        res = TestClient(app, raise_server_exceptions=False).post("/jobs/check-adherence")
    finally:
        app.dependency_overrides.clear()

    assert res.status_code == 500
    assert res.json() == {"error": "connection to reminder store lost"}
