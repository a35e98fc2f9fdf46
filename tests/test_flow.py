from datetime import timedelta

import pytest

from pharmacare import (
    ConsentRequiredError,
    InvalidTransitionError,
    PharmaCareFlow,
    RecordNotFoundError,
)
from shared.contracts.enums import FollowUpStatus, ReminderStatus, ReminderType
from shared.contracts.models import MedicationRecord

from conftest import START


@pytest.fixture
def flow(store, messenger):
    return PharmaCareFlow(store=store, messenger=messenger)


def _register(flow, pharmacist, medication, **overrides):
    fields = dict(
        pharmacist_id=pharmacist.id,
        full_name="Abena Owusu",
        phone="+233209998877",
        medication_id=medication.id,
        quantity="21 capsules",
        consent_given=True,
        start_date=START,
    )
    fields.update(overrides)
    return flow.register_patient(**fields)


def test_registration_creates_patient_prescription_and_schedule(flow, store, pharmacist, amoxicillin):
    store.add_medication(amoxicillin)

    registration = _register(flow, pharmacist, amoxicillin, custom_dosage="1 capsule")

    assert store.patients[registration.patient.id].consent_given is True
    assert registration.prescription.end_date == START + timedelta(days=3)
    assert registration.schedule.reminders_scheduled == 21
    assert len(store.follow_ups) == 1
    doses = [r for r in store.reminders.values() if r.reminder_type == ReminderType.DOSE]
    assert all(r.message.endswith("Dosage: 1 capsule") for r in doses)


def test_registration_requires_consent(flow, store, pharmacist, amoxicillin):
    store.add_medication(amoxicillin)

    with pytest.raises(ConsentRequiredError):
        _register(flow, pharmacist, amoxicillin, consent_given=False)
    assert store.patients == {}


def test_registration_with_unknown_medication_creates_nothing(flow, store, pharmacist, amoxicillin):
    with pytest.raises(RecordNotFoundError):
        _register(flow, pharmacist, amoxicillin)
    assert store.patients == {}
    assert store.reminders == {}


def test_follow_up_completion_is_one_way(flow, store, amoxicillin, prescribe):
    follow_up = flow.schedule_reminders(prescribe(amoxicillin).id).follow_up
    contacted = START + timedelta(days=4, hours=2)

    done = flow.complete_follow_up(follow_up.id, outcome="adherent", notes="finished course", contacted_at=contacted)

    assert done.status == FollowUpStatus.COMPLETED
    assert done.contacted_at == contacted
    assert store.follow_ups[follow_up.id].notes == "finished course"
    with pytest.raises(InvalidTransitionError):
        flow.complete_follow_up(follow_up.id, outcome="adherent")


def test_dashboard_rates(flow, store, pharmacist, amoxicillin, prescribe, add_reminder):
    prescription = prescribe(amoxicillin)
    follow_up = flow.schedule_reminders(prescription.id).follow_up
    store.reminders.clear()
    add_reminder(prescription, START, status=ReminderStatus.SENT)
    add_reminder(prescription, START, status=ReminderStatus.SENT)
    add_reminder(prescription, START, status=ReminderStatus.SENT)
    add_reminder(prescription, START, status=ReminderStatus.ACKNOWLEDGED)
    add_reminder(prescription, START, status=ReminderStatus.PENDING)

    before = flow.build_dashboard(pharmacist.id, now=START + timedelta(days=5))
    flow.complete_follow_up(follow_up.id, outcome="adherent")
    after = flow.build_dashboard(pharmacist.id, now=START + timedelta(days=5))

    assert before.total_patients == 1
    assert before.active_reminders == 1
    assert before.reminders_sent == 4
    assert before.reminders_failed == 0
    assert before.delivery_rate == 1.0
    assert before.adherence_rate == 0.75
    assert before.follow_ups_due == 1
    assert before.follow_up_completion_rate == 0.0
    assert after.follow_ups_due == 0
    assert after.follow_up_completion_rate == 1.0


def test_flow_runs_check_then_send(flow, store, messenger, amoxicillin, prescribe, add_reminder):
    add_reminder(prescribe(amoxicillin), START, status=ReminderStatus.SENT)
    now = START + timedelta(hours=3)

    alerts = flow.check_adherence(now)
    outcomes = flow.send_reminders(now)

    assert len(alerts) == 2
    assert [o.status for o in outcomes] == [ReminderStatus.SENT, ReminderStatus.SENT]
    assert len(messenger.sent) == 2


def test_duration_override_changes_end_date_only(flow, store, pharmacist, amoxicillin):
    store.add_medication(amoxicillin)

    registration = _register(flow, pharmacist, amoxicillin, duration_days=14)

    assert registration.prescription.end_date == START + timedelta(days=14)
    assert registration.schedule.reminders_scheduled == 21


def test_duration_override_must_be_positive(flow, store, pharmacist, amoxicillin):
    store.add_medication(amoxicillin)

    with pytest.raises(ValueError):
        _register(flow, pharmacist, amoxicillin, duration_days=0)
    assert store.patients == {}


def test_medication_catalog_sorted_by_name(flow, store):
    for name in ("Zinc", "Amlodipine", "Metformin"):
        store.add_medication(MedicationRecord(name=name, treatment_duration_days=30, follow_up_day=28))

    assert [m.name for m in flow.list_medications()] == ["Amlodipine", "Metformin", "Zinc"]
