from datetime import timedelta

import pytest

from pharmacare import AdherenceChecker, InMemoryStore, PharmaCareError, describe_threshold
from shared.contracts.enums import ChannelType, ReminderStatus, ReminderType

from conftest import START

NOW = START + timedelta(days=1)


def _alerts(store):
    return [r for r in store.reminders.values() if r.reminder_type == ReminderType.ADHERENCE]


def test_sent_dose_older_than_threshold_is_flagged(store, amoxicillin, prescribe, add_reminder):
    prescription = prescribe(amoxicillin)
    late = add_reminder(prescription, NOW - timedelta(hours=3, seconds=1), status=ReminderStatus.SENT)
    recent = add_reminder(prescription, NOW - timedelta(hours=2), status=ReminderStatus.SENT)

    alerts = AdherenceChecker(store).run(NOW)

    assert len(alerts) == 2
    assert {a.delivery_channel for a in alerts} == {ChannelType.SMS, ChannelType.WHATSAPP}
    assert store.reminders[late.id].status == ReminderStatus.ACKNOWLEDGED
    assert store.reminders[recent.id].status == ReminderStatus.SENT


def test_dose_exactly_at_threshold_counts_as_missed(store, amoxicillin, prescribe, add_reminder):
    prescription = prescribe(amoxicillin)
    add_reminder(prescription, NOW - timedelta(hours=3), status=ReminderStatus.SENT)

    assert len(AdherenceChecker(store).run(NOW)) == 2


def test_alerts_are_pending_now_and_name_the_medication(store, amoxicillin, prescribe, add_reminder):
    prescription = prescribe(amoxicillin)
    missed = add_reminder(prescription, NOW - timedelta(hours=5), status=ReminderStatus.SENT)

    alerts = AdherenceChecker(store).run(NOW)

    for alert in alerts:
        assert alert.status == ReminderStatus.PENDING
        assert alert.scheduled_at == NOW
        assert alert.patient_id == missed.patient_id
        assert alert.patient_medication_id == missed.patient_medication_id
        assert alert.message == "You missed a dose of Amoxicillin 3 hours ago. Please take it as soon as possible."
    assert len(_alerts(store)) == 2


def test_only_sent_dose_reminders_are_considered(store, amoxicillin, prescribe, add_reminder):
    prescription = prescribe(amoxicillin)
    old = NOW - timedelta(hours=10)
    add_reminder(prescription, old, status=ReminderStatus.PENDING)
    add_reminder(prescription, old, status=ReminderStatus.FAILED)
    add_reminder(prescription, old, status=ReminderStatus.ACKNOWLEDGED)
    add_reminder(prescription, old, status=ReminderStatus.SENT, reminder_type=ReminderType.THERAPY_COMPLETION)
    add_reminder(prescription, old, status=ReminderStatus.SENT, reminder_type=ReminderType.ADHERENCE)

    assert AdherenceChecker(store).run(NOW) == []


def test_second_run_creates_nothing(store, amoxicillin, prescribe, add_reminder):
    prescription = prescribe(amoxicillin)
    add_reminder(prescription, NOW - timedelta(hours=4), status=ReminderStatus.SENT)
    add_reminder(prescription, NOW - timedelta(hours=4), status=ReminderStatus.SENT, channel=ChannelType.WHATSAPP)
    checker = AdherenceChecker(store)

    assert len(checker.run(NOW)) == 4
    assert checker.run(NOW + timedelta(minutes=15)) == []
    assert len(_alerts(store)) == 4


def test_failed_alert_insert_leaves_originals_sent(store, amoxicillin, prescribe, add_reminder):
    class BrokenStore(InMemoryStore):
        def insert_reminders(self, reminders):
            raise PharmaCareError("insert rejected")

    prescription = prescribe(amoxicillin)
    missed = add_reminder(prescription, NOW - timedelta(hours=6), status=ReminderStatus.SENT)
    broken = BrokenStore(
        profiles=store.profiles,
        patients=store.patients,
        medications=store.medications,
        patient_medications=store.patient_medications,
        reminders=store.reminders,
    )

    with pytest.raises(PharmaCareError):
        AdherenceChecker(broken).run(NOW)
    assert broken.reminders[missed.id].status == ReminderStatus.SENT


@pytest.mark.parametrize("threshold", [timedelta(0), timedelta(hours=-1)])
def test_threshold_must_be_positive(store, threshold):
    with pytest.raises(ValueError):
        AdherenceChecker(store, threshold=threshold)


def test_custom_threshold_changes_message_hours(store, amoxicillin, prescribe, add_reminder):
    prescription = prescribe(amoxicillin)
    add_reminder(prescription, NOW - timedelta(hours=7), status=ReminderStatus.SENT)

    alerts = AdherenceChecker(store, threshold=timedelta(hours=6)).run(NOW)

    assert "6 hours ago" in alerts[0].message


@pytest.mark.parametrize(
    "threshold, text",
    [
        (timedelta(hours=3), "3 hours"),
        (timedelta(hours=1), "1 hour"),
        (timedelta(minutes=90), "90 minutes"),
        (timedelta(minutes=30), "30 minutes"),
        (timedelta(minutes=1), "1 minute"),
    ],
)
def test_threshold_wording(threshold, text):
    assert describe_threshold(threshold) == text


def test_sub_hour_threshold_reads_in_minutes(store, amoxicillin, prescribe, add_reminder):
    add_reminder(prescribe(amoxicillin), NOW - timedelta(hours=1), status=ReminderStatus.SENT)

    alerts = AdherenceChecker(store, threshold=timedelta(minutes=30)).run(NOW)

    assert "Amoxicillin 30 minutes ago." in alerts[0].message


def test_threshold_must_be_whole_minutes(store):
    with pytest.raises(ValueError):
        AdherenceChecker(store, threshold=timedelta(minutes=2, seconds=30))
