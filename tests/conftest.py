from datetime import datetime, timezone

import pytest

from pharmacare import FakeMessenger, InMemoryStore
from shared.contracts.enums import ChannelType, ReminderStatus, ReminderType
from shared.contracts.models import (
    MedicationRecord,
    PatientMedicationRecord,
    PatientRecord,
    ProfileRecord,
    ReminderRecord,
)

START = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def pharmacist(store: InMemoryStore) -> ProfileRecord:
    return store.add_profile(ProfileRecord(full_name="Efua Mensah", pharmacy_name="Ridge Pharmacy"))


@pytest.fixture
def patient(store: InMemoryStore, pharmacist: ProfileRecord) -> PatientRecord:
    return store.add_patient(
        PatientRecord(
            full_name="Kwame Boateng",
            phone="+233201112233",
            pharmacist_id=pharmacist.id,
            consent_given=True,
        )
    )


@pytest.fixture
def amoxicillin() -> MedicationRecord:
    return MedicationRecord(
        name="Amoxicillin",
        standard_dosage="500mg",
        dosage_frequency_hours=8,
        treatment_duration_days=3,
        follow_up_day=4,
    )


@pytest.fixture
def prescribe(store: InMemoryStore, patient: PatientRecord, pharmacist: ProfileRecord):
    def _prescribe(medication: MedicationRecord, start: datetime = START, custom_dosage=None):
        if medication.id not in store.medications:
            store.add_medication(medication)
        return store.add_patient_medication(
            PatientMedicationRecord(
                patient_id=patient.id,
                medication_id=medication.id,
                prescribed_by=pharmacist.id,
                quantity="21 capsules",
                custom_dosage=custom_dosage,
                start_date=start,
            )
        )

    return _prescribe


@pytest.fixture
def add_reminder(store: InMemoryStore):
    def _add(
        prescription: PatientMedicationRecord,
        scheduled_at: datetime,
        status: ReminderStatus = ReminderStatus.PENDING,
        reminder_type: ReminderType = ReminderType.DOSE,
        channel: ChannelType = ChannelType.SMS,
    ) -> ReminderRecord:
        reminder = ReminderRecord(
            patient_id=prescription.patient_id,
            patient_medication_id=prescription.id,
            reminder_type=reminder_type,
            delivery_channel=channel,
            message="Time to take your Amoxicillin. Dosage: 500mg",
            scheduled_at=scheduled_at,
            status=status,
        )
        store.insert_reminders([reminder])
        return reminder

    return _add
