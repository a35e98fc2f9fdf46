from __future__ import annotations

import logging
import math
from fractions import Fraction
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from shared.contracts.enums import ChannelType, FollowUpStatus, ReminderStatus, ReminderType
from shared.contracts.models import (
    FollowUpRecord,
    MedicationRecord,
    PatientMedicationRecord,
    PatientRecord,
    ProfileRecord,
    ReminderRecord,
    as_utc,
)

logger = logging.getLogger(__name__)

MISSED_DOSE_THRESHOLD = timedelta(hours=3)
DISPATCH_BATCH_LIMIT = 100
DOSE_CHANNELS = (ChannelType.SMS, ChannelType.WHATSAPP)
ADHERENCE_CHANNELS = (ChannelType.SMS, ChannelType.WHATSAPP)
DEFAULT_DOSAGE_TEXT = "as prescribed"

DOSE_MESSAGE = "Time to take your {medication}. Dosage: {dosage}"
COMPLETION_MESSAGE = "You have completed Day {day} of your {medication} treatment."
REFILL_MESSAGE = "Time to refill your {medication} prescription. Please contact your pharmacy."
MISSED_DOSE_MESSAGE = "You missed a dose of {medication} {elapsed} ago. Please take it as soon as possible."


class PharmaCareError(Exception):
    """Base class for failures raised by the reminder routines."""


class RecordNotFoundError(PharmaCareError, LookupError):
    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(f"{table} record not found: {record_id}")
        self.table = table
        self.record_id = record_id


class MessagingError(PharmaCareError):
    """The messaging provider refused or never received a message."""


class UnsupportedChannelError(MessagingError):
    pass


class ConsentRequiredError(PharmaCareError):
    pass


class InvalidTransitionError(PharmaCareError):
    pass


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def total_dose_count(medication: MedicationRecord) -> int:
    """Number of dose slots over the whole treatment.

    Zero when either the dosing interval or the duration is unset.
    """
    interval = medication.dosage_frequency_hours
    days = medication.treatment_duration_days
    if not interval or not days:
        return 0
    # Exact division: 7 days at 0.7h is 240 doses, not 241.
    return math.ceil(Fraction(24 * days) / Fraction(str(interval)))


def needs_refill_reminder(medication: MedicationRecord) -> bool:
    return medication.is_chronic and bool(medication.refill_reminder_days)


def expected_reminder_count(medication: MedicationRecord) -> int:
    return (
        len(DOSE_CHANNELS) * total_dose_count(medication)
        + medication.treatment_duration_days
        + (1 if needs_refill_reminder(medication) else 0)
    )


def build_reminder_schedule(
    medication: MedicationRecord,
    prescription: PatientMedicationRecord,
) -> List[ReminderRecord]:
    """Compute every dose, completion and refill reminder for one prescription."""

    start = prescription.start_date

    def reminder(kind: ReminderType, channel: ChannelType, message: str, at: datetime) -> ReminderRecord:
        return ReminderRecord(
            patient_id=prescription.patient_id,
            patient_medication_id=prescription.id,
            reminder_type=kind,
            delivery_channel=channel,
            message=message,
            scheduled_at=at,
        )

    reminders: List[ReminderRecord] = []

    dosage = prescription.custom_dosage or medication.standard_dosage or DEFAULT_DOSAGE_TEXT
    dose_text = DOSE_MESSAGE.format(medication=medication.name, dosage=dosage)
    for index in range(total_dose_count(medication)):
        at = start + timedelta(hours=index * medication.dosage_frequency_hours)
        for channel in DOSE_CHANNELS:
            reminders.append(reminder(ReminderType.DOSE, channel, dose_text, at))

    for day in range(1, medication.treatment_duration_days + 1):
        reminders.append(
            reminder(
                ReminderType.THERAPY_COMPLETION,
                ChannelType.SMS,
                COMPLETION_MESSAGE.format(day=day, medication=medication.name),
                start + timedelta(days=day),
            )
        )

    if needs_refill_reminder(medication):
        lead_days = medication.treatment_duration_days - medication.refill_reminder_days
        reminders.append(
            reminder(
                ReminderType.REFILL,
                ChannelType.SMS,
                REFILL_MESSAGE.format(medication=medication.name),
                start + timedelta(days=lead_days),
            )
        )

    return reminders


def follow_up_date(medication: MedicationRecord, prescription: PatientMedicationRecord) -> date:
    return (prescription.start_date + timedelta(days=medication.follow_up_day)).date()


def is_missed_dose(reminder: ReminderRecord, now: datetime, threshold: timedelta = MISSED_DOSE_THRESHOLD) -> bool:
    return (
        reminder.reminder_type == ReminderType.DOSE
        and reminder.status == ReminderStatus.SENT
        and reminder.scheduled_at <= now - threshold
    )


def describe_threshold(threshold: timedelta) -> str:
    """Render a whole-minute threshold as "3 hours", "1 hour" or "90 minutes"."""
    minutes = int(threshold.total_seconds() // 60)
    if minutes % 60 == 0:
        count, unit = minutes // 60, "hour"
    else:
        count, unit = minutes, "minute"
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def build_adherence_reminders(
    reminder: ReminderRecord,
    medication_name: str,
    now: datetime,
    threshold: timedelta = MISSED_DOSE_THRESHOLD,
) -> List[ReminderRecord]:
    message = MISSED_DOSE_MESSAGE.format(medication=medication_name, elapsed=describe_threshold(threshold))
    return [
        ReminderRecord(
            patient_id=reminder.patient_id,
            patient_medication_id=reminder.patient_medication_id,
            reminder_type=ReminderType.ADHERENCE,
            delivery_channel=channel,
            message=message,
            scheduled_at=now,
        )
        for channel in ADHERENCE_CHANNELS
    ]


@dataclass
class InMemoryStore:
    """Dictionary-backed store with the same surface as the SQL store."""

    profiles: Dict[str, ProfileRecord] = field(default_factory=dict)
    patients: Dict[str, PatientRecord] = field(default_factory=dict)
    medications: Dict[str, MedicationRecord] = field(default_factory=dict)
    patient_medications: Dict[str, PatientMedicationRecord] = field(default_factory=dict)
    reminders: Dict[str, ReminderRecord] = field(default_factory=dict)
    follow_ups: Dict[str, FollowUpRecord] = field(default_factory=dict)

    def add_profile(self, profile: ProfileRecord) -> ProfileRecord:
        self.profiles[profile.id] = profile
        return profile

    def add_patient(self, patient: PatientRecord) -> PatientRecord:
        self.get_profile(patient.pharmacist_id)
        self.patients[patient.id] = patient
        return patient

    def add_medication(self, medication: MedicationRecord) -> MedicationRecord:
        self.medications[medication.id] = medication
        return medication

    def add_patient_medication(self, prescription: PatientMedicationRecord) -> PatientMedicationRecord:
        self.get_patient(prescription.patient_id)
        self.get_medication(prescription.medication_id)
        self.get_profile(prescription.prescribed_by)
        self.patient_medications[prescription.id] = prescription
        return prescription

    def get_profile(self, profile_id: str) -> ProfileRecord:
        return self._get(self.profiles, "profiles", profile_id)

    def get_patient(self, patient_id: str) -> PatientRecord:
        return self._get(self.patients, "patients", patient_id)

    def get_medication(self, medication_id: str) -> MedicationRecord:
        return self._get(self.medications, "medications", medication_id)

    def get_patient_medication(self, patient_medication_id: str) -> PatientMedicationRecord:
        return self._get(self.patient_medications, "patient_medications", patient_medication_id)

    def get_follow_up(self, follow_up_id: str) -> FollowUpRecord:
        return self._get(self.follow_ups, "follow_ups", follow_up_id)

    def list_medications(self) -> List[MedicationRecord]:
        return sorted(self.medications.values(), key=lambda m: (m.name, m.id))

    def insert_reminders(self, reminders: Iterable[ReminderRecord]) -> List[ReminderRecord]:
        batch = list(reminders)
        # Check every row before writing any so a bad row leaves no partial batch.
        for reminder in batch:
            self.get_patient(reminder.patient_id)
            self.get_patient_medication(reminder.patient_medication_id)
        for reminder in batch:
            self.reminders[reminder.id] = reminder
        return batch

    def insert_follow_up(self, follow_up: FollowUpRecord) -> FollowUpRecord:
        self.get_patient(follow_up.patient_id)
        self.get_patient_medication(follow_up.patient_medication_id)
        self.follow_ups[follow_up.id] = follow_up
        return follow_up

    def sent_dose_reminders_before(self, cutoff: datetime) -> List[ReminderRecord]:
        return [
            r
            for r in self.reminders.values()
            if r.reminder_type == ReminderType.DOSE and r.status == ReminderStatus.SENT and r.scheduled_at <= cutoff
        ]

    def due_pending_reminders(self, now: datetime, limit: int) -> List[ReminderRecord]:
        due = [r for r in self.reminders.values() if r.status == ReminderStatus.PENDING and r.scheduled_at <= now]
        due.sort(key=lambda r: (r.scheduled_at, r.id))
        return due[:limit]

    def update_reminder(
        self,
        reminder_id: str,
        status: ReminderStatus,
        sent_at: Optional[datetime] = None,
        error_message: Optional[str] = None,
    ) -> ReminderRecord:
        current = self._get(self.reminders, "reminders", reminder_id)
        changes: Dict[str, Any] = {"status": status}
        if sent_at is not None:
            changes["sent_at"] = sent_at
        if error_message is not None:
            changes["error_message"] = error_message
        updated = current.model_copy(update=changes)
        self.reminders[reminder_id] = updated
        return updated

    def update_follow_up(self, follow_up: FollowUpRecord) -> FollowUpRecord:
        self.get_follow_up(follow_up.id)
        self.follow_ups[follow_up.id] = follow_up
        return follow_up

    def patients_for_pharmacist(self, pharmacist_id: str) -> List[PatientRecord]:
        return [p for p in self.patients.values() if p.pharmacist_id == pharmacist_id]

    def reminders_for_pharmacist(self, pharmacist_id: str) -> List[ReminderRecord]:
        patient_ids = {p.id for p in self.patients_for_pharmacist(pharmacist_id)}
        return [r for r in self.reminders.values() if r.patient_id in patient_ids]

    def follow_ups_for_pharmacist(self, pharmacist_id: str) -> List[FollowUpRecord]:
        return [f for f in self.follow_ups.values() if f.pharmacist_id == pharmacist_id]

    @staticmethod
    def _get(table: Dict[str, Any], name: str, record_id: str) -> Any:
        try:
            return table[record_id]
        except KeyError:
            raise RecordNotFoundError(name, record_id) from None


@dataclass
class SentMessage:
    channel: ChannelType
    to: str
    body: str


@dataclass
class FakeMessenger:
    sent: List[SentMessage] = field(default_factory=list)
    failing_numbers: Set[str] = field(default_factory=set)

    def send(self, channel: ChannelType, to: str, body: str) -> Dict[str, Any]:
        if to in self.failing_numbers:
            raise MessagingError(f"The 'To' number {to} is not a valid phone number.")
        self.sent.append(SentMessage(channel=channel, to=to, body=body))
        return {"sid": f"SM{len(self.sent):032d}", "status": "queued", "to": to}


@dataclass(frozen=True)
class ScheduleOutcome:
    reminders: List[ReminderRecord]
    follow_up: FollowUpRecord

    @property
    def reminders_scheduled(self) -> int:
        return len(self.reminders)


class ScheduleGenerator:
    def __init__(self, store: Any) -> None:
        self.store = store

    def run(self, patient_medication_id: str) -> ScheduleOutcome:
        prescription = self.store.get_patient_medication(patient_medication_id)
        medication = self.store.get_medication(prescription.medication_id)
        patient = self.store.get_patient(prescription.patient_id)

        reminders = build_reminder_schedule(medication, prescription)
        self.store.insert_reminders(reminders)

        follow_up = self.store.insert_follow_up(
            FollowUpRecord(
                patient_id=patient.id,
                patient_medication_id=prescription.id,
                pharmacist_id=patient.pharmacist_id,
                scheduled_date=follow_up_date(medication, prescription),
                status=FollowUpStatus.PENDING,
            )
        )

        logger.info(
            "Scheduled %d reminders for patient %s (prescription %s)",
            len(reminders),
            patient.id,
            prescription.id,
        )
        return ScheduleOutcome(reminders=reminders, follow_up=follow_up)


class AdherenceChecker:
    def __init__(self, store: Any, threshold: timedelta = MISSED_DOSE_THRESHOLD) -> None:
        if threshold <= timedelta(0):
            raise ValueError("missed dose threshold must be positive")
        if threshold % timedelta(minutes=1):
            raise ValueError("missed dose threshold must be a whole number of minutes")
        self.store = store
        self.threshold = threshold

    def run(self, now: Optional[datetime] = None) -> List[ReminderRecord]:
        now = _now(now)
        missed = self.store.sent_dose_reminders_before(now - self.threshold)
        logger.info("Found %d potentially missed doses", len(missed))

        medication_names: Dict[str, str] = {}
        alerts: List[ReminderRecord] = []
        for reminder in missed:
            name = medication_names.get(reminder.patient_medication_id)
            if name is None:
                prescription = self.store.get_patient_medication(reminder.patient_medication_id)
                name = self.store.get_medication(prescription.medication_id).name
                medication_names[reminder.patient_medication_id] = name
            alerts.extend(build_adherence_reminders(reminder, name, now, self.threshold))

        if alerts:
            self.store.insert_reminders(alerts)
            logger.info("Created %d adherence reminders", len(alerts))

        # Not atomic with the insert above; a failure here leaves some originals
        # "sent" and they will be re-alerted on the next run.
        for reminder in missed:
            self.store.update_reminder(reminder.id, ReminderStatus.ACKNOWLEDGED)

        return alerts


@dataclass(frozen=True)
class DispatchOutcome:
    reminder_id: str
    status: ReminderStatus
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class DeliveryDispatcher:
    """Send due reminders through the messaging provider.

    Selecting and marking are separate store calls, so two overlapping runs
    can pick the same pending reminder and both send it.
    """

    def __init__(self, store: Any, messenger: Any, batch_limit: int = DISPATCH_BATCH_LIMIT) -> None:
        if batch_limit < 1:
            raise ValueError("batch_limit must be >= 1")
        self.store = store
        self.messenger = messenger
        self.batch_limit = batch_limit

    def select_due(self, now: Optional[datetime] = None) -> List[ReminderRecord]:
        due = self.store.due_pending_reminders(_now(now), self.batch_limit)
        logger.info("Found %d due reminders", len(due))
        return due

    def deliver(self, reminders: Iterable[ReminderRecord], now: Optional[datetime] = None) -> List[DispatchOutcome]:
        now = _now(now)
        outcomes: List[DispatchOutcome] = []
        for reminder in reminders:
            try:
                patient = self.store.get_patient(reminder.patient_id)
                result = self.messenger.send(reminder.delivery_channel, patient.phone, reminder.message)
            except PharmaCareError as exc:
                self.store.update_reminder(reminder.id, ReminderStatus.FAILED, error_message=str(exc))
                outcomes.append(DispatchOutcome(reminder.id, ReminderStatus.FAILED, error=str(exc)))
                logger.error("Failed to send reminder %s: %s", reminder.id, exc)
                continue

            self.store.update_reminder(reminder.id, ReminderStatus.SENT, sent_at=now)
            outcomes.append(DispatchOutcome(reminder.id, ReminderStatus.SENT, result=result))
            logger.info("Sent %s reminder %s", reminder.delivery_channel.value, reminder.id)
        return outcomes

    def run(self, now: Optional[datetime] = None) -> List[DispatchOutcome]:
        now = _now(now)
        return self.deliver(self.select_due(now), now)


@dataclass(frozen=True)
class Registration:
    patient: PatientRecord
    prescription: PatientMedicationRecord
    schedule: ScheduleOutcome


@dataclass(frozen=True)
class DashboardStats:
    total_patients: int
    active_reminders: int
    follow_ups_due: int
    reminders_sent: int
    reminders_failed: int
    delivery_rate: float
    adherence_rate: float
    follow_up_completion_rate: float


def _rate(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return 0.0
    return round(numerator / denominator, 4)


class PharmaCareFlow:
    def __init__(
        self,
        store: Any,
        messenger: Any,
        missed_threshold: timedelta = MISSED_DOSE_THRESHOLD,
        batch_limit: int = DISPATCH_BATCH_LIMIT,
    ) -> None:
        self.store = store
        self.scheduler = ScheduleGenerator(store)
        self.checker = AdherenceChecker(store, threshold=missed_threshold)
        self.dispatcher = DeliveryDispatcher(store, messenger, batch_limit=batch_limit)

    def schedule_reminders(self, patient_medication_id: str) -> ScheduleOutcome:
        return self.scheduler.run(patient_medication_id)

    def check_adherence(self, now: Optional[datetime] = None) -> List[ReminderRecord]:
        return self.checker.run(now)

    def send_reminders(self, now: Optional[datetime] = None) -> List[DispatchOutcome]:
        return self.dispatcher.run(now)

    def register_patient(
        self,
        *,
        pharmacist_id: str,
        full_name: str,
        phone: str,
        medication_id: str,
        quantity: str = "",
        age: Optional[int] = None,
        custom_dosage: Optional[str] = None,
        consent_given: bool = False,
        start_date: Optional[datetime] = None,
        duration_days: Optional[int] = None,
    ) -> Registration:
        """Create the patient and prescription, then schedule its reminders.

        ``duration_days`` overrides the catalog duration for the prescription's
        ``end_date`` only; reminders follow the medication's own schedule.
        """
        if not consent_given:
            raise ConsentRequiredError("patient consent is required before reminders can be sent")
        if duration_days is not None and duration_days < 1:
            raise ValueError("duration_days must be >= 1")

        self.store.get_profile(pharmacist_id)
        medication = self.store.get_medication(medication_id)
        start = _now(start_date)

        patient = self.store.add_patient(
            PatientRecord(
                full_name=full_name,
                phone=phone,
                age=age,
                pharmacist_id=pharmacist_id,
                consent_given=consent_given,
            )
        )
        prescription = self.store.add_patient_medication(
            PatientMedicationRecord(
                patient_id=patient.id,
                medication_id=medication.id,
                prescribed_by=pharmacist_id,
                quantity=quantity,
                custom_dosage=custom_dosage,
                start_date=start,
                end_date=start + timedelta(days=duration_days or medication.treatment_duration_days),
            )
        )
        schedule = self.scheduler.run(prescription.id)
        logger.info("Registered patient %s under pharmacist %s", patient.id, pharmacist_id)
        return Registration(patient=patient, prescription=prescription, schedule=schedule)

    def complete_follow_up(
        self,
        follow_up_id: str,
        outcome: str,
        notes: Optional[str] = None,
        contacted_at: Optional[datetime] = None,
    ) -> FollowUpRecord:
        follow_up = self.store.get_follow_up(follow_up_id)
        if follow_up.status != FollowUpStatus.PENDING:
            raise InvalidTransitionError(f"follow-up {follow_up_id} is already {follow_up.status.value}")

        completed = follow_up.model_copy(
            update={
                "status": FollowUpStatus.COMPLETED,
                "outcome": outcome,
                "notes": notes,
                "contacted_at": _now(contacted_at),
            }
        )
        return self.store.update_follow_up(completed)

    def list_medications(self) -> List[MedicationRecord]:
        return self.store.list_medications()

    def build_dashboard(self, pharmacist_id: str, now: Optional[datetime] = None) -> DashboardStats:
        today = _now(now).date()
        patients = self.store.patients_for_pharmacist(pharmacist_id)
        reminders = self.store.reminders_for_pharmacist(pharmacist_id)
        follow_ups = self.store.follow_ups_for_pharmacist(pharmacist_id)

        delivered = [r for r in reminders if r.status in {ReminderStatus.SENT, ReminderStatus.ACKNOWLEDGED}]
        failed = [r for r in reminders if r.status == ReminderStatus.FAILED]
        doses = [r for r in delivered if r.reminder_type == ReminderType.DOSE]
        missed = [r for r in doses if r.status == ReminderStatus.ACKNOWLEDGED]
        completed = [f for f in follow_ups if f.status == FollowUpStatus.COMPLETED]

        return DashboardStats(
            total_patients=len(patients),
            active_reminders=sum(1 for r in reminders if r.status == ReminderStatus.PENDING),
            follow_ups_due=sum(
                1 for f in follow_ups if f.status == FollowUpStatus.PENDING and f.scheduled_date <= today
            ),
            reminders_sent=len(delivered),
            reminders_failed=len(failed),
            delivery_rate=_rate(len(delivered), len(delivered) + len(failed)),
            adherence_rate=_rate(len(doses) - len(missed), len(doses)),
            follow_up_completion_rate=_rate(len(completed), len(follow_ups)),
        )
