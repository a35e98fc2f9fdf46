from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacare import RecordNotFoundError
from shared.contracts.enums import ReminderStatus, ReminderType
from shared.contracts.models import (
    FollowUpRecord,
    MedicationRecord,
    PatientMedicationRecord,
    PatientRecord,
    ProfileRecord,
    ReminderRecord,
)

from .models import Base, FollowUp, Medication, Patient, PatientMedication, Profile, Reminder

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class SqlAlchemyStore:
    """Relational store used by the reminder routines.

    Every row leaving this class is validated into a pydantic record.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def add_profile(self, profile: ProfileRecord) -> ProfileRecord:
        return self._add(Profile, profile)

    def add_patient(self, patient: PatientRecord) -> PatientRecord:
        return self._add(Patient, patient)

    def add_medication(self, medication: MedicationRecord) -> MedicationRecord:
        return self._add(Medication, medication)

    def add_patient_medication(self, prescription: PatientMedicationRecord) -> PatientMedicationRecord:
        return self._add(PatientMedication, prescription)

    def get_profile(self, profile_id: str) -> ProfileRecord:
        return ProfileRecord.model_validate(self._row(Profile, profile_id))

    def get_patient(self, patient_id: str) -> PatientRecord:
        return PatientRecord.model_validate(self._row(Patient, patient_id))

    def get_medication(self, medication_id: str) -> MedicationRecord:
        return MedicationRecord.model_validate(self._row(Medication, medication_id))

    def get_patient_medication(self, patient_medication_id: str) -> PatientMedicationRecord:
        return PatientMedicationRecord.model_validate(self._row(PatientMedication, patient_medication_id))

    def get_follow_up(self, follow_up_id: str) -> FollowUpRecord:
        return FollowUpRecord.model_validate(self._row(FollowUp, follow_up_id))

    def list_medications(self) -> list[MedicationRecord]:
        stmt = select(Medication).order_by(Medication.name, Medication.id)
        return self._records(MedicationRecord, self.session.scalars(stmt))

    def insert_reminders(self, reminders: Iterable[ReminderRecord]) -> list[ReminderRecord]:
        batch = list(reminders)
        self.session.add_all(Reminder(**r.model_dump()) for r in batch)
        self._commit()
        logger.debug("Inserted %d reminders", len(batch))
        return batch

    def insert_follow_up(self, follow_up: FollowUpRecord) -> FollowUpRecord:
        return self._add(FollowUp, follow_up)

    def sent_dose_reminders_before(self, cutoff: datetime) -> list[ReminderRecord]:
        stmt = select(Reminder).where(
            Reminder.reminder_type == ReminderType.DOSE,
            Reminder.status == ReminderStatus.SENT,
            Reminder.scheduled_at <= cutoff,
        )
        return self._records(ReminderRecord, self.session.scalars(stmt))

    def due_pending_reminders(self, now: datetime, limit: int) -> list[ReminderRecord]:
        stmt = (
            select(Reminder)
            .where(Reminder.status == ReminderStatus.PENDING, Reminder.scheduled_at <= now)
            .order_by(Reminder.scheduled_at, Reminder.id)
            .limit(limit)
        )
        return self._records(ReminderRecord, self.session.scalars(stmt))

    def update_reminder(
        self,
        reminder_id: str,
        status: ReminderStatus,
        sent_at: datetime | None = None,
        error_message: str | None = None,
    ) -> ReminderRecord:
        row = self._row(Reminder, reminder_id)
        row.status = status
        if sent_at is not None:
            row.sent_at = sent_at
        if error_message is not None:
            row.error_message = error_message
        self._commit()
        return ReminderRecord.model_validate(row)

    def update_follow_up(self, follow_up: FollowUpRecord) -> FollowUpRecord:
        row = self._row(FollowUp, follow_up.id)
        row.status = follow_up.status
        row.outcome = follow_up.outcome
        row.notes = follow_up.notes
        row.contacted_at = follow_up.contacted_at
        self._commit()
        return FollowUpRecord.model_validate(row)

    def patients_for_pharmacist(self, pharmacist_id: str) -> list[PatientRecord]:
        stmt = select(Patient).where(Patient.pharmacist_id == pharmacist_id)
        return self._records(PatientRecord, self.session.scalars(stmt))

    def reminders_for_pharmacist(self, pharmacist_id: str) -> list[ReminderRecord]:
        stmt = (
            select(Reminder)
            .join(Patient, Reminder.patient_id == Patient.id)
            .where(Patient.pharmacist_id == pharmacist_id)
        )
        return self._records(ReminderRecord, self.session.scalars(stmt))

    def follow_ups_for_pharmacist(self, pharmacist_id: str) -> list[FollowUpRecord]:
        stmt = select(FollowUp).where(FollowUp.pharmacist_id == pharmacist_id)
        return self._records(FollowUpRecord, self.session.scalars(stmt))

    def _add(self, model: type[Base], record: RecordT) -> RecordT:
        self.session.add(model(**record.model_dump()))
        self._commit()
        return record

    def _row(self, model: type[Base], record_id: str) -> Any:
        row = self.session.get(model, record_id)
        if row is None:
            raise RecordNotFoundError(model.__tablename__, record_id)
        return row

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    @staticmethod
    def _records(record_cls: type[RecordT], rows: Iterable[Any]) -> list[RecordT]:
        return [record_cls.model_validate(row) for row in rows]
