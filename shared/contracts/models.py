from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import ChannelType, FollowUpStatus, PrescriptionStatus, ReminderStatus, ReminderType


def new_id() -> str:
    return str(uuid4())


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Store records. Rows coming back from the database are validated through
# these models instead of being passed around as loose attribute bags.


class StoreRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ProfileRecord(StoreRecord):
    id: str = Field(default_factory=new_id)
    full_name: str | None = None
    pharmacy_name: str | None = None
    phone: str | None = None


class PatientRecord(StoreRecord):
    id: str = Field(default_factory=new_id)
    full_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    age: int | None = Field(default=None, ge=0)
    pharmacist_id: str
    consent_given: bool = False


class MedicationRecord(StoreRecord):
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    category: str | None = None
    standard_dosage: str | None = None
    dosage_frequency_hours: float | None = Field(default=None, ge=0)
    treatment_duration_days: int = Field(ge=0)
    is_chronic: bool = False
    refill_reminder_days: int | None = Field(default=None, ge=0)
    follow_up_day: int = Field(ge=0)
    reminder_frequency: str = "daily"
    notes: str | None = None

    @field_validator("is_chronic", mode="before")
    @classmethod
    def null_chronic_is_false(cls, value: Any) -> Any:
        return False if value is None else value


class PatientMedicationRecord(StoreRecord):
    id: str = Field(default_factory=new_id)
    patient_id: str
    medication_id: str
    prescribed_by: str
    quantity: str = ""
    custom_dosage: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    status: PrescriptionStatus = PrescriptionStatus.ACTIVE

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_utc(value)


class ReminderRecord(StoreRecord):
    id: str = Field(default_factory=new_id)
    patient_id: str
    patient_medication_id: str
    reminder_type: ReminderType
    delivery_channel: ChannelType
    message: str
    scheduled_at: datetime
    status: ReminderStatus = ReminderStatus.PENDING
    sent_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @field_validator("scheduled_at", "sent_at", "created_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_utc(value)


class FollowUpRecord(StoreRecord):
    id: str = Field(default_factory=new_id)
    patient_id: str
    patient_medication_id: str
    pharmacist_id: str
    scheduled_date: date
    status: FollowUpStatus = FollowUpStatus.PENDING
    outcome: str | None = None
    notes: str | None = None
    contacted_at: datetime | None = None

    @field_validator("contacted_at")
    @classmethod
    def normalize_contacted_at(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_utc(value)


# HTTP contracts for the reminder functions. Field aliases keep the camelCase
# wire format the web client already speaks.


class ScheduleRemindersRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_medication_id: str = Field(alias="patientMedicationId", min_length=1)


class ScheduleRemindersResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    reminders_scheduled: int = Field(alias="remindersScheduled", ge=0)


class AdherenceCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    adherence_reminders_created: int = Field(alias="adherenceRemindersCreated", ge=0)


class DispatchResultItem(BaseModel):
    id: str
    status: ReminderStatus
    result: dict[str, Any] | None = None
    error: str | None = None


class SendRemindersResponse(BaseModel):
    success: bool = True
    processed: int = Field(ge=0)
    results: list[DispatchResultItem] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str


# Registration, follow-up and dashboard contracts.


class PatientRegistrationRequest(BaseModel):
    pharmacist_id: str = Field(min_length=1)
    full_name: str = Field(min_length=1)
    phone: str = Field(min_length=3)
    age: int | None = Field(default=None, ge=0, le=150)
    medication_id: str = Field(min_length=1)
    quantity: str = ""
    custom_dosage: str | None = None
    consent_given: bool = False
    start_date: datetime | None = None
    duration_days: int | None = Field(default=None, ge=1, le=3650)


class PatientRegistrationResponse(BaseModel):
    success: bool = True
    patient_id: str
    patient_medication_id: str
    reminders_scheduled: int = Field(ge=0)
    follow_up_date: date


class FollowUpCompleteRequest(BaseModel):
    outcome: str = Field(min_length=1)
    notes: str | None = None


class DashboardDTO(BaseModel):
    total_patients: int
    active_reminders: int
    follow_ups_due: int
    reminders_sent: int
    reminders_failed: int
    delivery_rate: float
    adherence_rate: float
    follow_up_completion_rate: float
