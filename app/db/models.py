from __future__ import annotations

from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from shared.contracts.enums import (
    ChannelType,
    FollowUpStatus,
    PrescriptionStatus,
    ReminderStatus,
    ReminderType,
)


class Base(DeclarativeBase):
    """Declarative base for application models."""


def _uuid() -> str:
    return str(uuid4())


def _enum_column(enum_cls: type, name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Profile(TimestampMixin, Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    full_name: Mapped[str | None] = mapped_column(String(255))
    pharmacy_name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(32))

    patients: Mapped[list[Patient]] = relationship(back_populates="pharmacist")


class Patient(TimestampMixin, Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    age: Mapped[int | None] = mapped_column(Integer)
    pharmacist_id: Mapped[str] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    consent_given: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    pharmacist: Mapped[Profile] = relationship(back_populates="patients")
    prescriptions: Mapped[list[PatientMedication]] = relationship(back_populates="patient")


class Medication(TimestampMixin, Base):
    __tablename__ = "medications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(128))
    standard_dosage: Mapped[str | None] = mapped_column(String(255))
    dosage_frequency_hours: Mapped[float | None] = mapped_column(Float)
    treatment_duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    is_chronic: Mapped[bool | None] = mapped_column(Boolean, default=False)
    refill_reminder_days: Mapped[int | None] = mapped_column(Integer)
    follow_up_day: Mapped[int] = mapped_column(Integer, nullable=False)
    reminder_frequency: Mapped[str] = mapped_column(String(64), nullable=False, default="daily")
    notes: Mapped[str | None] = mapped_column(Text)


class PatientMedication(TimestampMixin, Base):
    __tablename__ = "patient_medications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    medication_id: Mapped[str] = mapped_column(ForeignKey("medications.id"), nullable=False)
    prescribed_by: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    quantity: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    custom_dosage: Mapped[str | None] = mapped_column(String(255))
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[PrescriptionStatus] = mapped_column(
        _enum_column(PrescriptionStatus, "prescription_status"),
        nullable=False,
        default=PrescriptionStatus.ACTIVE,
    )

    patient: Mapped[Patient] = relationship(back_populates="prescriptions")
    medication: Mapped[Medication] = relationship()
    reminders: Mapped[list[Reminder]] = relationship(back_populates="patient_medication")
    follow_ups: Mapped[list[FollowUp]] = relationship(back_populates="patient_medication")


class Reminder(Base):
    __tablename__ = "reminders"
    __table_args__ = (
        Index("ix_reminders_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_reminders_type_status_scheduled_at", "reminder_type", "status", "scheduled_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    patient_medication_id: Mapped[str] = mapped_column(
        ForeignKey("patient_medications.id", ondelete="CASCADE"), nullable=False
    )
    reminder_type: Mapped[ReminderType] = mapped_column(_enum_column(ReminderType, "reminder_type"), nullable=False)
    delivery_channel: Mapped[ChannelType] = mapped_column(
        _enum_column(ChannelType, "delivery_channel"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[ReminderStatus] = mapped_column(
        _enum_column(ReminderStatus, "reminder_status"), nullable=False, default=ReminderStatus.PENDING
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    patient_medication: Mapped[PatientMedication] = relationship(back_populates="reminders")


class FollowUp(TimestampMixin, Base):
    __tablename__ = "follow_ups"
    __table_args__ = (Index("ix_follow_ups_pharmacist_status", "pharmacist_id", "status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    patient_medication_id: Mapped[str] = mapped_column(
        ForeignKey("patient_medications.id", ondelete="CASCADE"), nullable=False
    )
    pharmacist_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[FollowUpStatus] = mapped_column(
        _enum_column(FollowUpStatus, "follow_up_status"), nullable=False, default=FollowUpStatus.PENDING
    )
    outcome: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    contacted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    patient_medication: Mapped[PatientMedication] = relationship(back_populates="follow_ups")
