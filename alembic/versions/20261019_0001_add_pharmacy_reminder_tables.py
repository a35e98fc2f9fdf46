"""add pharmacy reminder tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("pharmacy_name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "patients",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("pharmacist_id", sa.String(length=36), nullable=False),
        sa.Column("consent_given", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pharmacist_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_patients_phone", "patients", ["phone"], unique=False)
    op.create_index("ix_patients_pharmacist_id", "patients", ["pharmacist_id"], unique=False)

    op.create_table(
        "medications",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("standard_dosage", sa.String(length=255), nullable=True),
        sa.Column("dosage_frequency_hours", sa.Float(), nullable=True),
        sa.Column("treatment_duration_days", sa.Integer(), nullable=False),
        sa.Column("is_chronic", sa.Boolean(), nullable=True, server_default=sa.text("false")),
        sa.Column("refill_reminder_days", sa.Integer(), nullable=True),
        sa.Column("follow_up_day", sa.Integer(), nullable=False),
        sa.Column("reminder_frequency", sa.String(length=64), nullable=False, server_default="daily"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "patient_medications",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("patient_id", sa.String(length=36), nullable=False),
        sa.Column("medication_id", sa.String(length=36), nullable=False),
        sa.Column("prescribed_by", sa.String(length=36), nullable=False),
        sa.Column("quantity", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("custom_dosage", sa.String(length=255), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum("active", "completed", name="prescription_status"),
            nullable=False,
            server_default="active",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["medication_id"], ["medications.id"]),
        sa.ForeignKeyConstraint(["prescribed_by"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "reminders",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("patient_id", sa.String(length=36), nullable=False),
        sa.Column("patient_medication_id", sa.String(length=36), nullable=False),
        sa.Column(
            "reminder_type",
            sa.Enum("dose", "therapy_completion", "refill", "adherence", name="reminder_type"),
            nullable=False,
        ),
        sa.Column("delivery_channel", sa.Enum("sms", "whatsapp", name="delivery_channel"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "sent", "failed", "acknowledged", name="reminder_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["patient_medication_id"], ["patient_medications.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reminders_status_scheduled_at", "reminders", ["status", "scheduled_at"], unique=False)
    op.create_index(
        "ix_reminders_type_status_scheduled_at",
        "reminders",
        ["reminder_type", "status", "scheduled_at"],
        unique=False,
    )

    op.create_table(
        "follow_ups",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("patient_id", sa.String(length=36), nullable=False),
        sa.Column("patient_medication_id", sa.String(length=36), nullable=False),
        sa.Column("pharmacist_id", sa.String(length=36), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", name="follow_up_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("outcome", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("contacted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["patient_medication_id"], ["patient_medications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pharmacist_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_follow_ups_pharmacist_status", "follow_ups", ["pharmacist_id", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_follow_ups_pharmacist_status", table_name="follow_ups")
    op.drop_table("follow_ups")

    op.drop_index("ix_reminders_type_status_scheduled_at", table_name="reminders")
    op.drop_index("ix_reminders_status_scheduled_at", table_name="reminders")
    op.drop_table("reminders")

    op.drop_table("patient_medications")
    op.drop_table("medications")

    op.drop_index("ix_patients_pharmacist_id", table_name="patients")
    op.drop_index("ix_patients_phone", table_name="patients")
    op.drop_table("patients")
    op.drop_table("profiles")

    op.execute("DROP TYPE IF EXISTS follow_up_status")
    op.execute("DROP TYPE IF EXISTS reminder_status")
    op.execute("DROP TYPE IF EXISTS delivery_channel")
    op.execute("DROP TYPE IF EXISTS reminder_type")
    op.execute("DROP TYPE IF EXISTS prescription_status")
