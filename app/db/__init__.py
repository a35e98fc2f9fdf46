from .models import (
    Base,
    FollowUp,
    Medication,
    Patient,
    PatientMedication,
    Profile,
    Reminder,
)

__all__ = [
    "Base",
    "FollowUp",
    "Medication",
    "Patient",
    "PatientMedication",
    "Profile",
    "Reminder",
]
