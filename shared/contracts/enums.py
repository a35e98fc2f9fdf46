from enum import Enum


class ChannelType(str, Enum):
    SMS = "sms"
    WHATSAPP = "whatsapp"


class ReminderType(str, Enum):
    DOSE = "dose"
    THERAPY_COMPLETION = "therapy_completion"
    REFILL = "refill"
    ADHERENCE = "adherence"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    ACKNOWLEDGED = "acknowledged"


class FollowUpStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class PrescriptionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
