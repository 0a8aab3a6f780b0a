"""Pydantic schemas shared across the core and the API."""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .config import CONFIG

DEFAULT_COUNTRY = CONFIG.default_country
FULL_TERM_WEEKS = 40


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class UserType(str, Enum):
    PREGNANT = "pregnant"
    HAS_CHILD = "has_child"


class StorageMode(str, Enum):
    DEVICE_ONLY = "device_only"
    CLOUD = "cloud"


class MoodType(str, Enum):
    GOOD = "good"
    OKAY = "okay"
    NOT_GOOD = "not_good"

    @property
    def chart_value(self) -> int:
        return {MoodType.GOOD: 3, MoodType.OKAY: 2, MoodType.NOT_GOOD: 1}[self]


class VaccineStatus(str, Enum):
    UPCOMING = "upcoming"
    DUE = "due"
    OVERDUE = "overdue"
    COMPLETED = "completed"


class EmergencyContact(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    relationship: str = ""
    phone_number: str = ""
    email: str = ""

    @property
    def has_contact_info(self) -> bool:
        return bool(self.phone_number or self.email)


class UserProfile(BaseModel):
    """Identity plus the medical context the schedules are computed from.

    Only one of ``expected_delivery_date`` / ``birth_date`` is meaningful and
    ``user_type`` picks which. ``storage_mode`` names the backend that is
    authoritative for reads; the local cache is written either way.
    """

    id: str = Field(default_factory=_new_id)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    country: str = DEFAULT_COUNTRY
    mobile_number: str = ""
    user_type: Optional[UserType] = None
    expected_delivery_date: Optional[date] = None
    birth_date: Optional[date] = None
    storage_mode: StorageMode = StorageMode.DEVICE_ONLY
    privacy_accepted_at: Optional[datetime] = None
    notifications_wanted: bool = True
    emergency_contacts: List[EmergencyContact] = Field(default_factory=list)

    @property
    def reference_date(self) -> Optional[date]:
        if self.user_type == UserType.HAS_CHILD:
            return self.birth_date
        if self.user_type == UserType.PREGNANT:
            return self.expected_delivery_date
        return None

    @property
    def needs_onboarding(self) -> bool:
        return self.reference_date is None

    def pregnancy_week(self, today: date) -> int:
        if self.expected_delivery_date is None:
            return 0
        # whole weeks, truncated toward zero
        weeks_left = int((self.expected_delivery_date - today).days / 7)
        return max(0, FULL_TERM_WEEKS - weeks_left)

    def pregnancy_progress(self, today: date) -> float:
        return self.pregnancy_week(today) / FULL_TERM_WEEKS

    def days_postpartum(self, today: date) -> Optional[int]:
        if self.user_type != UserType.HAS_CHILD or self.birth_date is None:
            return None
        return max(0, (today - self.birth_date).days)


class MoodCheckIn(BaseModel):
    id: str = Field(default_factory=_new_id)
    date: datetime = Field(default_factory=_utcnow)
    mood_type: MoodType
    notes: Optional[str] = None


class VaccineItem(BaseModel):
    id: str
    name: str
    age_range: str
    description: str
    due_date: Optional[date] = None
    status: VaccineStatus
    completed_date: Optional[datetime] = None


class SyncErrorEvent(BaseModel):
    """A backend write that failed after the in-memory state was already updated."""

    operation: str
    detail: str
    occurred_at: datetime = Field(default_factory=_utcnow)
