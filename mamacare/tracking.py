"""Local-only health tracking.

Covers weight, water intake, kick counts, contractions, symptoms,
appointments and the hospital bag checklist. Rows are keyed to the single
local profile and never leave the device.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from .db import LocalStore
from .errors import StorageError, StorageErrorKind

logger = logging.getLogger(__name__)

LBS_PER_KG = 2.20462
KG_PER_LB = 0.453592
ML_PER_OZ = 29.5735

KICK_TARGET = 10
KICK_WINDOW = timedelta(hours=2)

# 5-1-1: five minutes apart, one minute long, for one hour
RECENT_CONTRACTION_WINDOW = 10
FIVE_ONE_ONE_MIN_CONTRACTIONS = 12
FIVE_ONE_ONE_MAX_INTERVAL_SECONDS = 5 * 60
FIVE_ONE_ONE_MIN_DURATION_SECONDS = 60


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class WeightEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    date: datetime = Field(default_factory=_utcnow)
    weight: float = Field(gt=0)
    unit: str = Field(default="kg", pattern="^(kg|lbs)$")
    notes: Optional[str] = None

    @property
    def weight_in_kg(self) -> float:
        return self.weight * KG_PER_LB if self.unit == "lbs" else self.weight

    @property
    def weight_in_lbs(self) -> float:
        return self.weight * LBS_PER_KG if self.unit == "kg" else self.weight


class WaterIntakeEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    date: datetime = Field(default_factory=_utcnow)
    amount: float = Field(gt=0)
    unit: str = Field(default="ml", pattern="^(ml|oz)$")

    @property
    def amount_in_ml(self) -> float:
        return self.amount * ML_PER_OZ if self.unit == "oz" else self.amount

    @property
    def amount_in_oz(self) -> float:
        return self.amount / ML_PER_OZ if self.unit == "ml" else self.amount


class KickSession(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    start_date: datetime = Field(default_factory=_utcnow)
    end_date: Optional[datetime] = None
    kick_count: int = 0
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None

    def duration(self, now: Optional[datetime] = None) -> timedelta:
        return (self.end_date or now or _utcnow()) - self.start_date

    @property
    def reached_target(self) -> bool:
        return self.kick_count >= KICK_TARGET and self.duration() <= KICK_WINDOW


class Contraction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    start_date: datetime = Field(default_factory=_utcnow)
    end_date: Optional[datetime] = None
    duration_seconds: float = 0
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None


class ContractionStats(BaseModel):
    count: int
    average_interval_seconds: Optional[float] = None
    average_duration_seconds: Optional[float] = None
    should_go_to_hospital: bool = False


class SymptomType(str, Enum):
    NAUSEA = "nausea"
    VOMITING = "vomiting"
    HEADACHE = "headache"
    BACK_PAIN = "back_pain"
    CRAMPING = "cramping"
    BLEEDING = "bleeding"
    SPOTTING = "spotting"
    SWELLING = "swelling"
    FATIGUE = "fatigue"
    DIZZINESS = "dizziness"
    HEARTBURN = "heartburn"
    CONSTIPATION = "constipation"
    FREQUENT_URINATION = "frequent_urination"
    BREAST_TENDERNESS = "breast_tenderness"
    MOOD_SWINGS = "mood_swings"
    INSOMNIA = "insomnia"
    SHORTNESS_OF_BREATH = "shortness_of_breath"
    OTHER = "other"


class SymptomSeverity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"

    @property
    def level(self) -> int:
        return {SymptomSeverity.MILD: 1, SymptomSeverity.MODERATE: 2, SymptomSeverity.SEVERE: 3}[self]


class SymptomEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    date: datetime = Field(default_factory=_utcnow)
    symptom_type: SymptomType
    severity: SymptomSeverity = SymptomSeverity.MILD
    notes: Optional[str] = None
    # free text, e.g. "2 hours" or "all day"
    duration: Optional[str] = None


class AppointmentType(str, Enum):
    PRENATAL = "prenatal"
    ULTRASOUND = "ultrasound"
    BLOOD_WORK = "blood_work"
    SPECIALIST = "specialist"
    POSTPARTUM = "postpartum"
    PEDIATRIC = "pediatric"
    OTHER = "other"


class Appointment(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = Field(min_length=1)
    appointment_type: AppointmentType = AppointmentType.OTHER
    date: datetime
    location: Optional[str] = None
    doctor_name: Optional[str] = None
    notes: Optional[str] = None
    reminder_enabled: bool = True
    reminder_date: Optional[datetime] = None
    is_completed: bool = False

    @field_validator("date", "reminder_date")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # stored as text and ordered lexically, so keep a single offset
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def is_past(self, now: Optional[datetime] = None) -> bool:
        return self.date < (now or _utcnow())

    def is_upcoming(self, now: Optional[datetime] = None) -> bool:
        return not self.is_past(now) and not self.is_completed


class AppointmentSummary(BaseModel):
    upcoming: List[Appointment]
    past: List[Appointment]


class ChecklistCategory(str, Enum):
    FOR_MOM = "for_mom"
    FOR_BABY = "for_baby"
    FOR_PARTNER = "for_partner"
    DOCUMENTS = "documents"
    OTHER = "other"


class HospitalBagItem(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(min_length=1)
    category: ChecklistCategory = ChecklistCategory.OTHER
    is_packed: bool = False
    is_custom: bool = False


class HospitalBagSummary(BaseModel):
    items: List[HospitalBagItem]
    packed: int
    total: int
    progress: float = 0.0


DEFAULT_HOSPITAL_BAG = (
    ("Comfortable clothes for labor", ChecklistCategory.FOR_MOM),
    ("Nursing bras", ChecklistCategory.FOR_MOM),
    ("Maternity pads", ChecklistCategory.FOR_MOM),
    ("Toiletries", ChecklistCategory.FOR_MOM),
    ("Slippers", ChecklistCategory.FOR_MOM),
    ("Phone charger", ChecklistCategory.FOR_MOM),
    ("Going-home outfit", ChecklistCategory.FOR_MOM),
    ("Baby clothes (newborn & 0-3 months)", ChecklistCategory.FOR_BABY),
    ("Diapers", ChecklistCategory.FOR_BABY),
    ("Baby wipes", ChecklistCategory.FOR_BABY),
    ("Receiving blankets", ChecklistCategory.FOR_BABY),
    ("Car seat", ChecklistCategory.FOR_BABY),
    ("Going-home outfit", ChecklistCategory.FOR_BABY),
    ("Snacks and drinks", ChecklistCategory.FOR_PARTNER),
    ("Change of clothes", ChecklistCategory.FOR_PARTNER),
    ("Entertainment (books, tablet)", ChecklistCategory.FOR_PARTNER),
    ("Camera", ChecklistCategory.FOR_PARTNER),
    ("ID and insurance cards", ChecklistCategory.DOCUMENTS),
    ("Birth plan (if you have one)", ChecklistCategory.DOCUMENTS),
    ("Hospital paperwork", ChecklistCategory.DOCUMENTS),
    ("Pediatrician contact info", ChecklistCategory.DOCUMENTS),
)


def contraction_stats(contractions: List[Contraction]) -> ContractionStats:
    """Summarise the most recent finished contractions, newest first.

    The interval is measured start to start between neighbours. The 5-1-1
    flag needs at least an hour's worth of contractions.
    """
    finished = sorted(
        (c for c in contractions if c.end_date is not None),
        key=lambda c: c.start_date,
        reverse=True,
    )
    recent = finished[:RECENT_CONTRACTION_WINDOW]
    if not recent:
        return ContractionStats(count=0)

    average_duration = sum(c.duration_seconds for c in recent) / len(recent)
    average_interval = None
    if len(recent) >= 2:
        intervals = [
            abs((recent[i].start_date - recent[i + 1].start_date).total_seconds())
            for i in range(len(recent) - 1)
        ]
        average_interval = sum(intervals) / len(intervals)

    should_go = (
        average_interval is not None
        and len(finished) >= FIVE_ONE_ONE_MIN_CONTRACTIONS
        and average_interval <= FIVE_ONE_ONE_MAX_INTERVAL_SECONDS
        and average_duration >= FIVE_ONE_ONE_MIN_DURATION_SECONDS
    )
    return ContractionStats(
        count=len(finished),
        average_interval_seconds=average_interval,
        average_duration_seconds=average_duration,
        should_go_to_hospital=should_go,
    )


class HealthTracker:
    """Reads and writes tracking rows for the current local profile."""

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    def _profile_id(self) -> str:
        profile = self.store.get_profile()
        if profile is None:
            raise StorageError(StorageErrorKind.LOCAL, "No local profile to attach tracking data to.")
        return profile.id

    # weight

    def add_weight_entry(self, entry: WeightEntry) -> WeightEntry:
        with self.store.get_connection() as conn:
            conn.execute(
                "INSERT INTO weight_entries (id, profile_id, date, weight, unit, notes) VALUES (?, ?, ?, ?, ?, ?)",
                (entry.id, self._profile_id(), entry.date.isoformat(), entry.weight, entry.unit, entry.notes),
            )
            conn.commit()
        return entry

    def list_weight_entries(self) -> List[WeightEntry]:
        with self.store.get_connection() as conn:
            rows = conn.execute(
                "SELECT id, date, weight, unit, notes FROM weight_entries WHERE profile_id = ? ORDER BY date DESC",
                (self._profile_id(),),
            ).fetchall()
        return [
            WeightEntry(
                id=row["id"],
                date=datetime.fromisoformat(row["date"]),
                weight=row["weight"],
                unit=row["unit"],
                notes=row["notes"],
            )
            for row in rows
        ]

    # water

    def add_water_intake(self, entry: WaterIntakeEntry) -> WaterIntakeEntry:
        with self.store.get_connection() as conn:
            conn.execute(
                "INSERT INTO water_intake_entries (id, profile_id, date, amount, unit) VALUES (?, ?, ?, ?, ?)",
                (entry.id, self._profile_id(), entry.date.astimezone(timezone.utc).isoformat(), entry.amount, entry.unit),
            )
            conn.commit()
        return entry

    def list_water_intake(self, day: date) -> List[WaterIntakeEntry]:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        with self.store.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT id, date, amount, unit FROM water_intake_entries
                WHERE profile_id = ? AND date >= ? AND date < ?
                ORDER BY date
                """,
                (self._profile_id(), start.isoformat(), end.isoformat()),
            ).fetchall()
        return [
            WaterIntakeEntry(
                id=row["id"],
                date=datetime.fromisoformat(row["date"]),
                amount=row["amount"],
                unit=row["unit"],
            )
            for row in rows
        ]

    def daily_water_total_ml(self, day: date) -> float:
        return sum(entry.amount_in_ml for entry in self.list_water_intake(day))

    # kick counts

    def start_kick_session(self, now: Optional[datetime] = None) -> KickSession:
        session = KickSession(start_date=now or _utcnow())
        with self.store.get_connection() as conn:
            conn.execute(
                "INSERT INTO kick_sessions (id, profile_id, start_date, kick_count) VALUES (?, ?, ?, 0)",
                (session.id, self._profile_id(), session.start_date.isoformat()),
            )
            conn.commit()
        return session

    def record_kick(self, session_id: str) -> KickSession:
        with self.store.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE kick_sessions SET kick_count = kick_count + 1 WHERE id = ? AND end_date IS NULL",
                (session_id,),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise StorageError(StorageErrorKind.NOT_FOUND, f"No active kick session {session_id}.")
        return self.get_kick_session(session_id)

    def stop_kick_session(self, session_id: str, now: Optional[datetime] = None) -> KickSession:
        with self.store.get_connection() as conn:
            conn.execute(
                "UPDATE kick_sessions SET end_date = ? WHERE id = ? AND end_date IS NULL",
                ((now or _utcnow()).isoformat(), session_id),
            )
            conn.commit()
        return self.get_kick_session(session_id)

    def get_kick_session(self, session_id: str) -> KickSession:
        with self.store.get_connection() as conn:
            row = conn.execute(
                "SELECT id, start_date, end_date, kick_count, notes FROM kick_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        if row is None:
            raise StorageError(StorageErrorKind.NOT_FOUND, f"Kick session {session_id} not found.")
        return KickSession(
            id=row["id"],
            start_date=datetime.fromisoformat(row["start_date"]),
            end_date=datetime.fromisoformat(row["end_date"]) if row["end_date"] else None,
            kick_count=row["kick_count"],
            notes=row["notes"],
        )

    # contractions

    def start_contraction(self, now: Optional[datetime] = None) -> Contraction:
        contraction = Contraction(start_date=now or _utcnow())
        with self.store.get_connection() as conn:
            conn.execute(
                "INSERT INTO contractions (id, profile_id, start_date) VALUES (?, ?, ?)",
                (contraction.id, self._profile_id(), contraction.start_date.isoformat()),
            )
            conn.commit()
        return contraction

    def stop_contraction(self, contraction_id: str, now: Optional[datetime] = None) -> Contraction:
        ended = now or _utcnow()
        with self.store.get_connection() as conn:
            row = conn.execute(
                "SELECT start_date FROM contractions WHERE id = ? AND end_date IS NULL",
                (contraction_id,),
            ).fetchone()
            if row is None:
                raise StorageError(StorageErrorKind.NOT_FOUND, f"No active contraction {contraction_id}.")
            duration = (ended - datetime.fromisoformat(row["start_date"])).total_seconds()
            conn.execute(
                "UPDATE contractions SET end_date = ?, duration_seconds = ? WHERE id = ?",
                (ended.isoformat(), duration, contraction_id),
            )
            conn.commit()
        return Contraction(
            id=contraction_id,
            start_date=ended - timedelta(seconds=duration),
            end_date=ended,
            duration_seconds=duration,
        )

    def list_contractions(self) -> List[Contraction]:
        with self.store.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT id, start_date, end_date, duration_seconds, notes FROM contractions
                WHERE profile_id = ? ORDER BY start_date DESC
                """,
                (self._profile_id(),),
            ).fetchall()
        return [
            Contraction(
                id=row["id"],
                start_date=datetime.fromisoformat(row["start_date"]),
                end_date=datetime.fromisoformat(row["end_date"]) if row["end_date"] else None,
                duration_seconds=row["duration_seconds"] or 0,
                notes=row["notes"],
            )
            for row in rows
        ]

    def contraction_stats(self) -> ContractionStats:
        stats = contraction_stats(self.list_contractions())
        if stats.should_go_to_hospital:
            logger.info("contractions match the 5-1-1 rule")
        return stats

    # symptoms

    def add_symptom_entry(self, entry: SymptomEntry) -> SymptomEntry:
        with self.store.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO symptom_entries (id, profile_id, date, symptom_type, severity, notes, duration)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    self._profile_id(),
                    entry.date.isoformat(),
                    entry.symptom_type.value,
                    entry.severity.value,
                    entry.notes,
                    entry.duration,
                ),
            )
            conn.commit()
        return entry

    def list_symptom_entries(self) -> List[SymptomEntry]:
        with self.store.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT id, date, symptom_type, severity, notes, duration FROM symptom_entries
                WHERE profile_id = ? ORDER BY date DESC
                """,
                (self._profile_id(),),
            ).fetchall()
        return [
            SymptomEntry(
                id=row["id"],
                date=datetime.fromisoformat(row["date"]),
                symptom_type=SymptomType(row["symptom_type"]),
                severity=SymptomSeverity(row["severity"]),
                notes=row["notes"],
                duration=row["duration"],
            )
            for row in rows
        ]

    def delete_symptom_entry(self, entry_id: str) -> None:
        self._delete_owned("symptom_entries", entry_id, "Symptom entry")

    # appointments

    def add_appointment(self, appointment: Appointment) -> Appointment:
        with self.store.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO appointments (
                    id, profile_id, title, appointment_type, date, location, doctor_name,
                    notes, reminder_enabled, reminder_date, is_completed
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    appointment.id,
                    self._profile_id(),
                    appointment.title,
                    appointment.appointment_type.value,
                    appointment.date.isoformat(),
                    appointment.location,
                    appointment.doctor_name,
                    appointment.notes,
                    1 if appointment.reminder_enabled else 0,
                    appointment.reminder_date.isoformat() if appointment.reminder_date else None,
                    1 if appointment.is_completed else 0,
                ),
            )
            conn.commit()
        return appointment

    def list_appointments(self) -> List[Appointment]:
        with self.store.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM appointments WHERE profile_id = ? ORDER BY date",
                (self._profile_id(),),
            ).fetchall()
        return [
            Appointment(
                id=row["id"],
                title=row["title"],
                appointment_type=AppointmentType(row["appointment_type"]),
                date=datetime.fromisoformat(row["date"]),
                location=row["location"],
                doctor_name=row["doctor_name"],
                notes=row["notes"],
                reminder_enabled=bool(row["reminder_enabled"]),
                reminder_date=datetime.fromisoformat(row["reminder_date"]) if row["reminder_date"] else None,
                is_completed=bool(row["is_completed"]),
            )
            for row in rows
        ]

    def split_appointments(self, now: Optional[datetime] = None) -> Tuple[List[Appointment], List[Appointment]]:
        """Upcoming appointments soonest first, past or completed ones most recent first."""
        moment = now or _utcnow()
        appointments = self.list_appointments()
        upcoming = [a for a in appointments if a.is_upcoming(moment)]
        past = [a for a in reversed(appointments) if not a.is_upcoming(moment)]
        return upcoming, past

    def complete_appointment(self, appointment_id: str) -> Appointment:
        with self.store.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE appointments SET is_completed = 1 WHERE id = ? AND profile_id = ?",
                (appointment_id, self._profile_id()),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise StorageError(StorageErrorKind.NOT_FOUND, f"Appointment {appointment_id} not found.")
        return next(a for a in self.list_appointments() if a.id == appointment_id)

    def delete_appointment(self, appointment_id: str) -> None:
        self._delete_owned("appointments", appointment_id, "Appointment")

    # hospital bag

    def _seed_hospital_bag(self, profile_id: str) -> None:
        with self.store.get_connection() as conn:
            conn.executemany(
                """
                INSERT INTO hospital_bag_items (id, profile_id, name, category, is_packed, is_custom, position)
                VALUES (?, ?, ?, ?, 0, 0, ?)
                """,
                [
                    (str(uuid4()), profile_id, name, category.value, position)
                    for position, (name, category) in enumerate(DEFAULT_HOSPITAL_BAG)
                ],
            )
            conn.commit()
        logger.info("hospital bag checklist seeded", extra={"items": len(DEFAULT_HOSPITAL_BAG)})

    def list_hospital_bag(self) -> List[HospitalBagItem]:
        """Return the checklist, filling in the default items the first time it is read."""
        profile_id = self._profile_id()
        query = """
            SELECT id, name, category, is_packed, is_custom FROM hospital_bag_items
            WHERE profile_id = ? ORDER BY position, rowid
        """
        with self.store.get_connection() as conn:
            rows = conn.execute(query, (profile_id,)).fetchall()
        if not rows:
            self._seed_hospital_bag(profile_id)
            with self.store.get_connection() as conn:
                rows = conn.execute(query, (profile_id,)).fetchall()
        return [
            HospitalBagItem(
                id=row["id"],
                name=row["name"],
                category=ChecklistCategory(row["category"]),
                is_packed=bool(row["is_packed"]),
                is_custom=bool(row["is_custom"]),
            )
            for row in rows
        ]

    def hospital_bag_summary(self) -> HospitalBagSummary:
        items = self.list_hospital_bag()
        packed = sum(1 for item in items if item.is_packed)
        return HospitalBagSummary(
            items=items,
            packed=packed,
            total=len(items),
            progress=packed / len(items) if items else 0.0,
        )

    def add_hospital_bag_item(self, name: str, category: ChecklistCategory) -> HospitalBagItem:
        profile_id = self._profile_id()
        # make sure the defaults exist so a custom item never suppresses them
        self.list_hospital_bag()
        item = HospitalBagItem(name=name.strip(), category=category, is_custom=True)
        with self.store.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO hospital_bag_items (id, profile_id, name, category, is_packed, is_custom, position)
                VALUES (?, ?, ?, ?, 0, 1,
                        (SELECT COALESCE(MAX(position), -1) + 1 FROM hospital_bag_items WHERE profile_id = ?))
                """,
                (item.id, profile_id, item.name, item.category.value, profile_id),
            )
            conn.commit()
        return item

    def set_item_packed(self, item_id: str, is_packed: bool) -> HospitalBagItem:
        with self.store.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE hospital_bag_items SET is_packed = ? WHERE id = ? AND profile_id = ?",
                (1 if is_packed else 0, item_id, self._profile_id()),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise StorageError(StorageErrorKind.NOT_FOUND, f"Checklist item {item_id} not found.")
        return next(item for item in self.list_hospital_bag() if item.id == item_id)

    def delete_hospital_bag_item(self, item_id: str) -> None:
        self._delete_owned("hospital_bag_items", item_id, "Checklist item")

    def _delete_owned(self, table: str, row_id: str, label: str) -> None:
        with self.store.get_connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE id = ? AND profile_id = ?",
                (row_id, self._profile_id()),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise StorageError(StorageErrorKind.NOT_FOUND, f"{label} {row_id} not found.")
