"""SQLite helpers for the on-device store."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .config import CONFIG
from .schemas import EmergencyContact, MoodCheckIn, MoodType, StorageMode, UserProfile, UserType

logger = logging.getLogger(__name__)

LOGGED_IN_FLAG = "isLoggedIn"
ONBOARDED_FLAG = "hasCompletedOnboarding"
AUTH_TOKEN_KEY = "authAccessToken"

# tables whose rows belong to the single local profile
PROFILE_OWNED_TABLES = (
    "moods",
    "vaccine_completions",
    "weight_entries",
    "water_intake_entries",
    "kick_sessions",
    "contractions",
    "symptom_entries",
    "appointments",
    "hospital_bag_items",
)


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> None:
    cursor = conn.execute(f"PRAGMA table_info({table})")
    existing = {row[1] for row in cursor.fetchall()}
    if column not in existing:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")


def _iso_or_none(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def same_person(stored_email: Optional[str], email: str) -> bool:
    stored = (stored_email or "").strip().lower()
    return bool(stored) and stored == email.strip().lower()


def _row_to_dict(row: Optional[sqlite3.Row]) -> Dict[str, Any]:
    if row is None:
        return {}
    return {key: row[key] for key in row.keys()}


def _row_to_profile(row: sqlite3.Row) -> UserProfile:
    data = _row_to_dict(row)
    contacts = json.loads(data.get("emergency_contacts_json") or "[]")
    return UserProfile(
        id=data["id"],
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
        email=data.get("email") or "",
        country=data["country"],
        mobile_number=data.get("mobile_number") or "",
        user_type=UserType(data["user_type"]) if data.get("user_type") else None,
        expected_delivery_date=(
            date.fromisoformat(data["expected_delivery_date"])
            if data.get("expected_delivery_date")
            else None
        ),
        birth_date=date.fromisoformat(data["birth_date"]) if data.get("birth_date") else None,
        storage_mode=StorageMode(data["storage_mode"]),
        privacy_accepted_at=(
            datetime.fromisoformat(data["privacy_accepted_at"])
            if data.get("privacy_accepted_at")
            else None
        ),
        notifications_wanted=bool(data.get("notifications_wanted")),
        emergency_contacts=[EmergencyContact.model_validate(item) for item in contacts],
    )


def _row_to_mood(row: sqlite3.Row) -> MoodCheckIn:
    return MoodCheckIn(
        id=row["id"],
        date=datetime.fromisoformat(row["date"]),
        mood_type=MoodType(row["mood_type"]),
        notes=row["notes"],
    )


class LocalStore:
    """On-device structured store. Holds at most one profile at a time."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.initialize_db()

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def initialize_db(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS preferences (
                    key TEXT PRIMARY KEY,
                    value BLOB,
                    updated_at TEXT NOT NULL
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    id TEXT PRIMARY KEY,
                    first_name TEXT,
                    last_name TEXT,
                    email TEXT,
                    country TEXT NOT NULL,
                    mobile_number TEXT,
                    user_type TEXT,
                    expected_delivery_date TEXT,
                    birth_date TEXT,
                    storage_mode TEXT NOT NULL DEFAULT 'device_only',
                    privacy_accepted_at TEXT,
                    notifications_wanted INTEGER DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            _ensure_column(conn, "profiles", "emergency_contacts_json", "TEXT")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS moods (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    mood_type TEXT NOT NULL,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vaccine_completions (
                    item_id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    completed_at TEXT NOT NULL,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS weight_entries (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    weight REAL NOT NULL,
                    unit TEXT NOT NULL DEFAULT 'kg',
                    notes TEXT,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS water_intake_entries (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    amount REAL NOT NULL,
                    unit TEXT NOT NULL DEFAULT 'ml',
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kick_sessions (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT,
                    kick_count INTEGER DEFAULT 0,
                    notes TEXT,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS contractions (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT,
                    duration_seconds REAL DEFAULT 0,
                    notes TEXT,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS symptom_entries (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    symptom_type TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    notes TEXT,
                    duration TEXT,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS appointments (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    appointment_type TEXT NOT NULL,
                    date TEXT NOT NULL,
                    location TEXT,
                    doctor_name TEXT,
                    notes TEXT,
                    reminder_enabled INTEGER DEFAULT 1,
                    reminder_date TEXT,
                    is_completed INTEGER DEFAULT 0,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS hospital_bag_items (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    is_packed INTEGER DEFAULT 0,
                    is_custom INTEGER DEFAULT 0,
                    position INTEGER DEFAULT 0,
                    FOREIGN KEY (profile_id) REFERENCES profiles(id)
                );
                """
            )
            conn.commit()

    # -- preferences -------------------------------------------------------

    def get_preference(self, key: str) -> Optional[bytes]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        if row is None or row["value"] is None:
            return None
        value = row["value"]
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    def set_preference(self, key: str, value: bytes) -> None:
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO preferences (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, sqlite3.Binary(value), _now_iso()),
            )
            conn.commit()

    def delete_preference(self, key: str) -> None:
        with self.get_connection() as conn:
            conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
            conn.commit()

    def get_flag(self, key: str) -> bool:
        return self.get_preference(key) == b"1"

    def set_flag(self, key: str, value: bool) -> None:
        self.set_preference(key, b"1" if value else b"0")

    # -- profile -----------------------------------------------------------

    def get_profile(self) -> Optional[UserProfile]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM profiles ORDER BY created_at LIMIT 1").fetchone()
        return _row_to_profile(row) if row else None

    def has_profile(self) -> bool:
        with self.get_connection() as conn:
            return conn.execute("SELECT id FROM profiles LIMIT 1").fetchone() is not None

    def upsert_profile(self, profile: UserProfile) -> UserProfile:
        """Write ``profile`` as the single local profile.

        A profile stored under a different id is replaced. When it belongs to
        the same person (same email, e.g. a migrated legacy record that later
        gets its cloud uid) its owned rows are re-keyed to the new id,
        otherwise they are deleted with it.
        """
        now = _now_iso()
        with self.get_connection() as conn:
            existing = conn.execute("SELECT id, email, created_at FROM profiles").fetchall()
            created_at = now
            for row in existing:
                if row["id"] == profile.id:
                    created_at = row["created_at"]
                    continue
                if same_person(row["email"], profile.email):
                    created_at = row["created_at"]
                    for table in PROFILE_OWNED_TABLES:
                        conn.execute(
                            f"UPDATE {table} SET profile_id = ? WHERE profile_id = ?",
                            (profile.id, row["id"]),
                        )
                else:
                    logger.info("replacing local profile of another user, dropping its rows")
                    for table in PROFILE_OWNED_TABLES:
                        conn.execute(f"DELETE FROM {table} WHERE profile_id = ?", (row["id"],))
                conn.execute("DELETE FROM profiles WHERE id = ?", (row["id"],))
            conn.execute(
                """
                INSERT INTO profiles (
                    id, first_name, last_name, email, country, mobile_number, user_type,
                    expected_delivery_date, birth_date, storage_mode, privacy_accepted_at,
                    notifications_wanted, emergency_contacts_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    email = excluded.email,
                    country = excluded.country,
                    mobile_number = excluded.mobile_number,
                    user_type = excluded.user_type,
                    expected_delivery_date = excluded.expected_delivery_date,
                    birth_date = excluded.birth_date,
                    storage_mode = excluded.storage_mode,
                    privacy_accepted_at = excluded.privacy_accepted_at,
                    notifications_wanted = excluded.notifications_wanted,
                    emergency_contacts_json = excluded.emergency_contacts_json,
                    updated_at = excluded.updated_at
                """,
                (
                    profile.id,
                    profile.first_name,
                    profile.last_name,
                    profile.email,
                    profile.country,
                    profile.mobile_number,
                    profile.user_type.value if profile.user_type else None,
                    _iso_or_none(profile.expected_delivery_date),
                    _iso_or_none(profile.birth_date),
                    profile.storage_mode.value,
                    _iso_or_none(profile.privacy_accepted_at),
                    1 if profile.notifications_wanted else 0,
                    json.dumps([c.model_dump() for c in profile.emergency_contacts]),
                    created_at,
                    now,
                ),
            )
            conn.commit()
        return profile

    # -- moods -------------------------------------------------------------

    def insert_mood(self, profile_id: str, mood: MoodCheckIn) -> None:
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO moods (id, profile_id, date, mood_type, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (mood.id, profile_id, mood.date.isoformat(), mood.mood_type.value, mood.notes, _now_iso()),
            )
            conn.commit()

    def list_moods(self, profile_id: str) -> List[MoodCheckIn]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT id, date, mood_type, notes FROM moods WHERE profile_id = ? ORDER BY date DESC",
                (profile_id,),
            ).fetchall()
        return [_row_to_mood(row) for row in rows]

    def delete_mood(self, mood_id: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM moods WHERE id = ?", (mood_id,))
            conn.commit()
            return cursor.rowcount > 0

    # -- vaccine completions -----------------------------------------------

    def set_vaccine_completion(self, profile_id: str, item_id: str, completed_at: datetime) -> None:
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO vaccine_completions (item_id, profile_id, completed_at) VALUES (?, ?, ?)
                ON CONFLICT(item_id) DO UPDATE SET
                    profile_id = excluded.profile_id, completed_at = excluded.completed_at
                """,
                (item_id, profile_id, completed_at.isoformat()),
            )
            conn.commit()

    def list_vaccine_completions(self, profile_id: str) -> Dict[str, datetime]:
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT item_id, completed_at FROM vaccine_completions WHERE profile_id = ?",
                (profile_id,),
            ).fetchall()
        return {row["item_id"]: datetime.fromisoformat(row["completed_at"]) for row in rows}

    # -- purge -------------------------------------------------------------

    def purge(self, *, legacy_key: Optional[str] = None) -> None:
        """Remove the profile, everything it owns and the session preferences.

        The legacy blob is removed only when ``legacy_key`` is given.
        """
        keys = [LOGGED_IN_FLAG, ONBOARDED_FLAG, AUTH_TOKEN_KEY]
        if legacy_key:
            keys.append(legacy_key)
        with self.get_connection() as conn:
            for table in PROFILE_OWNED_TABLES:
                conn.execute(f"DELETE FROM {table}")
            conn.execute("DELETE FROM profiles")
            conn.executemany("DELETE FROM preferences WHERE key = ?", [(key,) for key in keys])
            conn.commit()


@lru_cache
def get_local_store() -> LocalStore:
    return LocalStore(CONFIG.resolved_database_path)
