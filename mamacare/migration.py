"""One-shot import of the legacy encrypted profile blob into the local store.

Older builds kept the whole profile as an encrypted JSON document under a
single preference key. On startup the session asks ``needs_migration()``;
when the blob is present and the structured store is still empty the blob is
decrypted, decoded and written as the local profile. The blob itself is kept
so a failed or partial import can be retried on the next launch.
"""
from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .db import LocalStore
from .errors import DecryptionError, MigrationError
from .schemas import DEFAULT_COUNTRY, EmergencyContact, StorageMode, UserProfile, UserType

logger = logging.getLogger(__name__)

# numeric dates in the legacy payload count seconds from 2001-01-01 UTC
LEGACY_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

LEGACY_USER_TYPES = {
    "I am pregnant": UserType.PREGNANT,
    "I have a child": UserType.HAS_CHILD,
}
LEGACY_STORAGE_MODES = {
    "Device-only": StorageMode.DEVICE_ONLY,
    "Cloud (Firebase)": StorageMode.CLOUD,
}


class Cipher(Protocol):
    def decrypt(self, payload: bytes) -> bytes: ...


class FernetCipher:
    def __init__(self, key: bytes) -> None:
        self._fernet = Fernet(key)

    def encrypt(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt(self, payload: bytes) -> bytes:
        try:
            return self._fernet.decrypt(payload)
        except InvalidToken as exc:
            raise DecryptionError("Legacy payload failed authentication.") from exc


def _legacy_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return LEGACY_EPOCH + timedelta(seconds=value)
        except (OverflowError, TypeError) as exc:
            raise ValueError(f"Legacy date out of range: {value!r}") from exc
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported legacy date value: {value!r}")


class LegacyEmergencyContact(BaseModel):
    id: Optional[str] = None
    name: str
    relationship: str = ""
    phone_number: str = Field(default="", alias="phoneNumber")
    email: str = ""

    model_config = ConfigDict(populate_by_name=True)


class LegacyUserRecord(BaseModel):
    """Shape of the JSON document stored by the legacy app."""

    id: Optional[str] = None
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    email: str = ""
    country: str = DEFAULT_COUNTRY
    mobile_number: str = Field(default="", alias="mobileNumber")
    user_type: Optional[str] = Field(default=None, alias="userType")
    expected_delivery_date: Optional[datetime] = Field(default=None, alias="expectedDeliveryDate")
    birth_date: Optional[datetime] = Field(default=None, alias="birthDate")
    storage_mode: Optional[str] = Field(default=None, alias="storageMode")
    privacy_accepted_at: Optional[datetime] = Field(default=None, alias="privacyAcceptedAt")
    notifications_wanted: bool = Field(default=True, alias="notificationsWanted")
    emergency_contacts: List[LegacyEmergencyContact] = Field(
        default_factory=list, alias="emergencyContacts"
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("expected_delivery_date", "birth_date", "privacy_accepted_at", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> Optional[datetime]:
        return _legacy_datetime(value)

    @staticmethod
    def _calendar_date(value: Optional[datetime]) -> Optional[date]:
        # the device stored local midnight; read it back in local time
        return value.astimezone().date() if value else None

    def to_profile(self) -> UserProfile:
        user_type = None
        if self.user_type:
            user_type = LEGACY_USER_TYPES.get(self.user_type) or UserType(self.user_type)
        storage_mode = StorageMode.DEVICE_ONLY
        if self.storage_mode:
            storage_mode = LEGACY_STORAGE_MODES.get(self.storage_mode) or StorageMode(self.storage_mode)
        fields = {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "country": self.country,
            "mobile_number": self.mobile_number,
            "user_type": user_type,
            "expected_delivery_date": self._calendar_date(self.expected_delivery_date),
            "birth_date": self._calendar_date(self.birth_date),
            "storage_mode": storage_mode,
            "privacy_accepted_at": self.privacy_accepted_at,
            "notifications_wanted": self.notifications_wanted,
            "emergency_contacts": [
                EmergencyContact(
                    **({"id": c.id} if c.id else {}),
                    name=c.name,
                    relationship=c.relationship,
                    phone_number=c.phone_number,
                    email=c.email,
                )
                for c in self.emergency_contacts
            ],
        }
        if self.id:
            fields["id"] = self.id.lower()
        return UserProfile(**fields)


class MigrationCoordinator:
    def __init__(self, store: LocalStore, cipher: Cipher, *, legacy_key: str) -> None:
        self.store = store
        self.cipher = cipher
        self.legacy_key = legacy_key

    def needs_migration(self) -> bool:
        return self.store.get_preference(self.legacy_key) is not None and not self.store.has_profile()

    async def perform_migration(self) -> Optional[UserProfile]:
        """Import the legacy profile; returns ``None`` when there is nothing to do."""
        if not self.needs_migration():
            return None

        blob = self.store.get_preference(self.legacy_key)
        try:
            plaintext = await asyncio.to_thread(self.cipher.decrypt, blob)
            record = LegacyUserRecord.model_validate(json.loads(plaintext))
            profile = record.to_profile()
            self.store.upsert_profile(profile)
        except (DecryptionError, PydanticValidationError, ValueError, ArithmeticError, TypeError) as exc:
            raise MigrationError(f"Legacy profile could not be imported: {exc}") from exc
        except sqlite3.Error as exc:
            raise MigrationError(f"Legacy profile could not be written: {exc}") from exc

        logger.info("legacy profile migrated", extra={"profile_id": profile.id})
        return profile
