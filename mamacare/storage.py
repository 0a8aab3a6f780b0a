"""Interchangeable profile/mood backends: the on-device store and the cloud store."""
from __future__ import annotations

import abc
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from .db import LocalStore
from .errors import AuthError, AuthErrorCode, StorageError, StorageErrorKind
from .schemas import MoodCheckIn, StorageMode, UserProfile
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)

PROFILE_TABLE = "users"
MOOD_TABLE = "moods"
MOOD_COLUMNS = "id,date,mood_type,notes"


class StorageBackend(abc.ABC):
    """Profile and mood CRUD shared by both backends.

    Fetches raise ``StorageError``; ``kind`` tells a missing record apart from
    an unreachable backend so callers can fall back.
    """

    mode: StorageMode

    @abc.abstractmethod
    async def create_or_update_profile(self, profile: UserProfile) -> UserProfile: ...

    @abc.abstractmethod
    async def fetch_profile(self) -> UserProfile: ...

    @abc.abstractmethod
    async def save_mood(self, mood: MoodCheckIn) -> None: ...

    @abc.abstractmethod
    async def fetch_moods(self) -> List[MoodCheckIn]: ...

    @abc.abstractmethod
    async def delete_mood(self, mood_id: str) -> None: ...

    @abc.abstractmethod
    async def delete_all_user_data(self) -> None: ...


class LocalBackend(StorageBackend):
    mode = StorageMode.DEVICE_ONLY

    def __init__(self, store: LocalStore, *, legacy_key: Optional[str] = None) -> None:
        self.store = store
        self.legacy_key = legacy_key

    def _require_profile_id(self) -> str:
        profile = self.store.get_profile()
        if profile is None:
            raise StorageError(StorageErrorKind.LOCAL, "No local profile to attach the record to.")
        return profile.id

    async def create_or_update_profile(self, profile: UserProfile) -> UserProfile:
        return self.store.upsert_profile(profile)

    async def fetch_profile(self) -> UserProfile:
        profile = self.store.get_profile()
        if profile is None:
            raise StorageError(StorageErrorKind.NOT_FOUND, "No profile on this device.")
        return profile

    async def save_mood(self, mood: MoodCheckIn) -> None:
        self.store.insert_mood(self._require_profile_id(), mood)

    async def fetch_moods(self) -> List[MoodCheckIn]:
        profile = self.store.get_profile()
        if profile is None:
            return []
        return self.store.list_moods(profile.id)

    async def delete_mood(self, mood_id: str) -> None:
        if not self.store.delete_mood(mood_id):
            raise StorageError(StorageErrorKind.NOT_FOUND, f"Mood {mood_id} not found on device.")

    async def delete_all_user_data(self) -> None:
        self.store.purge(legacy_key=self.legacy_key)


class CloudBackend(StorageBackend):
    """Per-user rows in the hosted store, keyed by the identity provider uid."""

    mode = StorageMode.CLOUD

    def __init__(self, supabase: SupabaseClient, user_id: str) -> None:
        self.supabase = supabase
        self.user_id = user_id

    async def create_or_update_profile(self, profile: UserProfile) -> UserProfile:
        payload = profile.model_dump(mode="json")
        payload["id"] = self.user_id
        rows = await self.supabase.upsert(PROFILE_TABLE, payload, on_conflict="id")
        if rows:
            return UserProfile.model_validate(rows[0])
        return profile.model_copy(update={"id": self.user_id})

    async def fetch_profile(self) -> UserProfile:
        rows = await self.supabase.select(
            PROFILE_TABLE,
            params={"select": "*", "id": f"eq.{self.user_id}", "limit": "1"},
        )
        if not rows:
            raise StorageError(StorageErrorKind.NOT_FOUND, f"No cloud profile for {self.user_id}.")
        try:
            return UserProfile.model_validate(rows[0])
        except PydanticValidationError as exc:
            raise StorageError(StorageErrorKind.NETWORK, f"Malformed cloud profile: {exc}") from exc

    async def save_mood(self, mood: MoodCheckIn) -> None:
        payload = mood.model_dump(mode="json")
        payload["user_id"] = self.user_id
        await self.supabase.insert(MOOD_TABLE, payload)

    async def fetch_moods(self) -> List[MoodCheckIn]:
        rows = await self.supabase.select(
            MOOD_TABLE,
            params={
                "select": MOOD_COLUMNS,
                "user_id": f"eq.{self.user_id}",
                "order": "date.desc",
            },
        )
        try:
            return [MoodCheckIn.model_validate(row) for row in rows]
        except PydanticValidationError as exc:
            raise StorageError(StorageErrorKind.NETWORK, f"Malformed cloud mood: {exc}") from exc

    async def delete_mood(self, mood_id: str) -> None:
        await self.supabase.delete(
            MOOD_TABLE,
            params={"id": f"eq.{mood_id}", "user_id": f"eq.{self.user_id}"},
        )

    async def delete_all_user_data(self) -> None:
        await self.supabase.delete(MOOD_TABLE, params={"user_id": f"eq.{self.user_id}"})
        await self.supabase.delete(PROFILE_TABLE, params={"id": f"eq.{self.user_id}"})
        logger.info("cloud data deleted", extra={"user_id": self.user_id})


def select_backend(
    mode: StorageMode,
    *,
    local: LocalBackend,
    cloud: Optional[CloudBackend],
) -> StorageBackend:
    if mode == StorageMode.CLOUD:
        if cloud is None:
            raise AuthError(AuthErrorCode.NOT_AUTHENTICATED)
        return cloud
    return local
