"""Session orchestration across the identity provider and both storage backends.

A ``SessionController`` is the one place that owns the signed-in user's
in-memory state (profile, moods, vaccine schedule) and the two persisted
flags. It is built with its collaborators and does its startup work in
``start()``. All mutation happens on the event loop that drives it, so only
one coroutine touches that state at a time; every await is followed by a
generation check so that results arriving after a logout are dropped.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Callable, List, Optional, Union

from pydantic import BaseModel

from .auth import AuthService, AuthSession
from .db import AUTH_TOKEN_KEY, LOGGED_IN_FLAG, ONBOARDED_FLAG, LocalStore, same_person
from .errors import (
    AuthError,
    AuthErrorCode,
    MigrationError,
    StorageError,
    StorageErrorKind,
    ValidationError,
)
from .migration import Cipher, MigrationCoordinator
from .onboarding import validate_credentials
from .schedule import ScheduleTable
from .schemas import (
    MoodCheckIn,
    MoodType,
    StorageMode,
    SyncErrorEvent,
    UserProfile,
    VaccineItem,
    VaccineStatus,
)
from .storage import CloudBackend, LocalBackend, StorageBackend, select_backend
from .supabase import client_for_token
from .vaccines import build_schedule, merge_completions, refresh_statuses

logger = logging.getLogger(__name__)

CloudFactory = Callable[[AuthSession], CloudBackend]
Clock = Callable[[], datetime]


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    LOGGED_IN = "logged_in"


class SessionSnapshot(BaseModel):
    state: SessionState
    is_logged_in: bool
    has_completed_onboarding: bool
    profile_missing: bool
    using_local_cache: bool
    current_user: Optional[UserProfile] = None


def _default_cloud_factory(session: AuthSession) -> CloudBackend:
    return CloudBackend(client_for_token(session.access_token), session.uid)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _schedule_inputs(profile: Optional[UserProfile]) -> tuple:
    if profile is None:
        return ()
    return (profile.country, profile.user_type, profile.reference_date)


def _belongs_to(profile: UserProfile, uid: str, email: str) -> bool:
    # legacy profiles without an email cannot be told apart, so they are kept
    return profile.id == uid or not profile.email or same_person(profile.email, email)


class SessionController:
    def __init__(
        self,
        *,
        store: LocalStore,
        auth: AuthService,
        schedule_table: ScheduleTable,
        cipher: Optional[Cipher] = None,
        legacy_key: str = "currentUser",
        cloud_factory: Optional[CloudFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.auth = auth
        self.schedule_table = schedule_table
        self.local = LocalBackend(store, legacy_key=legacy_key)
        self.migration = (
            MigrationCoordinator(store, cipher, legacy_key=legacy_key) if cipher is not None else None
        )
        self._cloud_factory = cloud_factory or _default_cloud_factory
        self._clock = clock or _local_now

        self.state = SessionState.LOGGED_OUT
        self.current_user: Optional[UserProfile] = None
        self.moods: List[MoodCheckIn] = []
        self.vaccine_schedule: List[VaccineItem] = []
        self._schedule_owner: Optional[str] = None
        self.sync_errors: List[SyncErrorEvent] = []
        self.profile_missing = False
        self.using_local_cache = False
        self._generation = 0

    # -- flags -------------------------------------------------------------

    @property
    def is_logged_in(self) -> bool:
        return self.store.get_flag(LOGGED_IN_FLAG)

    @property
    def has_completed_onboarding(self) -> bool:
        return self.store.get_flag(ONBOARDED_FLAG)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state,
            is_logged_in=self.is_logged_in,
            has_completed_onboarding=self.has_completed_onboarding,
            profile_missing=self.profile_missing,
            using_local_cache=self.using_local_cache,
            current_user=self.current_user,
        )

    def _mark_logged_in(self, *, onboarded: bool) -> None:
        self.store.set_flag(LOGGED_IN_FLAG, True)
        if onboarded:
            self.store.set_flag(ONBOARDED_FLAG, True)
        self.state = SessionState.LOGGED_IN

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _remember_session(self, session: AuthSession) -> None:
        self.store.set_preference(AUTH_TOKEN_KEY, session.access_token.encode("utf-8"))

    # -- backends ----------------------------------------------------------

    def _cloud(self) -> Optional[CloudBackend]:
        session = self.auth.current_session
        return self._cloud_factory(session) if session is not None else None

    def _backend(self, mode: Optional[StorageMode] = None) -> StorageBackend:
        if mode is None:
            mode = self.current_user.storage_mode if self.current_user else StorageMode.DEVICE_ONLY
        return select_backend(mode, local=self.local, cloud=self._cloud())

    def _record_sync_error(self, operation: str, exc: Exception) -> None:
        logger.warning("background write failed", extra={"operation": operation, "error": str(exc)})
        self.sync_errors.append(SyncErrorEvent(operation=operation, detail=str(exc)))

    # -- startup -----------------------------------------------------------

    async def start(self) -> SessionSnapshot:
        """Run the legacy import, restore the auth session and load the user."""
        generation = self._begin()
        if self.migration is not None and self.migration.needs_migration():
            try:
                await self.migration.perform_migration()
            except MigrationError:
                logger.exception("legacy migration failed; it will be retried on next launch")

        token = self.store.get_preference(AUTH_TOKEN_KEY)
        if token:
            self.auth.restore(token.decode("utf-8"))

        self.current_user = self.store.get_profile()
        if not self.is_logged_in:
            self.state = SessionState.LOGGED_OUT
            return self.snapshot()

        self.state = SessionState.LOGGED_IN
        if self.current_user is None:
            self.current_user = await self.load_user_data()
        self.profile_missing = self.current_user is None
        self.load_vaccine_schedule()
        await self.refresh_moods(generation)
        return self.snapshot()

    async def load_user_data(self) -> Optional[UserProfile]:
        """Local store first, then the legacy blob. ``None`` when neither has a profile."""
        try:
            return await self.local.fetch_profile()
        except StorageError as exc:
            if exc.kind != StorageErrorKind.NOT_FOUND:
                raise
        if self.migration is None:
            return None
        try:
            return await self.migration.perform_migration()
        except MigrationError:
            logger.exception("legacy profile unreadable during login fallback")
            return None

    # -- login / onboarding ------------------------------------------------

    async def login(self, email: str, password: str) -> Optional[UserProfile]:
        generation = self._begin()
        self.state = SessionState.LOGGING_IN
        self.profile_missing = False
        self.using_local_cache = False
        try:
            session = await self.auth.sign_in(email, password)
        except AuthError:
            self.state = SessionState.LOGGED_OUT
            raise
        if not self._is_current(generation):
            # a logout landed while signing in
            if self.auth.current_session is session:
                self.auth.current_session = None
            return None
        self._remember_session(session)

        try:
            profile = await self._cloud_factory(session).fetch_profile()
        except StorageError as exc:
            if not self._is_current(generation):
                return None
            logger.warning(
                "cloud profile unavailable, falling back to local data",
                extra={"uid": session.uid, "kind": exc.kind.value},
            )
            return await self._login_from_local(generation, session.uid, email)

        if not self._is_current(generation):
            return None
        self.current_user = profile
        self.store.upsert_profile(profile)
        self._mark_logged_in(onboarded=True)
        self.load_vaccine_schedule()
        await self.refresh_moods(generation)
        logger.info("logged in with cloud profile", extra={"uid": session.uid})
        return profile

    async def _login_from_local(self, generation: int, uid: str, email: str) -> Optional[UserProfile]:
        profile = await self.load_user_data()
        if not self._is_current(generation):
            return None
        if profile is not None and not _belongs_to(profile, uid, email):
            logger.warning("local profile belongs to another account, ignoring it", extra={"uid": uid})
            profile = None
        self.current_user = profile
        if profile is None:
            # an auth account alone is enough to enter the app
            self.profile_missing = True
            self.moods = []
            self.vaccine_schedule = []
            self._mark_logged_in(onboarded=False)
            logger.warning("logged in without any profile data")
            return None

        self.using_local_cache = True
        self._mark_logged_in(onboarded=True)
        self.load_vaccine_schedule()
        self.moods = await self.local.fetch_moods()
        return profile

    async def complete_onboarding(
        self,
        user: UserProfile,
        password: str,
        storage_mode: StorageMode,
        wants_reminders: bool,
    ) -> UserProfile:
        validate_credentials(user.email, password)
        if user.reference_date is None:
            raise ValidationError("dates", "A due date or birth date is required.")

        generation = self._begin()
        self.state = SessionState.LOGGING_IN
        try:
            # every storage mode gets an auth account
            session = await self.auth.sign_up(user.email, password)
        except AuthError:
            self.state = SessionState.LOGGED_OUT
            raise
        self._remember_session(session)

        profile = user.model_copy(
            update={
                "id": session.uid,
                "storage_mode": storage_mode,
                "notifications_wanted": wants_reminders,
                "privacy_accepted_at": self._clock(),
            }
        )
        if storage_mode == StorageMode.CLOUD:
            try:
                profile = await self._cloud_factory(session).create_or_update_profile(profile)
            except StorageError:
                self.state = SessionState.LOGGED_OUT
                raise
        if not self._is_current(generation):
            return profile

        self.store.upsert_profile(profile)
        self.current_user = profile
        self.profile_missing = False
        self.using_local_cache = False
        self.moods = []
        self._mark_logged_in(onboarded=True)
        self.load_vaccine_schedule()
        logger.info(
            "onboarding completed",
            extra={"uid": session.uid, "storage_mode": storage_mode.value},
        )
        return profile

    # -- logout / deletion -------------------------------------------------

    async def logout(self) -> None:
        """Clear the logged-in flag only; profile data stays on the device."""
        self._begin()
        try:
            await self.auth.sign_out()
        except AuthError as exc:
            logger.warning("sign out failed", extra={"error": str(exc)})
        self.store.set_flag(LOGGED_IN_FLAG, False)
        self.store.delete_preference(AUTH_TOKEN_KEY)
        self.moods = []
        self.vaccine_schedule = []
        self.sync_errors = []
        self.state = SessionState.LOGGED_OUT

    async def delete_account(self) -> None:
        """Delete cloud data, the auth account and local data, in that order.

        The first failing step raises and the remaining steps are skipped, so
        the user stays logged in with data intact.
        """
        mode = self.current_user.storage_mode if self.current_user else StorageMode.DEVICE_ONLY
        if mode == StorageMode.CLOUD:
            cloud = self._cloud()
            if cloud is None:
                raise AuthError(AuthErrorCode.NOT_AUTHENTICATED)
            await cloud.delete_all_user_data()
        await self.auth.delete_account()
        await self.local.delete_all_user_data()

        self._begin()
        self.current_user = None
        self.moods = []
        self.vaccine_schedule = []
        self.sync_errors = []
        self.profile_missing = False
        self.using_local_cache = False
        self.state = SessionState.LOGGED_OUT
        logger.info("account deleted", extra={"storage_mode": mode.value})

    # -- profile -----------------------------------------------------------

    def _require_user(self) -> UserProfile:
        if self.current_user is None:
            raise StorageError(StorageErrorKind.NOT_FOUND, "No active profile.")
        return self.current_user

    async def update_profile(self, profile: UserProfile) -> UserProfile:
        """Save locally, then push to the cloud when it is authoritative.

        A failed cloud write is logged and dropped; the local save stands.
        """
        previous = self.current_user
        self.store.upsert_profile(profile)
        self.current_user = profile
        if profile.storage_mode == StorageMode.CLOUD:
            try:
                await self._backend(StorageMode.CLOUD).create_or_update_profile(profile)
            except (StorageError, AuthError) as exc:
                self._record_sync_error("update_profile", exc)
        if _schedule_inputs(previous) != _schedule_inputs(profile):
            self.load_vaccine_schedule()
        return profile

    async def change_storage_mode(self, mode: StorageMode) -> UserProfile:
        """Switch the authoritative backend. Existing records stay where they were written."""
        user = self._require_user()
        return await self.update_profile(user.model_copy(update={"storage_mode": mode}))

    async def update_notifications(self, wanted: bool) -> UserProfile:
        user = self._require_user()
        return await self.update_profile(user.model_copy(update={"notifications_wanted": wanted}))

    # -- moods -------------------------------------------------------------

    async def add_mood_check_in(
        self, mood_type: MoodType, notes: Optional[str] = None
    ) -> MoodCheckIn:
        """Show the entry immediately; a failed backend write is recorded, not rolled back."""
        mood = MoodCheckIn(date=self._clock(), mood_type=mood_type, notes=notes)
        self.moods.insert(0, mood)
        try:
            await self._backend().save_mood(mood)
        except (StorageError, AuthError) as exc:
            self._record_sync_error("save_mood", exc)
        return mood

    async def delete_mood(self, mood_id: str) -> None:
        self.moods = [mood for mood in self.moods if mood.id != mood_id]
        try:
            await self._backend().delete_mood(mood_id)
        except (StorageError, AuthError) as exc:
            self._record_sync_error("delete_mood", exc)

    async def refresh_moods(self, generation: Optional[int] = None) -> List[MoodCheckIn]:
        """Replace the in-memory list with the authoritative backend's."""
        try:
            moods = await self._backend().fetch_moods()
        except (StorageError, AuthError) as exc:
            logger.warning("mood fetch failed", extra={"error": str(exc)})
            return self.moods
        if generation is not None and not self._is_current(generation):
            return self.moods
        self.moods = moods
        return moods

    # -- vaccines ----------------------------------------------------------

    def load_vaccine_schedule(self, now: Optional[Union[date, datetime]] = None) -> List[VaccineItem]:
        """Rebuild the schedule, carrying the same user's completions over by item id."""
        user = self.current_user
        if user is None:
            self.vaccine_schedule = []
            self._schedule_owner = None
            return self.vaccine_schedule
        items = build_schedule(user, self.schedule_table, now or self._clock())
        completions = self.store.list_vaccine_completions(user.id)
        if self._schedule_owner == user.id:
            for item in self.vaccine_schedule:
                if item.completed_date is not None:
                    completions.setdefault(item.id, item.completed_date)
        self.vaccine_schedule = merge_completions(items, completions)
        self._schedule_owner = user.id
        return self.vaccine_schedule

    def refresh_vaccine_statuses(self, now: Optional[Union[date, datetime]] = None) -> List[VaccineItem]:
        self.vaccine_schedule = refresh_statuses(self.vaccine_schedule, now or self._clock())
        return self.vaccine_schedule

    def mark_vaccine_completed(self, item_id: str, when: Optional[datetime] = None) -> VaccineItem:
        completed_at = when or self._clock()
        for index, item in enumerate(self.vaccine_schedule):
            if item.id == item_id:
                updated = item.model_copy(
                    update={"status": VaccineStatus.COMPLETED, "completed_date": completed_at}
                )
                self.vaccine_schedule[index] = updated
                if self.current_user is not None:
                    self.store.set_vaccine_completion(self.current_user.id, item_id, completed_at)
                return updated
        raise StorageError(StorageErrorKind.NOT_FOUND, f"Vaccine {item_id} is not in the schedule.")
