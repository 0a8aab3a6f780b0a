import asyncio

import httpx
import pytest

from mamacare.errors import AuthError, AuthErrorCode, StorageError, StorageErrorKind
from mamacare.schemas import MoodCheckIn, MoodType, StorageMode
from mamacare.storage import CloudBackend, LocalBackend, select_backend
from mamacare.supabase import SupabaseClient

from .session_helpers import make_controller, make_profile, make_store


class FakeSupabase:
    def __init__(self, *, select_queue=None, upsert_result=None):
        self.select_queue = {table: list(items) for table, items in (select_queue or {}).items()}
        self.upsert_result = upsert_result or []
        self.calls = []

    async def select(self, table, params):
        self.calls.append(("select", table, params))
        queue = self.select_queue.get(table)
        if queue:
            return queue.pop(0)
        return []

    async def insert(self, table, payload):
        self.calls.append(("insert", table, payload))
        return []

    async def upsert(self, table, payload, *, on_conflict):
        self.calls.append(("upsert", table, payload, on_conflict))
        return self.upsert_result

    async def delete(self, table, params):
        self.calls.append(("delete", table, params))


def _client(handler) -> SupabaseClient:
    return SupabaseClient(
        base_url="http://db.test",
        anon_key="anon-key",
        access_token="access",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "status,kind",
    [
        (404, StorageErrorKind.NOT_FOUND),
        (409, StorageErrorKind.CONFLICT),
        (500, StorageErrorKind.NETWORK),
        (401, StorageErrorKind.NETWORK),
    ],
)
def test_supabase_status_codes_map_to_error_kinds(status, kind) -> None:
    client = _client(lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(StorageError) as excinfo:
        asyncio.run(client.select("users", {"select": "*"}))
    assert excinfo.value.kind == kind
    assert "table=users" in excinfo.value.detail


def test_supabase_unreachable_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(_client(handler).delete("moods", {"id": "eq.1"}))
    assert excinfo.value.kind == StorageErrorKind.NETWORK
    assert "unreachable" in excinfo.value.detail


def test_supabase_sends_auth_headers() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "1"}])

    rows = asyncio.run(_client(handler).upsert("users", {"id": "1"}, on_conflict="id"))

    assert rows == [{"id": "1"}]
    request = seen[0]
    assert request.url.path == "/rest/v1/users"
    assert request.url.params["on_conflict"] == "id"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer access"
    assert "merge-duplicates" in request.headers["Prefer"]


def test_cloud_fetch_profile_filters_by_uid() -> None:
    profile = make_profile(id="uid-1")
    supabase = FakeSupabase(select_queue={"users": [[profile.model_dump(mode="json")]]})
    backend = CloudBackend(supabase, "uid-1")

    fetched = asyncio.run(backend.fetch_profile())

    assert fetched == profile
    assert supabase.calls[0] == ("select", "users", {"select": "*", "id": "eq.uid-1", "limit": "1"})


def test_cloud_fetch_profile_missing_is_not_found() -> None:
    backend = CloudBackend(FakeSupabase(), "uid-1")
    with pytest.raises(StorageError) as excinfo:
        asyncio.run(backend.fetch_profile())
    assert excinfo.value.kind == StorageErrorKind.NOT_FOUND


def test_cloud_profile_write_is_keyed_by_uid() -> None:
    supabase = FakeSupabase()
    backend = CloudBackend(supabase, "uid-1")

    saved = asyncio.run(backend.create_or_update_profile(make_profile(id="local-id")))

    _, table, payload, on_conflict = supabase.calls[0]
    assert table == "users"
    assert payload["id"] == "uid-1"
    assert on_conflict == "id"
    assert saved.id == "uid-1"


def test_cloud_moods_are_scoped_and_ordered() -> None:
    newer = MoodCheckIn(mood_type=MoodType.GOOD)
    supabase = FakeSupabase(select_queue={"moods": [[newer.model_dump(mode="json")]]})
    backend = CloudBackend(supabase, "uid-1")

    asyncio.run(backend.save_mood(newer))
    moods = asyncio.run(backend.fetch_moods())

    assert moods == [newer]
    assert supabase.calls[0][2]["user_id"] == "uid-1"
    params = supabase.calls[1][2]
    assert params["order"] == "date.desc"
    assert params["user_id"] == "eq.uid-1"


def test_cloud_delete_all_removes_moods_before_profile() -> None:
    supabase = FakeSupabase()
    asyncio.run(CloudBackend(supabase, "uid-1").delete_all_user_data())

    assert [call[1] for call in supabase.calls] == ["moods", "users"]
    assert supabase.calls[0][2] == {"user_id": "eq.uid-1"}
    assert supabase.calls[1][2] == {"id": "eq.uid-1"}


def test_select_backend(tmp_path) -> None:
    local = LocalBackend(make_store(tmp_path))
    cloud = CloudBackend(FakeSupabase(), "uid-1")

    assert select_backend(StorageMode.DEVICE_ONLY, local=local, cloud=cloud) is local
    assert select_backend(StorageMode.DEVICE_ONLY, local=local, cloud=None) is local
    assert select_backend(StorageMode.CLOUD, local=local, cloud=cloud) is cloud
    with pytest.raises(AuthError) as excinfo:
        select_backend(StorageMode.CLOUD, local=local, cloud=None)
    assert excinfo.value.code == AuthErrorCode.NOT_AUTHENTICATED


def test_unreadable_response_body_is_network_error() -> None:
    client = _client(lambda request: httpx.Response(200, text="<html>bad gateway</html>"))
    with pytest.raises(StorageError) as excinfo:
        asyncio.run(client.select("users", {"select": "*"}))
    assert excinfo.value.kind == StorageErrorKind.NETWORK
    assert "unreadable" in excinfo.value.detail


def test_malformed_cloud_rows_are_network_errors() -> None:
    supabase = FakeSupabase(
        select_queue={
            "users": [[{"id": "uid-1", "storage_mode": "floppy"}]],
            "moods": [[{"id": "m-1", "mood_type": "ecstatic"}]],
        }
    )
    backend = CloudBackend(supabase, "uid-1")

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(backend.fetch_profile())
    assert excinfo.value.kind == StorageErrorKind.NETWORK

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(backend.fetch_moods())
    assert excinfo.value.kind == StorageErrorKind.NETWORK


def test_login_falls_back_to_local_when_cloud_profile_is_malformed(tmp_path) -> None:
    store = make_store(tmp_path)
    local = store.upsert_profile(make_profile(id="user-1", first_name="Local"))
    supabase = FakeSupabase(select_queue={"users": [[{"id": "user-1", "storage_mode": "floppy"}]]})
    controller = make_controller(store, cloud=CloudBackend(supabase, "user-1"))

    profile = asyncio.run(controller.login("ada@example.com", "secret1"))

    assert profile == local
    assert controller.using_local_cache
    assert controller.is_logged_in
