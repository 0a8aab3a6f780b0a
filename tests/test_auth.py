from __future__ import annotations

import asyncio
import time

import httpx
import jwt
import pytest

from mamacare.auth import AuthService, session_from_token
from mamacare.errors import AuthError, AuthErrorCode


def _service(handler) -> AuthService:
    return AuthService("http://auth.test", "anon-key", transport=httpx.MockTransport(handler))


def _session_body(uid: str = "uid-1", email: str = "ada@example.com") -> dict:
    return {"access_token": "access", "expires_in": 3600, "user": {"id": uid, "email": email}}


def test_sign_in_adopts_session() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_session_body())

    service = _service(handler)
    session = asyncio.run(service.sign_in("ada@example.com", "secret1"))

    assert session.uid == "uid-1"
    assert service.current_session is session
    assert seen[0].url.path == "/auth/v1/token"
    assert seen[0].url.params["grant_type"] == "password"
    assert seen[0].headers["apikey"] == "anon-key"


@pytest.mark.parametrize(
    "status,body,expected",
    [
        (400, {"error_code": "invalid_credentials", "msg": "Invalid login"}, AuthErrorCode.INVALID_CREDENTIALS),
        (400, {"error": "invalid_grant"}, AuthErrorCode.INVALID_CREDENTIALS),
        (404, {"error_code": "user_not_found"}, AuthErrorCode.USER_NOT_FOUND),
        (422, {"error_code": "email_exists"}, AuthErrorCode.EMAIL_ALREADY_IN_USE),
        (422, {"error_code": "weak_password"}, AuthErrorCode.WEAK_PASSWORD),
        (401, {}, AuthErrorCode.NOT_AUTHENTICATED),
        (500, {"message": "boom"}, AuthErrorCode.UNKNOWN),
    ],
)
def test_provider_errors_map_to_codes(status, body, expected) -> None:
    service = _service(lambda request: httpx.Response(status, json=body))

    with pytest.raises(AuthError) as excinfo:
        asyncio.run(service.sign_in("ada@example.com", "secret1"))

    assert excinfo.value.code == expected
    assert service.current_session is None


def test_unknown_error_keeps_provider_message() -> None:
    service = _service(lambda request: httpx.Response(500, json={"message": "boom"}))
    with pytest.raises(AuthError) as excinfo:
        asyncio.run(service.sign_in("ada@example.com", "secret1"))
    assert excinfo.value.message == "boom"


def test_transport_failure_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AuthError) as excinfo:
        asyncio.run(_service(handler).sign_in("ada@example.com", "secret1"))
    assert excinfo.value.code == AuthErrorCode.NETWORK_ERROR


def test_short_password_rejected_before_any_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(AuthError) as excinfo:
        asyncio.run(_service(handler).sign_up("ada@example.com", "12345"))
    assert excinfo.value.code == AuthErrorCode.WEAK_PASSWORD


def test_sign_up_without_session_falls_back_to_sign_in() -> None:
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/auth/v1/signup":
            return httpx.Response(200, json={"id": "uid-2", "email": "ada@example.com"})
        return httpx.Response(200, json=_session_body(uid="uid-2"))

    session = asyncio.run(_service(handler).sign_up("ada@example.com", "secret1"))

    assert session.uid == "uid-2"
    assert paths == ["/auth/v1/signup", "/auth/v1/token"]


def test_sign_out_without_session_is_a_no_op() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    service = _service(handler)
    asyncio.run(service.sign_out())
    assert service.current_session is None


def test_delete_account_requires_session() -> None:
    service = _service(lambda request: httpx.Response(200))
    with pytest.raises(AuthError) as excinfo:
        asyncio.run(service.delete_account())
    assert excinfo.value.code == AuthErrorCode.NOT_AUTHENTICATED


def test_delete_account_calls_rpc_with_bearer_token() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/auth/v1/token":
            return httpx.Response(200, json=_session_body())
        return httpx.Response(204)

    service = _service(handler)
    asyncio.run(service.sign_in("ada@example.com", "secret1"))
    asyncio.run(service.delete_account())

    assert seen[-1].url.path == "/rest/v1/rpc/delete_user"
    assert seen[-1].headers["Authorization"] == "Bearer access"
    assert service.current_session is None


def test_restore_reads_claims_and_rejects_expired_tokens() -> None:
    live = jwt.encode({"sub": "uid-3", "email": "a@b.c", "exp": int(time.time()) + 600}, "secret", algorithm="HS256")
    expired = jwt.encode({"sub": "uid-3", "exp": int(time.time()) - 600}, "secret", algorithm="HS256")
    service = _service(lambda request: httpx.Response(200))

    assert service.restore(expired) is None
    assert service.current_session is None

    session = service.restore(live)
    assert session is not None
    assert session.uid == "uid-3"
    assert session.email == "a@b.c"
    assert session_from_token("not-a-jwt") is None


def test_delete_account_failure_keeps_session() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/auth/v1/token":
            return httpx.Response(200, json=_session_body())
        raise httpx.ConnectError("offline", request=request)

    service = _service(handler)
    asyncio.run(service.sign_in("ada@example.com", "secret1"))

    with pytest.raises(AuthError) as excinfo:
        asyncio.run(service.delete_account())

    assert excinfo.value.code == AuthErrorCode.NETWORK_ERROR
    assert service.current_session is not None
