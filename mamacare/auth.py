"""Identity provider client (Supabase GoTrue over httpx)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import jwt

from .config import supabase_config
from .errors import AuthError, AuthErrorCode, StorageError, StorageErrorKind
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

_ERROR_CODE_MAP = {
    "invalid_credentials": AuthErrorCode.INVALID_CREDENTIALS,
    "invalid_grant": AuthErrorCode.INVALID_CREDENTIALS,
    "email_address_invalid": AuthErrorCode.INVALID_CREDENTIALS,
    "validation_failed": AuthErrorCode.INVALID_CREDENTIALS,
    "user_not_found": AuthErrorCode.USER_NOT_FOUND,
    "email_exists": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "user_already_exists": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "weak_password": AuthErrorCode.WEAK_PASSWORD,
    "no_authorization": AuthErrorCode.NOT_AUTHENTICATED,
    "bad_jwt": AuthErrorCode.NOT_AUTHENTICATED,
    "session_not_found": AuthErrorCode.NOT_AUTHENTICATED,
}


@dataclass
class AuthSession:
    uid: str
    email: Optional[str]
    access_token: str
    expires_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= datetime.now(tz=timezone.utc)


def map_auth_error(resp: httpx.Response) -> AuthError:
    try:
        body: Dict[str, Any] = resp.json() if resp.content else {}
    except ValueError:
        body = {}
    code = body.get("error_code") or body.get("error")
    message = body.get("msg") or body.get("error_description") or body.get("message") or resp.text
    mapped = _ERROR_CODE_MAP.get(code or "")
    if mapped is not None:
        return AuthError(mapped, message)
    if resp.status_code == 401:
        return AuthError(AuthErrorCode.NOT_AUTHENTICATED, message)
    return AuthError.unknown(message or f"Auth request failed with status {resp.status_code}")


def session_from_token(access_token: str) -> Optional[AuthSession]:
    """Read uid and expiry from a stored token without verifying its signature."""
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    uid = claims.get("sub")
    if not uid:
        return None
    exp = claims.get("exp")
    return AuthSession(
        uid=uid,
        email=claims.get("email"),
        access_token=access_token,
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
    )


class AuthService:
    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.transport = transport
        self.current_session: Optional[AuthSession] = None

    @classmethod
    def from_env(cls) -> "AuthService":
        base_url, anon_key = supabase_config()
        return cls(base_url, anon_key)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> httpx.Response:
        headers = {"apikey": self.anon_key, "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                resp = await client.request(
                    method, f"{self.base_url}{path}", json=json, params=params, headers=headers
                )
        except httpx.TransportError as exc:
            raise AuthError(AuthErrorCode.NETWORK_ERROR, str(exc)) from exc
        if resp.status_code >= 400:
            raise map_auth_error(resp)
        return resp

    def _adopt(self, data: Dict[str, Any]) -> AuthSession:
        token = data.get("access_token")
        user = data.get("user") or {}
        if not token or not user.get("id"):
            raise AuthError.unknown("Identity provider did not return a session.")
        expires_in = data.get("expires_in")
        expires_at = None
        if expires_in:
            expires_at = datetime.fromtimestamp(
                datetime.now(tz=timezone.utc).timestamp() + int(expires_in), tz=timezone.utc
            )
        self.current_session = AuthSession(
            uid=user["id"], email=user.get("email"), access_token=token, expires_at=expires_at
        )
        return self.current_session

    async def sign_up(self, email: str, password: str) -> AuthSession:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(AuthErrorCode.WEAK_PASSWORD)
        resp = await self._request("POST", "/auth/v1/signup", json={"email": email, "password": password})
        data = resp.json()
        if data.get("access_token"):
            session = self._adopt(data)
        else:
            # projects with autoconfirm return only the user; trade it for a session
            session = await self.sign_in(email, password)
        logger.info("auth account created", extra={"uid": session.uid})
        return session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = self._adopt(resp.json())
        logger.info("signed in", extra={"uid": session.uid})
        return session

    async def sign_out(self) -> None:
        session = self.current_session
        self.current_session = None
        if session is None:
            return
        await self._request("POST", "/auth/v1/logout", token=session.access_token)

    async def delete_account(self) -> None:
        session = self.current_session
        if session is None:
            raise AuthError(AuthErrorCode.NOT_AUTHENTICATED)
        client = SupabaseClient(self.base_url, self.anon_key, session.access_token, transport=self.transport)
        try:
            await client.rpc("delete_user")
        except StorageError as exc:
            code = (
                AuthErrorCode.NETWORK_ERROR if exc.kind == StorageErrorKind.NETWORK else AuthErrorCode.UNKNOWN
            )
            raise AuthError(code, exc.detail) from exc
        self.current_session = None
        logger.info("auth account deleted", extra={"uid": session.uid})

    def restore(self, access_token: str) -> Optional[AuthSession]:
        session = session_from_token(access_token)
        if session is None or session.is_expired:
            return None
        self.current_session = session
        return session
