from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .config import supabase_config
from .errors import StorageError, StorageErrorKind

logger = logging.getLogger(__name__)


def _describe_response(resp: httpx.Response) -> str:
    try:
        return resp.text or "<empty response>"
    except Exception:
        return "<unable to read response>"


def _raise_supabase_error(
    resp: httpx.Response,
    action: str,
    *,
    object_label: Optional[str] = None,
) -> None:
    detail = _describe_response(resp)
    label = f" ({object_label})" if object_label else ""
    if resp.status_code == 404:
        kind = StorageErrorKind.NOT_FOUND
    elif resp.status_code == 409:
        kind = StorageErrorKind.CONFLICT
    else:
        kind = StorageErrorKind.NETWORK
    raise StorageError(
        kind,
        f"Supabase {action} failed{label}: status={resp.status_code}, body={detail}",
    )


def _decode(resp: httpx.Response, action: str, target: str) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise StorageError(
            StorageErrorKind.NETWORK,
            f"Supabase {action} returned unreadable body ({target}): {_describe_response(resp)}",
        ) from exc


@dataclass
class SupabaseClient:
    base_url: str
    anon_key: str
    access_token: str
    transport: Optional[httpx.AsyncBaseTransport] = None

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            async with httpx.AsyncClient(timeout=15.0, transport=self.transport) as client:
                return await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(headers),
                )
        except httpx.TransportError as exc:
            raise StorageError(
                StorageErrorKind.NETWORK, f"Supabase {method} {table} unreachable: {exc}"
            ) from exc

    async def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request("GET", table, params=params)
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "select", object_label=f"table={table}")
        return _decode(resp, "select", table)

    async def insert(self, table: str, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request(
            "POST",
            table,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "insert", object_label=f"table={table}")
        return _decode(resp, "insert", table) if resp.content else []

    async def upsert(
        self,
        table: str,
        payload: Dict[str, Any],
        *,
        on_conflict: str,
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=payload,
            headers={
                "Prefer": "resolution=merge-duplicates,return=representation",
            },
        )
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "upsert", object_label=f"table={table}")
        return _decode(resp, "upsert", table) if resp.content else []

    async def rpc(self, fn: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        resp = await self.request("POST", f"rpc/{fn}", json=payload or {})
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "rpc", object_label=f"fn={fn}")
        return _decode(resp, "rpc", fn) if resp.content else None

    async def delete(self, table: str, params: Dict[str, Any]) -> None:
        resp = await self.request("DELETE", table, params=params)
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "delete", object_label=f"table={table}")


def client_for_token(access_token: str) -> SupabaseClient:
    base_url, anon_key = supabase_config()
    return SupabaseClient(base_url=base_url, anon_key=anon_key, access_token=access_token)
