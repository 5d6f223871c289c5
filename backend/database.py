# database.py — Async client for the hosted data service
# The hosted service owns durability, auth and object storage. This module
# speaks its three HTTP surfaces:
# - /rest/v1/<table>             row select/insert/update/delete
# - /auth/v1/...                 password sign-in, sign-up, refresh, sign-out
# - /storage/v1/object/...       uploads, removals, public URLs

import os
import logging
from typing import Optional, List, Dict, Any, Iterable, Tuple, Union
from urllib.parse import quote

import httpx

logger = logging.getLogger("hextask.data")

# Database configuration
SUPABASE_URL = os.getenv("SUPABASE_URL", "http://localhost:54321")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
BACKEND_TIMEOUT_SECONDS = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "10"))

Filters = Dict[str, Any]
Order = Iterable[Tuple[str, bool]]


class BackendError(Exception):
    """A request to the hosted data service failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self) -> str:
        return self.message


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    if hasattr(value, "value"):
        value = value.value
    return f"eq.{value}"


def _build_params(filters: Optional[Filters] = None, order: Optional[Order] = None) -> Dict[str, str]:
    params = {column: _filter_value(value) for column, value in (filters or {}).items()}
    if order:
        params["order"] = ",".join(
            f"{column}.{'asc' if ascending else 'desc'}" for column, ascending in order
        )
    return params


def _error_message(response: httpx.Response) -> Tuple[str, Optional[str]]:
    """Pull a human readable message out of a PostgREST/GoTrue/Storage error body"""
    try:
        body = response.json()
    except ValueError:
        return (response.text or response.reason_phrase or f"HTTP {response.status_code}"), None
    if not isinstance(body, dict):
        return str(body), None
    for key in ("message", "error_description", "msg", "error"):
        if body.get(key):
            code = body.get("code") or body.get("error_code")
            return str(body[key]), (str(code) if code is not None else None)
    return f"HTTP {response.status_code}", None


class DataService:
    """Typed wrapper over the hosted row, auth and storage APIs"""

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        api_key: str = SUPABASE_ANON_KEY,
        timeout: float = BACKEND_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"apikey": api_key},
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self, access_token: Optional[str] = None, **extra: str) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {access_token or self.api_key}"}
        headers.update(extra)
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise BackendError(f"Data service unreachable: {e}") from e
        if response.status_code >= 400:
            message, code = _error_message(response)
            logger.warning(f"{method} {path} → {response.status_code}: {message}")
            raise BackendError(message, status_code=response.status_code, code=code)
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> List[Dict[str, Any]]:
        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    # ============================================================
    # ROWS
    # ============================================================

    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[Order] = None,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = _build_params(filters, order)
        params["select"] = "*"
        response = await self._request(
            "GET", f"/rest/v1/{table}", params=params, headers=self._headers(access_token),
        )
        return self._rows(response)

    async def select_one(
        self,
        table: str,
        filters: Filters,
        access_token: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters=filters, access_token=access_token)
        return rows[0] if rows else None

    async def insert(
        self,
        table: str,
        rows: Union[Dict[str, Any], List[Dict[str, Any]]],
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        payload = rows if isinstance(rows, list) else [rows]
        response = await self._request(
            "POST", f"/rest/v1/{table}", json=payload,
            headers=self._headers(access_token, Prefer="return=representation"),
        )
        return self._rows(response)

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Filters,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        response = await self._request(
            "PATCH", f"/rest/v1/{table}", params=_build_params(filters), json=values,
            headers=self._headers(access_token, Prefer="return=representation"),
        )
        return self._rows(response)

    async def delete(
        self,
        table: str,
        filters: Filters,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        response = await self._request(
            "DELETE", f"/rest/v1/{table}", params=_build_params(filters),
            headers=self._headers(access_token, Prefer="return=representation"),
        )
        return self._rows(response)

    # ============================================================
    # AUTH
    # ============================================================

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", "/auth/v1/token", params={"grant_type": "password"},
            json={"email": email, "password": password}, headers=self._headers(),
        )
        return response.json()

    async def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", "/auth/v1/signup",
            json={"email": email, "password": password}, headers=self._headers(),
        )
        return response.json()

    async def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", "/auth/v1/token", params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token}, headers=self._headers(),
        )
        return response.json()

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/auth/v1/logout", headers=self._headers(access_token))

    async def get_auth_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """Current-session lookup. Returns None for an invalid or expired token."""
        try:
            response = await self._request("GET", "/auth/v1/user", headers=self._headers(access_token))
        except BackendError as e:
            if e.status_code in (401, 403):
                return None
            raise
        return response.json()

    # ============================================================
    # STORAGE
    # ============================================================

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        access_token: Optional[str] = None,
    ) -> str:
        await self._request(
            "POST", f"/storage/v1/object/{bucket}/{quote(path)}", content=content,
            headers=self._headers(access_token, **{"Content-Type": content_type, "x-upsert": "false"}),
        )
        return path

    async def remove(self, bucket: str, paths: List[str], access_token: Optional[str] = None) -> None:
        await self._request(
            "DELETE", f"/storage/v1/object/{bucket}", json={"prefixes": paths},
            headers=self._headers(access_token),
        )

    async def ping(self) -> bool:
        """Reachability check for the health endpoint"""
        try:
            await self._request("GET", "/rest/v1/users", params={"select": "id", "limit": "1"}, headers=self._headers())
        except BackendError:
            return False
        return True


_data_service: Optional[DataService] = None


def get_data_service() -> DataService:
    """Dependency for the shared data service client (FastAPI Depends)"""
    global _data_service
    if _data_service is None:
        _data_service = DataService()
    return _data_service


async def close_data_service():
    """Close the shared HTTP connection pool"""
    global _data_service
    if _data_service is not None:
        await _data_service.close()
        _data_service = None
