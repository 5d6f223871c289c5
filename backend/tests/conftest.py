# tests/conftest.py — Shared test fixtures
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt, JWTError

# Verify sessions locally in tests
TEST_JWT_SECRET = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["SUPABASE_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["SUPABASE_URL"] = "http://data.test"
os.environ["SUPABASE_ANON_KEY"] = "anon-test-key"
os.environ["ENVIRONMENT"] = "test"

from auth import ALGORITHM, AUDIENCE
from board_state import BoardState, get_board
from database import BackendError, get_data_service
from main import app


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FakeDataService:
    """In-memory stand-in for the hosted row/auth/storage API.

    Set `failures[(operation, table)]` to a BackendError to make the next
    matching call raise it. `calls` records every write.
    """

    base_url = "http://data.test"

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {"users": [], "tasks": [], "documents": []}
        self.objects: Dict[str, bytes] = {}
        self.accounts: Dict[str, str] = {}
        self.failures: Dict[tuple, Exception] = {}
        self.calls: List[tuple] = []
        self.reachable = True

    def _maybe_fail(self, operation: str, table: str) -> None:
        error = self.failures.pop((operation, table), None)
        if error is not None:
            raise error

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        for column, value in (filters or {}).items():
            if hasattr(value, "value"):
                value = value.value
            if row.get(column) != value:
                return False
        return True

    # --- rows ---

    async def select(self, table, filters=None, order=None, access_token=None):
        self._maybe_fail("select", table)
        rows = [dict(r) for r in self.tables[table] if self._matches(r, filters)]
        for column, ascending in reversed(list(order or [])):
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=not ascending)
            # Store puts nulls last in either direction
            rows = present + missing
        return rows

    async def select_one(self, table, filters, access_token=None):
        rows = await self.select(table, filters=filters, access_token=access_token)
        return rows[0] if rows else None

    async def insert(self, table, rows, access_token=None):
        self._maybe_fail("insert", table)
        created = []
        for row in rows if isinstance(rows, list) else [rows]:
            stored = {"id": str(uuid.uuid4()), "created_at": _now_iso(), "updated_at": _now_iso(), **row}
            self.tables[table].append(stored)
            created.append(dict(stored))
        self.calls.append(("insert", table, rows))
        return created

    async def update(self, table, values, filters, access_token=None):
        self._maybe_fail("update", table)
        self.calls.append(("update", table, values, filters))
        updated = []
        for row in self.tables[table]:
            if self._matches(row, filters):
                row.update(values, updated_at=_now_iso())
                updated.append(dict(row))
        return updated

    async def delete(self, table, filters, access_token=None):
        self._maybe_fail("delete", table)
        self.calls.append(("delete", table, filters))
        removed = [r for r in self.tables[table] if self._matches(r, filters)]
        removed_ids = {r["id"] for r in removed}
        self.tables[table] = [
            r for r in self.tables[table]
            if r["id"] not in removed_ids and r.get("parent_id") not in removed_ids
        ]
        return removed

    # --- auth ---

    async def sign_in(self, email, password):
        self._maybe_fail("sign_in", "auth")
        if self.accounts.get(email) != password:
            raise BackendError("Invalid login credentials", status_code=400, code="invalid_grant")
        return self._session(email)

    async def sign_up(self, email, password):
        self._maybe_fail("sign_up", "auth")
        if email in self.accounts:
            raise BackendError("User already registered", status_code=422)
        self.accounts[email] = password
        return {"id": str(uuid.uuid4()), "email": email}

    async def refresh_session(self, refresh_token):
        self._maybe_fail("refresh", "auth")
        if not refresh_token.startswith("refresh-"):
            raise BackendError("Invalid Refresh Token", status_code=400)
        return self._session(refresh_token[len("refresh-"):])

    async def sign_out(self, access_token):
        self.calls.append(("sign_out", "auth", access_token))

    async def get_auth_user(self, access_token):
        self._maybe_fail("get_user", "auth")
        try:
            claims = jwt.decode(access_token, TEST_JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE)
        except JWTError:
            return None
        return {"id": claims["sub"], "email": claims.get("email")}

    def _session(self, email):
        return {
            "access_token": make_token(email),
            "refresh_token": f"refresh-{email}",
            "expires_in": 3600,
            "user": {"id": str(uuid.uuid4()), "email": email},
        }

    # --- storage ---

    def public_url(self, bucket, path):
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    async def upload(self, bucket, path, content, content_type="application/octet-stream", access_token=None):
        self._maybe_fail("upload", bucket)
        self.objects[f"{bucket}/{path}"] = content
        return path

    async def remove(self, bucket, paths, access_token=None):
        self._maybe_fail("remove", bucket)
        for path in paths:
            self.objects.pop(f"{bucket}/{path}", None)

    async def ping(self):
        return self.reachable

    async def close(self):
        pass


def make_token(email: str, sub: Optional[str] = None, expires_in: int = 3600) -> str:
    claims = {
        "sub": sub or str(uuid.uuid5(uuid.NAMESPACE_DNS, email)),
        "email": email,
        "aud": AUDIENCE,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, TEST_JWT_SECRET, algorithm=ALGORITHM)


def get_auth_headers(user: dict) -> dict:
    """Generate auth headers for a seeded user row"""
    return {"Authorization": f"Bearer {make_token(user['email'])}"}


def make_task(title: str, **fields) -> dict:
    row = {
        "id": str(uuid.uuid4()),
        "title": title,
        "description": None,
        "status": "backlog",
        "priority": "medium",
        "assignee_id": None,
        "parent_id": None,
        "due_date": None,
        "completed_at": None,
        "position": 0,
        "created_at": _now_iso(),
        "updated_at": _now_iso(),
    }
    row.update(fields)
    return row


@pytest.fixture
def fake_data():
    return FakeDataService()


@pytest.fixture
def board(fake_data):
    return BoardState(fake_data)


@pytest_asyncio.fixture(scope="function")
async def client(fake_data, board):
    """HTTP test client with the data service and board cache overridden"""
    app.dependency_overrides[get_data_service] = lambda: fake_data
    app.dependency_overrides[get_board] = lambda: board
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def test_user(fake_data):
    """The human user"""
    user = {
        "id": str(uuid.uuid4()),
        "name": "Hex Human",
        "email": "human@hextask.dev",
        "avatar_url": None,
        "is_ai": False,
        "created_at": "2024-01-01T00:00:00+00:00",
    }
    fake_data.tables["users"].append(user)
    fake_data.accounts[user["email"]] = "HumanPassword123!"
    return user


@pytest.fixture
def ai_user(fake_data):
    """The AI agent"""
    user = {
        "id": str(uuid.uuid4()),
        "name": "Hex Agent",
        "email": "agent@hextask.dev",
        "avatar_url": None,
        "is_ai": True,
        "created_at": "2024-01-02T00:00:00+00:00",
    }
    fake_data.tables["users"].append(user)
    return user


@pytest.fixture
def seed_tasks(fake_data):
    """Insert task rows straight into the fake store"""
    def _seed(*rows: dict) -> List[dict]:
        fake_data.tables["tasks"].extend(rows)
        return list(rows)
    return _seed
