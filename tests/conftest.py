from __future__ import annotations

import os
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure the project root (which exposes ``agencydesk`` and ``api``) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")

from agencydesk import supabase_client
from api.main import app
from api.routers import imports


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class FakeQuery:
    """Subset of the postgrest query builder used by the application."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.operation = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: List[Any] = []
        self.order_by: Optional[tuple] = None
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*") -> "FakeQuery":
        self.operation = "select"
        self.columns = columns
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self.operation = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.row_limit = count
        return self

    def _project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if self.columns.strip() == "*":
            return dict(row)
        names = [name.strip() for name in self.columns.split(",")]
        return {name: row.get(name) for name in names}

    def execute(self) -> FakeResponse:
        error = self.db.errors.get((self.table_name, self.operation))
        if error is not None:
            raise error
        self.db.calls.append((self.table_name, self.operation))

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.operation == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                stored = {"id": str(uuid.uuid4()), **item}
                rows.append(stored)
                inserted.append(dict(stored))
            return FakeResponse(inserted)

        matched = [row for row in rows if all(f(row) for f in self.filters)]

        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(row) for row in matched])

        if self.operation == "delete":
            self.db.tables[self.table_name] = [row for row in rows if row not in matched]
            return FakeResponse([dict(row) for row in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(
                matched,
                key=lambda row: (row.get(column) is None, row.get(column) or ""),
                reverse=desc,
            )
        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        return FakeResponse([self._project(row) for row in matched])


class FakeSupabase:
    """In-memory stand-in for the supabase ``Client``."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.errors: Dict[tuple, Exception] = {}
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, table: str, operation: str, error: Exception) -> None:
        self.errors[(table, operation)] = error

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


@pytest.fixture(autouse=True)
def fake_supabase(monkeypatch) -> FakeSupabase:
    fake = FakeSupabase()
    monkeypatch.setattr(supabase_client, "_service_client", fake)
    return fake


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    imports.limiter.enabled = False
    with TestClient(app) as test_client:
        yield test_client
    imports.limiter.enabled = True


@pytest.fixture
def seed_clients(fake_supabase):
    def _seed(*records: Dict[str, Any]) -> List[Dict[str, Any]]:
        stored = []
        for record in records:
            row = {
                "id": str(uuid.uuid4()),
                "contact_name": None,
                "email": None,
                "phone": None,
                "notes": None,
                "status": "active",
                "avatar": "C",
                "created_at": "2026-01-05T10:00:00+00:00",
                "updated_at": "2026-01-05T10:00:00+00:00",
                **record,
            }
            fake_supabase.tables.setdefault("clients", []).append(row)
            stored.append(row)
        return stored

    return _seed
