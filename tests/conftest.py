"""
Pytest configuration and shared fixtures.

FakeSupabase stands in for supabase.Client: it keeps rows in memory and
emulates the PostgREST query builder calls the services make, plus the
schema's unique constraints and foreign keys (cascade / set null).
"""

import base64
import os

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault(
    "CLERK_WEBHOOK_SIGNING_SECRET",
    "whsec_" + base64.b64encode(b"test-webhook-signing-secret-0001").decode(),
)
os.environ.setdefault("GITHUB_CLIENT_ID", "test-github-client-id")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "test-github-client-secret")
os.environ.setdefault("EXTERNAL_API_RETRY_MIN_WAIT", "0")
os.environ.setdefault("EXTERNAL_API_RETRY_MAX_WAIT", "0")
os.environ.setdefault("FRONTEND_URL", "http://localhost:5173")

import copy
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError


# (columns, predicate) per table; predicate limits a partial unique index
UNIQUE_CONSTRAINTS = {
    "users": [(("id",), None), (("email",), None), (("username",), None)],
    "workspaces": [(("id",), None), (("owner_id",), lambda row: bool(row.get("is_default")))],
    "workspace_members": [(("workspace_id", "user_id"), None)],
    "git_integrations": [(("id",), None), (("user_id", "provider"), None)],
    "repositories": [(("id",), None), (("workspace_id", "full_name"), None)],
    "cursor_rules": [(("id",), None)],
    "webhook_deliveries": [(("id",), None)],
    "user_ai_preferences": [(("user_id",), None)],
    "ai_usage_statistics": [(("id",), None)],
}

# (child table, child column, parent table, parent column, on delete)
FOREIGN_KEYS = [
    ("workspaces", "owner_id", "users", "id", "cascade"),
    ("workspace_members", "workspace_id", "workspaces", "id", "cascade"),
    ("workspace_members", "user_id", "users", "id", "cascade"),
    ("git_integrations", "user_id", "users", "id", "cascade"),
    ("repositories", "workspace_id", "workspaces", "id", "cascade"),
    ("repositories", "git_integration_id", "git_integrations", "id", "set null"),
    ("cursor_rules", "repository_id", "repositories", "id", "cascade"),
    ("user_ai_preferences", "user_id", "users", "id", "cascade"),
    ("ai_usage_statistics", "user_id", "users", "id", "cascade"),
    ("ai_usage_statistics", "workspace_id", "workspaces", "id", "cascade"),
    ("ai_usage_statistics", "repository_id", "repositories", "id", "cascade"),
]

TABLE_DEFAULTS = {
    "users": {"locale": "en-US", "email_verified": False, "two_factor_enabled": False, "provider": "email"},
    "workspaces": {"is_default": False},
    "repositories": {"topics": [], "stars_count": 0, "forks_count": 0, "is_private": False,
                     "last_synced_at": None, "sync_status": None, "sync_error": None},
    "cursor_rules": {"deleted_at": None, "is_active": False, "current_version": 1},
    "git_integrations": {"scopes": []},
    "user_ai_preferences": {"default_max_tokens": None, "total_tokens_used": 0, "total_requests_count": 0,
                            "last_used_at": None},
}

WRITE_OPS = ("insert", "update", "upsert", "delete")


class FakeDatabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self._failures: List[dict] = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def writes(self) -> List[tuple]:
        return [c for c in self.calls if c[1] in WRITE_OPS]

    def next_timestamp(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def fail_on(self, table: str, op: str, error: Optional[Exception] = None, times: Optional[int] = None,
                when: Optional[Callable[[dict], bool]] = None):
        """Make the next matching execute() raise (every time when times is None)."""
        self._failures.append({
            "table": table, "op": op, "times": times, "when": when,
            "error": error or APIError({"message": f"{op} on {table} failed", "code": "XX000"}),
        })

    def check_failure(self, table: str, op: str, payload: Any):
        for failure in self._failures:
            if failure["table"] != table or failure["op"] != op:
                continue
            if failure["when"] is not None and not failure["when"](payload):
                continue
            if failure["times"] is not None:
                if failure["times"] <= 0:
                    continue
                failure["times"] -= 1
            raise failure["error"]

    def seed(self, table: str, **values) -> Dict[str, Any]:
        row = self._with_defaults(table, values)
        self.rows(table).append(row)
        return copy.deepcopy(row)

    def _with_defaults(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(TABLE_DEFAULTS.get(table, {}))
        row.update(values)
        if table not in ("workspace_members", "user_ai_preferences"):
            row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", self.next_timestamp())
        if table in ("users", "repositories", "cursor_rules", "git_integrations", "user_ai_preferences"):
            row.setdefault("updated_at", row["created_at"])
        return row

    def check_constraints(self, table: str, row: Dict[str, Any], ignore: Optional[dict] = None):
        for columns, predicate in UNIQUE_CONSTRAINTS.get(table, []):
            if predicate is not None and not predicate(row):
                continue
            key = tuple(row.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for other in self.rows(table):
                if other is ignore:
                    continue
                if predicate is not None and not predicate(other):
                    continue
                if tuple(other.get(c) for c in columns) == key:
                    raise APIError({
                        "message": f'duplicate key value violates unique constraint on {table} ({", ".join(columns)})',
                        "code": "23505",
                    })
        for child, column, parent, parent_column, _ in FOREIGN_KEYS:
            if child != table or row.get(column) is None:
                continue
            if not any(p.get(parent_column) == row[column] for p in self.rows(parent)):
                raise APIError({
                    "message": f"insert or update on {table} violates foreign key constraint ({column})",
                    "code": "23503",
                })

    def delete_rows(self, table: str, victims: List[Dict[str, Any]]):
        ids = {id(r) for r in victims}
        self.tables[table] = [r for r in self.rows(table) if id(r) not in ids]
        for child, column, parent, parent_column, on_delete in FOREIGN_KEYS:
            if parent != table:
                continue
            keys = {r.get(parent_column) for r in victims}
            dependents = [r for r in self.rows(child) if r.get(column) in keys]
            if on_delete == "cascade":
                self.delete_rows(child, dependents)
            else:
                for r in dependents:
                    r[column] = None


class FakeQuery:
    def __init__(self, db: FakeDatabase, table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.count_mode = None
        self.payload = None
        self.on_conflict = ""
        self.filters: List[Callable[[dict], bool]] = []
        self.order_by: List[tuple] = []
        self.limit_n: Optional[int] = None
        self.range_bounds: Optional[tuple] = None

    # operations
    def select(self, columns: str = "*", count: Optional[str] = None):
        self.op, self.columns, self.count_mode = "select", columns, count
        return self

    def insert(self, data):
        self.op, self.payload = "insert", data
        return self

    def update(self, data):
        self.op, self.payload = "update", data
        return self

    def upsert(self, data, on_conflict: str = ""):
        self.op, self.payload, self.on_conflict = "upsert", data, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters and modifiers
    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda r: r.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) <= value)
        return self

    def is_(self, column, value):
        if value in (None, "null"):
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: r.get(column) == value)
        return self

    def order(self, column, desc: bool = False):
        self.order_by.append((column, desc))
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    def range(self, start: int, end: int):
        self.range_bounds = (start, end)
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [r for r in self.db.rows(self.table) if all(f(r) for f in self.filters)]

    def _project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        wanted = [c.strip() for c in self.columns.split(",")]
        return {c: copy.deepcopy(row.get(c)) for c in wanted}

    def execute(self):
        self.db.calls.append((self.table, self.op))
        self.db.check_failure(self.table, self.op, self.payload)
        handler = getattr(self, f"_execute_{self.op}")
        return handler()

    def _execute_select(self):
        rows = self._matching()
        for column, desc in reversed(self.order_by):
            rows = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        total = len(rows)
        if self.range_bounds is not None:
            start, end = self.range_bounds
            rows = rows[start:end + 1]
        if self.limit_n is not None:
            rows = rows[:self.limit_n]
        count = total if self.count_mode else None
        return SimpleNamespace(data=[self._project(r) for r in rows], count=count)

    def _execute_insert(self):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        inserted = []
        for values in payload:
            row = self.db._with_defaults(self.table, copy.deepcopy(values))
            self.db.check_constraints(self.table, row)
            self.db.rows(self.table).append(row)
            inserted.append(copy.deepcopy(row))
        return SimpleNamespace(data=inserted, count=None)

    def _execute_update(self):
        updated = []
        for row in self._matching():
            candidate = {**row, **copy.deepcopy(self.payload)}
            self.db.check_constraints(self.table, candidate, ignore=row)
            row.update(copy.deepcopy(self.payload))
            updated.append(copy.deepcopy(row))
        return SimpleNamespace(data=updated, count=None)

    def _execute_upsert(self):
        values = copy.deepcopy(self.payload)
        conflict_columns = [c.strip() for c in self.on_conflict.split(",") if c.strip()] or ["id"]
        for row in self.db.rows(self.table):
            if all(row.get(c) == values.get(c) for c in conflict_columns):
                row.update(values)
                return SimpleNamespace(data=[copy.deepcopy(row)], count=None)
        row = self.db._with_defaults(self.table, values)
        self.db.check_constraints(self.table, row)
        self.db.rows(self.table).append(row)
        return SimpleNamespace(data=[copy.deepcopy(row)], count=None)

    def _execute_delete(self):
        victims = self._matching()
        deleted = [copy.deepcopy(r) for r in victims]
        self.db.delete_rows(self.table, victims)
        return SimpleNamespace(data=deleted, count=None)


class FakeSupabase:
    def __init__(self, db: Optional[FakeDatabase] = None):
        self.db = db or FakeDatabase()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self.db, name)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def supabase(fake_db):
    return FakeSupabase(fake_db)


@pytest.fixture
def seed_user(fake_db):
    def _seed(user_id: str = "user_owner", email: Optional[str] = None, **values):
        return fake_db.seed("users", id=user_id, email=email or f"{user_id}@example.com", **values)
    return _seed


@pytest.fixture
def seed_workspace(fake_db):
    """Workspace with its OWNER membership, plus extra members as {user_id: role}."""
    def _seed(owner_id: str, name: str = "Test Workspace", members: Optional[Dict[str, str]] = None, **values):
        workspace = fake_db.seed("workspaces", owner_id=owner_id, name=name, **values)
        fake_db.seed("workspace_members", workspace_id=workspace["id"], user_id=owner_id, role="OWNER")
        for user_id, role in (members or {}).items():
            fake_db.seed("workspace_members", workspace_id=workspace["id"], user_id=user_id, role=role)
        return workspace
    return _seed


@pytest.fixture
def current_user():
    """Mutable identity returned by the get_current_user override"""
    return {"id": "user_owner", "sub": "user_owner", "email": "user_owner@example.com",
            "session_id": "sess_test", "claims": {}}


@pytest.fixture
def client(supabase, current_user):
    from fastapi.testclient import TestClient
    from app.main import app
    from app.core.dependencies import get_current_user
    from app.database.supabase_client import get_supabase, get_admin_supabase

    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_supabase] = lambda: supabase
    app.dependency_overrides[get_admin_supabase] = lambda: supabase
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_oauth_states():
    from app.modules.repositories.oauth_state import oauth_state_manager
    oauth_state_manager.clear()
    yield
    oauth_state_manager.clear()


@pytest.fixture
def clerk_user_data():
    """Builder for the `data` object of a Clerk user.created / user.updated event"""
    def _build(user_id: str = "user_new", first_name: Optional[str] = "Ada", last_name: Optional[str] = "Lovelace",
               email: Optional[str] = "ada@example.com", verified: bool = True, **extra):
        data = {
            "id": user_id,
            "first_name": first_name,
            "last_name": last_name,
            "username": None,
            "image_url": "https://img.clerk.com/ada.png",
            "email_addresses": [],
            "primary_email_address_id": None,
            "external_accounts": [],
        }
        if email:
            data["email_addresses"] = [{
                "id": "idn_primary",
                "email_address": email,
                "verification": {"status": "verified" if verified else "unverified"},
            }]
            data["primary_email_address_id"] = "idn_primary"
        data.update(extra)
        return data
    return _build


@pytest.fixture
def signed_webhook():
    """Builder for (headers, body) of a Svix-signed delivery using the configured secret"""
    import json
    import time
    from app.config.settings import settings
    from app.modules.webhooks.verifier import sign_payload

    def _build(event_type: str, data: dict, msg_id: Optional[str] = None, timestamp: Optional[int] = None,
               secret: Optional[str] = None):
        body = json.dumps({"type": event_type, "object": "event", "data": data}).encode()
        msg_id = msg_id or f"msg_{uuid.uuid4().hex}"
        timestamp = int(time.time()) if timestamp is None else timestamp
        signature = sign_payload(secret or settings.clerk_webhook_signing_secret, msg_id, timestamp, body)
        headers = {
            "svix-id": msg_id,
            "svix-timestamp": str(timestamp),
            "svix-signature": f"v1,{signature}",
            "content-type": "application/json",
        }
        return headers, body
    return _build
