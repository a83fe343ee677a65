"""
Pytest configuration and shared fixtures.

FakeSupabase stands in for the Supabase client: it keeps rows in dicts and
supports the query-builder calls the services make.
"""

import copy
import itertools
import os
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("ENVIRONMENT", "test")

from familyos.modules.auth.service import clear_auth_cache  # noqa: E402

_BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.columns = "*"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.limit_count = None
        self.offset_count = 0

    def select(self, columns: str = "*"):
        self.operation = "select"
        self.columns = columns
        return self

    def insert(self, payload):
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    def offset(self, count):
        self.offset_count = count
        return self

    def _matches(self, row) -> bool:
        return all(f(row) for f in self.filters)

    def _project(self, row):
        if self.columns.strip() == "*":
            return dict(row)
        return {c.strip(): row.get(c.strip()) for c in self.columns.split(",")}

    def execute(self):
        self.db.calls.append((self.table, self.operation))
        self.db.requests.append((self.table, self.operation, self.db.postgrest.token))
        if self.table in self.db.failing_tables:
            raise RuntimeError(f"{self.table} is unavailable")

        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for item in payload:
                row = dict(item)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", self.db.next_timestamp())
                rows.append(row)
                created.append(dict(row))
            return SimpleNamespace(data=created)

        matched = [row for row in rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self.operation == "delete":
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            return SimpleNamespace(data=[dict(row) for row in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: row.get(column) or "", reverse=desc)
        matched = matched[self.offset_count:]
        if self.limit_count is not None:
            matched = matched[:self.limit_count]
        return SimpleNamespace(data=[self._project(row) for row in matched])


class FakePostgrest:
    """Holds the bearer token table queries are sent with; None means anon"""

    def __init__(self):
        self.token = None

    def auth(self, token: str):
        self.token = token
        return self


class FakeAuth:
    """
    Token lookup plus the session-bound calls. users maps access tokens to
    users and is shared by every session made from the same FakeSupabase.
    """

    def __init__(self, users=None, revoked=None):
        self.users = {} if users is None else users
        self.revoked = [] if revoked is None else revoked
        self.session_token = None
        self.admin = SimpleNamespace(sign_out=self.revoked.append)

    def get_user(self, jwt: str):
        user = self.users.get(jwt)
        if user is None:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=user)

    def sign_in_with_password(self, credentials):
        for token, user in self.users.items():
            if user.email == credentials["email"] and credentials["password"] == "correct-horse":
                self.session_token = token
                return SimpleNamespace(user=user, session=SimpleNamespace(access_token=token))
        raise RuntimeError("Invalid login credentials")

    def sign_up(self, credentials):
        user_id = f"user-{len(self.users) + 1}"
        user = SimpleNamespace(id=user_id, email=credentials["email"], user_metadata={}, created_at=None)
        self.users[f"token-{user_id}"] = user
        self.session_token = f"token-{user_id}"
        return SimpleNamespace(user=user, session=None)

    def sign_out(self):
        self.session_token = None


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        # (table, operation, bearer token) per executed query, across sessions
        self.requests = []
        self.failing_tables = set()
        self.sessions = []
        self.auth = FakeAuth()
        self.postgrest = FakePostgrest()
        self._clock = itertools.count(1)

    def next_timestamp(self) -> str:
        return (_BASE_TIME + timedelta(seconds=next(self._clock))).isoformat()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def session(self) -> "FakeSupabase":
        """A separate client over the same data, with its own auth state and token"""
        view = copy.copy(self)
        view.auth = FakeAuth(self.auth.users, self.auth.revoked)
        view.postgrest = FakePostgrest()
        view.sessions = []
        self.sessions.append(view)
        return view

    def add_user(self, token: str, user_id: str, email: str = None):
        self.auth.users[token] = SimpleNamespace(
            id=user_id,
            email=email or f"{user_id}@example.com",
            user_metadata={},
            created_at=_BASE_TIME.isoformat(),
        )

    def add_family(self, owner_id: str, name: str = "Smiths", invite_code: str = "abc123def456") -> dict:
        family = {
            "id": str(uuid.uuid4()),
            "name": name,
            "owner_id": owner_id,
            "invite_code": invite_code,
            "icon": "🏠",
            "created_at": self.next_timestamp(),
        }
        self.tables.setdefault("family_groups", []).append(family)
        self.add_member(family["id"], owner_id, "owner")
        return family

    def add_member(self, group_id: str, user_id: str, role: str) -> dict:
        member = {
            "id": str(uuid.uuid4()),
            "group_id": group_id,
            "user_id": user_id,
            "role": role,
            "created_at": self.next_timestamp(),
        }
        self.tables.setdefault("group_members", []).append(member)
        return member

    def add_resource(self, table: str, group_id: str, created_by: str, edit_mode="public", **fields) -> dict:
        row = {
            "id": str(uuid.uuid4()),
            "group_id": group_id,
            "created_by": created_by,
            "edit_mode": edit_mode,
            "created_at": self.next_timestamp(),
        }
        row.update(fields)
        self.tables.setdefault(table, []).append(row)
        return row


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def family(fake_supabase) -> dict:
    """A family owned by 'owner-1' with member 'member-1' and viewer 'viewer-1'"""
    family = fake_supabase.add_family("owner-1")
    fake_supabase.add_member(family["id"], "member-1", "member")
    fake_supabase.add_member(family["id"], "viewer-1", "viewer")
    return family


@pytest.fixture(autouse=True)
def reset_auth_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()
