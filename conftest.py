"""Shared fixtures: in-memory record store, fake identity provider and address resolver."""
import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest

from examhall.address import AddressResolver
from examhall.config import EligibilityPolicy
from examhall.engine import AttemptEngine
from examhall.errors import InvalidCredentials, UniqueViolation
from examhall.gate import AccessGate
from examhall.identity import IdentityProvider
from examhall.schemas import Identity
from examhall.store import RecordStore

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


class InMemoryStore(RecordStore):
    """RecordStore over dicts, with the unique keys the real schema declares."""

    UNIQUE = {"exam_results": [("exam_id", "student_id")], "profiles": [("user_id",)]}

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.failures: Dict[str, Exception] = {}
        self.writes: List[tuple] = []
        self._seq = 0

    def _stamp(self) -> datetime:
        self._seq += 1
        return NOW - timedelta(days=1) + timedelta(seconds=self._seq)

    def seed(self, table: str, **row) -> Dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", self._stamp())
        self.tables[table].append(row)
        return row

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables[table]

    @staticmethod
    def _matches(row, filters) -> bool:
        return all(row.get(k) is None if v is None else row.get(k) == v for k, v in filters.items())

    async def _enter(self, op: str) -> None:
        await asyncio.sleep(0)
        if op in self.failures:
            raise self.failures[op]

    async def _select(self, table, filters, order, desc, limit):
        await self._enter("select")
        rows = [dict(r) for r in self.tables[table] if self._matches(r, filters)]
        if order:
            rows.sort(key=lambda r: (r.get(order) is None, r.get(order) or 0), reverse=desc)
        return rows[:limit] if limit else rows

    async def _insert(self, table, row):
        await self._enter("insert")
        row = dict(row)
        for key in self.UNIQUE.get(table, []):
            if any(all(r.get(k) == row.get(k) for k in key) for r in self.tables[table]):
                raise UniqueViolation()
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", self._stamp())
        self.tables[table].append(row)
        self.writes.append(("insert", table, row["id"]))
        return [dict(row)]

    async def _update(self, table, filters, patch):
        await self._enter("update")
        changed = []
        for row in self.tables[table]:
            if self._matches(row, filters):
                row.update(patch)
                changed.append(dict(row))
                self.writes.append(("update", table, row["id"]))
        return changed

    async def _delete(self, table, filters):
        await self._enter("delete")
        self.tables[table] = [r for r in self.tables[table] if not self._matches(r, filters)]


class FakeIdentity(IdentityProvider):
    def __init__(self):
        self.users: Dict[str, tuple] = {}
        self.current: Optional[Identity] = None
        self.sign_outs = 0

    def add_user(self, email: str, password: str = "secret") -> str:
        user_id = str(uuid4())
        self.users[email] = (password, user_id)
        return user_id

    async def sign_in(self, email, password):
        if email not in self.users or self.users[email][0] != password:
            raise InvalidCredentials()
        self.current = Identity(user_id=self.users[email][1], email=email)
        return self.current

    async def sign_out(self):
        self.sign_outs += 1
        self.current = None

    async def current_session(self):
        return self.current

    async def sign_up(self, email, password, full_name, is_supervisor):
        user_id = self.add_user(email, password)
        return Identity(user_id=user_id, email=email)


class FakeResolver(AddressResolver):
    def __init__(self, address: str = "203.0.113.7"):
        self.address = address
        self.error: Optional[Exception] = None
        self.calls = 0

    async def resolve_public_address(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.address


class StepSleep:
    """Clock sleep that only returns when the test releases ticks."""

    def __init__(self):
        self.tokens = asyncio.Semaphore(0)

    async def __call__(self, _seconds):
        await self.tokens.acquire()

    def release(self, ticks: int = 1) -> None:
        for _ in range(ticks):
            self.tokens.release()


async def instant_sleep(_seconds):
    await asyncio.sleep(0)


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def gate(store, identity, resolver):
    return AccessGate(store, identity, resolver)


@pytest.fixture
def engine(store):
    return AttemptEngine(store, policy=EligibilityPolicy.BLOCK_ON_ANY_RESULT, now=lambda: NOW)


@pytest.fixture
def exam(store):
    """Public, active two-item exam weighted {1, 1}."""
    row = store.seed(
        "exams", title="Networks midterm", duration_minutes=30, exam_privacy="public",
        is_active=True, total_marks=2,
    )
    store.seed("questions", exam_id=row["id"], question_text="Port for HTTPS?", option_a="22",
               option_b="80", option_c="443", option_d="8080", correct_answer="C", marks=1)
    store.seed("questions", exam_id=row["id"], question_text="Layer of IP?", option_a="2",
               option_b="3", option_c="4", option_d="7", correct_answer="B", marks=1)
    return row


@pytest.fixture
def items(store, exam):
    return [r for r in store.rows("questions") if r["exam_id"] == exam["id"]]


@pytest.fixture
def participant(store, identity):
    user_id = identity.add_user("student@example.com")
    return store.seed("profiles", user_id=user_id, email="student@example.com", full_name="Sam Student",
                      is_student=True, is_admin=False, is_super_admin=False)


@pytest.fixture
def supervisor(store, identity):
    user_id = identity.add_user("teacher@example.com")
    return store.seed("profiles", user_id=user_id, email="teacher@example.com", full_name="Tara Teacher",
                      is_student=False, is_admin=True, is_super_admin=False, admin_approved=True)
