import asyncio
import os
import tempfile
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, Iterator, List, Optional

import pytest

_TMP_DIR = Path(tempfile.mkdtemp(prefix="shortlink-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR / 'test.db'}")
os.environ.setdefault("LOG_DIR", str(_TMP_DIR / "logs"))
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.pop("REDIS_URL", None)

import shortlink.database.models  # noqa: E402,F401
from shortlink.links.models import ShortLink, Schedule  # noqa: E402
from shortlink.redirect.entries import AccessLogEntry  # noqa: E402
from shortlink.redirect.passwords import hash_password  # noqa: E402

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_link(**overrides) -> ShortLink:
    fields = dict(
        id=1,
        code="abc",
        target_url="https://a.com",
        owner_id=uuid.uuid4(),
        is_active=True,
        is_password_protected=False,
        password=None,
        is_time_restricted=False,
        expires_at=None,
        clicks=0,
    )
    fields.update(overrides)
    return ShortLink(**fields)


def make_schedule(**overrides) -> Schedule:
    fields = dict(
        id=1,
        shortlink_id=1,
        target_url="https://b.com",
        start_time=NOW.replace(hour=10),
        end_time=NOW.replace(hour=14),
        is_password_protected=False,
        password=None,
        is_active=True,
    )
    fields.update(overrides)
    return Schedule(**fields)


class FakeRepository:
    """In-memory RedirectRepository that records every write."""

    def __init__(self, links: Optional[List[ShortLink]] = None, schedules: Optional[List[Schedule]] = None):
        self.links: Dict[str, ShortLink] = {link.code: link for link in links or []}
        self.schedules: List[Schedule] = list(schedules or [])
        self.increments: List[tuple] = []
        self.entries: List[AccessLogEntry] = []
        self.fail_lookup = False
        self.fail_schedules = False
        self.fail_increment = False
        self.fail_entry = False

    async def get_short_link_by_code(self, code):
        if self.fail_lookup:
            raise ConnectionError("database unavailable")
        return self.links.get(code)

    async def get_active_schedules(self, shortlink_id):
        if self.fail_schedules:
            raise ConnectionError("database unavailable")
        return [s for s in self.schedules if s.shortlink_id == shortlink_id and s.is_active]

    async def increment_clicks(self, shortlink_id, delta=1):
        if self.fail_increment:
            raise ConnectionError("database unavailable")
        self.increments.append((shortlink_id, delta))

    async def create_access_log_entry(self, entry):
        if self.fail_entry:
            raise ConnectionError("database unavailable")
        self.entries.append(entry)

    async def delete_short_link(self, shortlink_id):
        return True


def fake_scope(repository: FakeRepository):
    @asynccontextmanager
    async def scope():
        yield repository
    return scope


@pytest.fixture(scope="session")
def secret_hash() -> str:
    return hash_password("secret", rounds=4)


@pytest.fixture(scope="session")
def other_hash() -> str:
    return hash_password("other", rounds=4)


async def _reset_database() -> None:
    from shortlink.database.base import Base
    from shortlink.database.database import engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture()
def owner() -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), is_active=True, email="owner@example.com")


@pytest.fixture()
def api_client(owner) -> Iterator["TestClient"]:
    from fastapi.testclient import TestClient

    from shortlink.auth.users import current_active_user
    from shortlink.main import app

    asyncio.run(_reset_database())
    app.dependency_overrides[current_active_user] = lambda: owner
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
