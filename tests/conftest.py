# tests/conftest.py
import importlib
import itertools
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import pytest
from fastapi.testclient import TestClient

from storesched.domain.models import TaskRecord
from storesched.engine import HandlerRegistry, Scheduler, SchedulerConfig
from storesched.storage import SQLiteDB, TaskFilter, TaskRepo, apply_migrations

_counter = itertools.count(1)

T0 = 1_700_000_000_000

DEFAULT_ENV = {
    "STORESCHED_NODE_ID": "node-api",
    "STORESCHED_CHECK_INTERVAL_MS": "50",
    "STORESCHED_CLAIM_INTERVAL_MS": "50",
    "STORESCHED_RECAPTURE_DELAY_MS": "120000",
    "STORESCHED_EXPIRY_DELAY_MS": "86400000",
    "STORESCHED_LOG_LEVEL": "warning",
}


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def db(tmp_path: Path) -> SQLiteDB:
    db = SQLiteDB(tmp_path / "tasks.db")
    with db.session() as conn:
        apply_migrations(conn)
    return db


@pytest.fixture()
def make_scheduler(db: SQLiteDB, clock: FakeClock):
    """
    Factory for scheduler nodes sharing one database and one fake clock.

    Usage:
      a = make_scheduler("node-a")
      b = make_scheduler("node-b", check_interval_ms=1000)
    """

    def _make(node_id: str, *, registry: Optional[HandlerRegistry] = None, **cfg) -> Scheduler:
        return Scheduler(db, node_id, SchedulerConfig(**cfg), registry=registry, clock=clock)

    return _make


def all_tasks(db: SQLiteDB) -> list[TaskRecord]:
    with db.session() as conn:
        return TaskRepo(conn).find_matching(TaskFilter())


def insert_task(db: SQLiteDB, **fields) -> int:
    fields.setdefault("name", "noop")
    fields.setdefault("params", None)
    fields.setdefault("scheduled_time", T0)
    with db.session() as conn:
        return TaskRepo(conn).insert_one(TaskRecord(**fields))


def get_task(db: SQLiteDB, task_id: int) -> Optional[TaskRecord]:
    with db.session() as conn:
        found = TaskRepo(conn).find_matching(TaskFilter(ids=[task_id]))
    return found[0] if found else None


def _apply_env(monkeypatch: pytest.MonkeyPatch, db_path: Path, overrides: Optional[dict[str, str]] = None) -> None:
    monkeypatch.setenv("STORESCHED_DB_PATH", str(db_path))
    for k, v in DEFAULT_ENV.items():
        monkeypatch.setenv(k, v)
    if overrides:
        for k, v in overrides.items():
            monkeypatch.setenv(k, v)


@contextmanager
def _client_ctx(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, *, overrides: Optional[dict[str, str]] = None,
                db_path: Optional[Path] = None) -> Iterator[TestClient]:
    # Unique DB per client instance unless one is provided
    if db_path is None:
        n = next(_counter)
        db_path = tmp_path / f"api_{n}.db"

    _apply_env(monkeypatch, db_path, overrides)

    # Import after env is set; reload to avoid cross-test state
    app_mod = importlib.import_module("storesched.api.app")
    importlib.reload(app_mod)

    with TestClient(app_mod.app) as client:
        yield client


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """
    Default integration test client: one node, fast timers, fresh sqlite db.
    """
    with _client_ctx(monkeypatch, tmp_path) as c:
        yield c


@pytest.fixture()
def client_factory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """
    Factory for tests that need custom settings or a pre-populated DB.

    Usage:
      with client_factory(overrides={"STORESCHED_NODE_ID": "n2"}) as client:
          ...
    """

    def _make(*, overrides: Optional[dict[str, str]] = None, db_path: Optional[Path] = None):
        return _client_ctx(monkeypatch, tmp_path, overrides=overrides, db_path=db_path)

    return _make
