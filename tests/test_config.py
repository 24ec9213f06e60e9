# tests/test_config.py
from pathlib import Path

import pytest

from storesched.config import load_settings

_VARS = [
    "STORESCHED_DB_PATH",
    "STORESCHED_NODE_ID",
    "STORESCHED_CHECK_INTERVAL_MS",
    "STORESCHED_CLAIM_INTERVAL_MS",
    "STORESCHED_RECAPTURE_DELAY_MS",
    "STORESCHED_EXPIRY_DELAY_MS",
    "STORESCHED_VERBOSE",
    "STORESCHED_HANDLER_MODULES",
    "STORESCHED_HOST",
    "STORESCHED_PORT",
    "STORESCHED_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = load_settings()
    assert s.db_path == Path("./var/tasks.db")
    assert s.check_interval_ms == 10_000
    assert s.claim_interval_ms == 60_000
    assert s.recapture_delay_ms == 120_000
    assert s.expiry_delay_ms == 86_400_000
    assert s.verbose is False
    assert s.handler_modules == ()
    assert s.node_id
    assert s.port == 8000
    assert s.log_level == "info"


def test_generated_node_ids_differ():
    assert load_settings().node_id != load_settings().node_id


def test_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STORESCHED_NODE_ID", "node-7")
    monkeypatch.setenv("STORESCHED_CHECK_INTERVAL_MS", "250")
    monkeypatch.setenv("STORESCHED_VERBOSE", "yes")
    monkeypatch.setenv("STORESCHED_HANDLER_MODULES", "app.jobs, app.more ,")
    monkeypatch.setenv("STORESCHED_LOG_LEVEL", "DEBUG")

    s = load_settings()
    assert s.node_id == "node-7"
    assert s.check_interval_ms == 250
    assert s.verbose is True
    assert s.handler_modules == ("app.jobs", "app.more")
    assert s.log_level == "debug"


@pytest.mark.parametrize("name,value", [
    ("STORESCHED_CHECK_INTERVAL_MS", "0"),
    ("STORESCHED_CLAIM_INTERVAL_MS", "-1"),
    ("STORESCHED_RECAPTURE_DELAY_MS", "soon"),
    ("STORESCHED_EXPIRY_DELAY_MS", "0"),
    ("STORESCHED_VERBOSE", "maybe"),
    ("STORESCHED_PORT", "70000"),
])
def test_invalid_values_raise(monkeypatch: pytest.MonkeyPatch, name: str, value: str):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        load_settings()
