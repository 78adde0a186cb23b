from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

from prdeck.cache import CacheStore
from prdeck.config import Config
from prdeck.state import AppState
from prdeck.update import Env
from tests.factories import FakeClock, Recorder

# Keep the debug log out of the real state dir
os.environ["PRDECK_STATE_DIR"] = tempfile.mkdtemp(prefix="prdeck-test-state-")

CONFIG_ENV_VARS = (
    "CIRCLECI_TOKEN",
    "EDITOR",
    "VISUAL",
    "PRDECK_CONTAINER",
    "container",
    "REMOTE_CONTAINERS",
    "CODESPACES",
)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """No config-relevant environment, config dir under tmp_path."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("PRDECK_CONFIG_DIR", str(config_dir))
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return config_dir


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "cache.db"


@pytest.fixture
def store(cache_path: Path) -> CacheStore:
    return CacheStore(cache_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def env(store: CacheStore, clock: FakeClock, recorder: Recorder) -> Env:
    return Env(
        config=Config(),
        store=store,
        checkout=recorder.checkout,
        copy=recorder.copy,
        open_url=recorder.open_url,
        clock=clock,
    )


@pytest.fixture
def state() -> AppState:
    return AppState(repo_owner="acme", repo_name="widgets")
