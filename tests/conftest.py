"""Pytest configuration and fixtures."""

import os

import pytest

from tierstore.backends import MemoryBackend
from tierstore.storage import TieredStorage


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Keep user config, data dirs and TIERSTORE_* variables out of tests."""
    original_env = os.environ.copy()
    for name in list(os.environ):
        if name.startswith("TIERSTORE_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.chdir(tmp_path)

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def temp_dir(tmp_path):
    """Directory for persistent backend data."""
    path = tmp_path / "store"
    path.mkdir()
    return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_backend(clock):
    return MemoryBackend(clock=clock)


@pytest.fixture
def storage(memory_backend, clock):
    """Storage over a single memory backend with a controllable clock."""
    store = TieredStorage(backends=[memory_backend], clock=clock)
    yield store
    store.close()


@pytest.fixture
def make_storage(clock):
    """Factory for storage instances that share the test clock."""
    created = []

    def factory(**kwargs):
        kwargs.setdefault("clock", clock)
        if "backends" not in kwargs:
            kwargs["backends"] = [MemoryBackend(clock=kwargs["clock"])]
        store = TieredStorage(**kwargs)
        created.append(store)
        return store

    yield factory

    for store in created:
        store.close()
