"""Shared test fixtures for remote-explorer tests."""

import asyncio

import pytest

from remote_explorer.bridge.base import FunctionBridge
from remote_explorer.config import ExplorerConfig
from remote_explorer.storage import SQLiteSessionStore


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class FakeBridge(FunctionBridge):
    """In-memory device.

    ``files`` maps absolute device paths to what a read returns: a string,
    ``None`` (not found) or an exception instance (raised). Paths missing
    from ``files`` read as not found. ``calls`` records every device path
    requested, in order.
    """

    def __init__(self, files=None, delay=0.0, prefix="../../../"):
        self.files = dict(files or {})
        self.delay = delay
        self.prefix = prefix
        self.calls = []

    async def call(self, function_name, parameters):
        device_path = parameters[0]
        self.calls.append(device_path)
        if self.delay:
            await asyncio.sleep(self.delay)
        path = "/" + device_path[len(self.prefix) :] if device_path.startswith(self.prefix) else device_path
        value = self.files.get(path)
        if isinstance(value, BaseException):
            raise value
        return value

    @property
    def requested_paths(self):
        return ["/" + c[len(self.prefix) :] for c in self.calls]


@pytest.fixture
def make_config():
    """Config factory with fast pacing and a caller-supplied bootstrap list."""

    def _make(bootstrap=("/etc/profile",), **kwargs):
        kwargs.setdefault("batch_delay_ms", 0)
        kwargs.setdefault("read_timeout_seconds", 2.0)
        return ExplorerConfig(bootstrap_paths=tuple(bootstrap), **kwargs)

    return _make


@pytest.fixture
def store():
    """In-memory session store, connected."""
    with SQLiteSessionStore(":memory:") as s:
        yield s


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "sessions.db"


@pytest.fixture
def profile_content():
    """An /etc/profile that defines one variable and references a two-variable template."""
    return (
        "export LINUX_BASIC_PATH=/basic\n"
        "source ${LINUX_BASIC_PATH}/3rd_ini/${INI_3RD}/global_env_setup.ini\n"
    )


@pytest.fixture
def fake_bridge():
    """The FakeBridge class, for tests that build their own device."""
    return FakeBridge
