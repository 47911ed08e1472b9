"""Shared fixtures for termhost tests."""

import asyncio
import itertools
import json
import threading
from pathlib import Path

import pytest

import termhost.config as config
from termhost.pty_backend import PtyHandle
from termhost.sessions import PtyManager


# Snapshot the real config dir so we can detect accidental writes.
_REAL_CONFIG_FILE = Path("~/.config/termhost/config.json").expanduser()
_REAL_CONFIG_EXISTED = _REAL_CONFIG_FILE.exists()


@pytest.fixture(autouse=True)
def host_config(tmp_path):
    """Point config at a temp dir for every test.

    Returns a setter: host_config(kill_grace=0.05) writes config.json.
    """
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config.init(config_dir)

    def _set(**values):
        (config_dir / "config.json").write_text(json.dumps(values))
        config._host_config_cache = None
        return config.get_host_config()

    yield _set

    config.init(config.DEFAULT_CONFIG_DIR)
    if not _REAL_CONFIG_EXISTED and _REAL_CONFIG_FILE.exists():
        pytest.fail(f"Test created the real config file: {_REAL_CONFIG_FILE}")


# --- Fake PTY backend for registry/lifecycle tests ---

_fake_pids = itertools.count(40000)


class FakeHandle(PtyHandle):
    """In-memory PtyHandle. Tests drive output and exit by hand.

    By default terminate() makes the "process" exit from SIGHUP, like a
    shell would; set exit_on_terminate = False to simulate a child that
    ignores it. Like ptyprocess, writing after close() raises ValueError.
    """

    def __init__(self, argv, cwd, env, rows, cols):
        self.argv = argv
        self.cwd = cwd
        self.env = env
        self.rows = rows
        self.cols = cols
        self._pid = next(_fake_pids)
        self.written: list[bytes] = []
        self.resizes: list[tuple[int, int]] = []
        self.signals: list[str] = []
        self.exit_on_terminate = True
        self.reaped = False
        self.closed = False
        self._loop = None
        self._on_output = None
        self._on_eof = None
        self._exited = threading.Event()
        self._eof_sent = False
        self._status = (0, None)

    @property
    def pid(self) -> int:
        return self._pid

    def start(self, loop, on_output, on_eof):
        self._loop = loop
        self._on_output = on_output
        self._on_eof = on_eof

    def emit(self, data):
        """Deliver output as if the child had written it."""
        self._on_output(data)

    def exit(self, code=0, sig=None, eof=True):
        """End the "process".

        EOF is delivered on the next loop iteration unless eof=False, which
        stands in for a background job still holding the pty open.
        """
        if self._exited.is_set():
            return
        self._status = (128 + sig, sig) if sig else (code, None)
        self._exited.set()
        if eof:
            self.send_eof()

    def send_eof(self):
        if not self._eof_sent:
            self._eof_sent = True
            self._loop.call_soon(self._on_eof)

    def write(self, data):
        if self.closed:
            raise ValueError("write to closed file")
        self.written.append(data)

    def resize(self, rows, cols):
        if self.closed:
            raise ValueError("I/O operation on closed file")
        self.resizes.append((rows, cols))

    def terminate(self):
        self.signals.append("HUP")
        if self.exit_on_terminate:
            self.exit(sig=1)

    def force_kill(self):
        self.signals.append("KILL")
        self.exit(sig=9)

    def reap(self):
        self._exited.wait(timeout=30)
        self.reaped = True
        return self._status

    def close(self):
        self.closed = True


class FakeSpawner:
    """Callable spawn hook recording every FakeHandle it creates."""

    def __init__(self):
        self.handles: list[FakeHandle] = []
        self.error: Exception | None = None

    def __call__(self, argv, cwd, env, rows, cols):
        if self.error is not None:
            raise self.error
        handle = FakeHandle(argv, cwd, env, rows, cols)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
async def manager(spawner):
    """PtyManager backed by the fake spawner."""
    mgr = PtyManager(spawn=spawner, platform="linux")
    yield mgr
    mgr.destroy_all()
    for handle in spawner.handles:
        handle.exit()
    await settle(mgr)


async def settle(mgr: PtyManager, timeout: float = 2.0) -> None:
    """Let pending EOF callbacks run, then wait for the reapers."""
    for _ in range(3):
        await asyncio.sleep(0)
    await mgr.wait_closed(timeout=timeout)


@pytest.fixture(name="settle")
def settle_fixture():
    return settle
