"""
Cross-platform PTY backend.

Uses ptyprocess on POSIX and pywinpty (ConPTY) on Windows. A PtyHandle owns
exactly one child process and its pseudo-terminal; the session manager is
the only thing that ever holds one.

Output delivery is event-driven: on POSIX the master fd is registered with
the event loop (add_reader); on Windows, where the pty handle isn't
selectable, a reader thread posts chunks back onto the loop. Either way
callbacks run on the loop thread, in the order the child wrote the bytes.
"""
from __future__ import annotations

import asyncio
import os
import select
import signal
import threading
from abc import ABC, abstractmethod
from typing import Callable

from .errors import SpawnError
from .logging_config import get_logger
from .platforms import current_platform, is_windows

logger = get_logger(__name__)

READ_CHUNK = 65536
DRAIN_CHUNKS = 64  # Upper bound on reads when closing; a background job may still be writing

OutputCallback = Callable[[bytes | str], None]
EofCallback = Callable[[], None]


class PtyHandle(ABC):
    """Abstract PTY process handle."""

    reaped: bool = False

    @property
    @abstractmethod
    def pid(self) -> int:
        """OS process id of the child."""

    @abstractmethod
    def start(self, loop: asyncio.AbstractEventLoop, on_output: OutputCallback, on_eof: EofCallback) -> None:
        """Begin delivering output. on_eof fires once when the pty has no more to give.

        EOF only means every holder of the slave side has let go; a
        background job can keep it open long after the child itself exits.
        """

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write to the child's input."""

    @abstractmethod
    def resize(self, rows: int, cols: int) -> None:
        """Resize the pty."""

    @abstractmethod
    def terminate(self) -> None:
        """Ask the child to exit (SIGHUP on POSIX)."""

    @abstractmethod
    def force_kill(self) -> None:
        """Kill the child outright."""

    @abstractmethod
    def reap(self) -> tuple[int, int | None]:
        """Block until the child exits and return (exit_code, signal).

        Called once, from the session's reaper thread, as soon as the
        session starts. Leaves the pty open; close() releases it.
        """

    @abstractmethod
    def close(self) -> None:
        """Deliver any output still buffered, stop reading, release the pty.

        Loop thread only. Idempotent.
        """


def _exit_status(exitstatus: int | None, signalstatus: int | None) -> tuple[int, int | None]:
    """Shell convention: a signalled child reports 128 + signal."""
    if signalstatus:
        return 128 + signalstatus, signalstatus
    return exitstatus or 0, None


class UnixPty(PtyHandle):
    """POSIX PTY using ptyprocess."""

    def __init__(self, proc):
        self._proc = proc
        self._loop: asyncio.AbstractEventLoop | None = None
        self._reading = False
        self._closed = False
        self.reaped = False

    @classmethod
    def spawn(cls, argv: list[str], cwd: str, env: dict[str, str], rows: int, cols: int) -> UnixPty:
        from ptyprocess import PtyProcess

        proc = PtyProcess.spawn(argv, cwd=cwd, env=env, dimensions=(rows, cols))
        # close() runs on the loop thread after the child is reaped; skip its sleep
        proc.delayafterclose = 0
        logger.debug("UnixPty spawned pid %d: %s", proc.pid, argv)
        return cls(proc)

    @property
    def pid(self) -> int:
        return self._proc.pid

    def start(self, loop, on_output, on_eof):
        self._loop = loop
        self._on_output = on_output
        self._on_eof = on_eof
        self._reading = True
        loop.add_reader(self._proc.fd, self._on_readable)

    def _on_readable(self) -> None:
        try:
            data = self._proc.read(READ_CHUNK)
        except EOFError:
            self._stop_reading()
            return
        except OSError as e:
            logger.debug("pid %d: pty read failed: %s", self._proc.pid, e)
            self._stop_reading()
            return
        self._on_output(data)

    def _stop_reading(self) -> None:
        if not self._reading:
            return
        self._reading = False
        if self._loop is not None:
            self._loop.remove_reader(self._proc.fd)
        self._on_eof()

    def write(self, data: bytes) -> None:
        self._proc.write(data)

    def resize(self, rows: int, cols: int) -> None:
        self._proc.setwinsize(rows, cols)

    def _signal(self, sig: int) -> None:
        # os.kill directly: PtyProcess.kill() calls waitpid, and the reaper
        # thread must be the only waitpid caller.
        if self.reaped:
            return
        try:
            os.kill(self._proc.pid, sig)
        except ProcessLookupError:
            pass

    def terminate(self) -> None:
        self._signal(signal.SIGHUP)

    def force_kill(self) -> None:
        self._signal(signal.SIGKILL)

    def reap(self) -> tuple[int, int | None]:
        self._proc.wait()
        self.reaped = True
        return _exit_status(self._proc.exitstatus, self._proc.signalstatus)

    def _drain(self) -> None:
        fd = self._proc.fd
        for _ in range(DRAIN_CHUNKS):
            ready, _, _ = select.select([fd], [], [], 0)
            if not ready:
                return
            try:
                data = self._proc.read(READ_CHUNK)
            except (EOFError, OSError):
                return
            self._on_output(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._reading:
            self._drain()
            self._reading = False
            self._loop.remove_reader(self._proc.fd)
        self._proc.close(force=True)


class WindowsPty(PtyHandle):
    """Windows PTY using pywinpty/ConPTY."""

    def __init__(self, proc):
        self._proc = proc
        self._thread: threading.Thread | None = None
        self._closed = False
        self.reaped = False

    @classmethod
    def spawn(cls, argv: list[str], cwd: str, env: dict[str, str], rows: int, cols: int) -> WindowsPty:
        try:
            from winpty import PtyProcess
        except ImportError:
            raise ImportError("pywinpty is required on Windows. Install with: pip install pywinpty")

        proc = PtyProcess.spawn(argv, cwd=cwd, env=env, dimensions=(rows, cols))
        logger.debug("WindowsPty spawned pid %d: %s", proc.pid, argv)
        return cls(proc)

    @property
    def pid(self) -> int:
        return self._proc.pid

    def start(self, loop, on_output, on_eof):
        def _pump():
            try:
                while True:
                    try:
                        data = self._proc.read(READ_CHUNK)
                    except EOFError:
                        break
                    if data:
                        loop.call_soon_threadsafe(on_output, data)
            except Exception as e:
                logger.debug("pid %d: pty reader stopped: %s", self._proc.pid, e)
            finally:
                loop.call_soon_threadsafe(on_eof)

        self._thread = threading.Thread(target=_pump, name=f"pty-reader-{self._proc.pid}", daemon=True)
        self._thread.start()

    def write(self, data: bytes) -> None:
        self._proc.write(data.decode("utf-8", errors="replace"))

    def resize(self, rows: int, cols: int) -> None:
        self._proc.setwinsize(rows, cols)

    def terminate(self) -> None:
        if self.reaped:
            return
        try:
            self._proc.kill(signal.SIGTERM)
        except OSError as e:
            logger.debug("pid %d: terminate failed: %s", self._proc.pid, e)

    def force_kill(self) -> None:
        self.terminate()

    def reap(self) -> tuple[int, int | None]:
        self._proc.wait()
        self.reaped = True
        return _exit_status(self._proc.exitstatus, None)

    def close(self) -> None:
        # The reader thread sees EOF once the handle closes and exits on its own
        if self._closed:
            return
        self._closed = True
        self._proc.close(force=True)


def spawn(
    argv: list[str],
    cwd: str,
    env: dict[str, str],
    rows: int,
    cols: int,
    platform: str | None = None,
) -> PtyHandle:
    """Start argv on a new pseudo-terminal. Raises SpawnError on failure."""
    backend = WindowsPty if is_windows(platform or current_platform()) else UnixPty
    try:
        return backend.spawn(argv, cwd, env, rows, cols)
    except ImportError:
        raise
    except Exception as e:
        raise SpawnError(f"Failed to start {argv[0]}: {e}", argv=argv, cwd=cwd) from e
