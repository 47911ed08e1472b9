"""PTY session manager — live shell/agent processes keyed by session id.

Each session owns one child process on a pseudo-terminal. Callers hold
only the id ("pty-N", never reused) and talk to the process through
write/resize/destroy. Output arrives on the session's on_data callback in
the order the process wrote it; on_exit fires exactly once per session.

Lifecycle: created -> running -> exited.

  create()   spawn + register, start streaming
  destroy()  unregister immediately, SIGHUP, SIGKILL after kill_grace
  exit       a reaper thread, started with the session, waits for the child.
             Once it is reaped the manager gives the pty up to exit_drain to
             reach EOF (a background job may hold it open), clears the
             registry entry if still present, closes the pty, then fires
             on_exit(exit_code, signal)

Exit tracks the child process, not the pty. The reaper is the only code
path that notifies, so a destroy racing a natural exit still yields one
on_exit. Apart from the blocking wait, everything runs on the event loop
thread; the registry needs no lock.
"""

from __future__ import annotations

import asyncio
import codecs
import itertools
import os
import threading
from datetime import datetime
from typing import Callable

from . import config
from .errors import SpawnError
from .logging_config import get_logger, session_logger
from .platforms import build_session_env, current_platform, home_dir
from .pty_backend import PtyHandle
from .pty_backend import spawn as spawn_pty
from .shells import ShellDetector, shell_detector
from .types import SessionInfo, SessionOptions, ShellSpec

logger = get_logger(__name__)

MAX_DIMENSION = 65535  # struct winsize fields are unsigned short

CREATED = "created"
RUNNING = "running"
EXITED = "exited"

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int, "int | None"], None]
SpawnFn = Callable[[list[str], str, dict[str, str], int, int], PtyHandle]


def clamp_dimension(value: int | None, default: int) -> int:
    """Geometry is always 1..65535; None/0 mean "use the default"."""
    if not value:
        value = default
    return max(1, min(int(value), MAX_DIMENSION))


class Session:
    """A PTY session. Owned by PtyManager."""

    def __init__(
        self,
        session_id: str,
        handle: PtyHandle,
        spec: ShellSpec,
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
        on_data: DataCallback | None,
        on_exit: ExitCallback | None,
        env_overlay: dict[str, str] | None = None,
    ):
        self.id = session_id
        self.handle = handle
        self.spec = spec
        self.cwd = cwd
        self.env = env
        self.env_overlay = dict(env_overlay or {})
        self.cols = cols
        self.rows = rows
        self.on_data = on_data
        self.on_exit = on_exit
        self.created = datetime.now().isoformat()

        self.state = CREATED
        self.destroyed = False
        self.exit_notified = False
        self.exit_code: int | None = None
        self.exit_signal: int | None = None
        self.kill_timer: asyncio.TimerHandle | None = None
        self.closed: asyncio.Future | None = None  # Resolved once on_exit has fired
        self.eof = asyncio.Event()
        self.log = session_logger(logger, session_id)
        # Incremental so a multibyte char split across reads survives
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, chunk: bytes | str, final: bool = False) -> str:
        if isinstance(chunk, str):
            return chunk
        return self._decoder.decode(chunk, final)

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            cwd=self.cwd,
            shell=self.spec.shell,
            args=list(self.spec.args),
            cols=self.cols,
            rows=self.rows,
            env=dict(self.env_overlay),
            created=self.created,
            pid=self.handle.pid,
        )


class PtyManager:
    """Owns every live PTY session.

    spawn is the host PTY service (pty_backend.spawn by default); tests
    inject a fake.
    """

    def __init__(
        self,
        detector: ShellDetector | None = None,
        spawn: SpawnFn | None = None,
        platform: str | None = None,
    ):
        self.detector = detector or shell_detector
        self.platform = platform or current_platform()
        self._spawn = spawn or (lambda argv, cwd, env, rows, cols: spawn_pty(argv, cwd, env, rows, cols, self.platform))
        self.sessions: dict[str, Session] = {}
        self._counter = itertools.count(1)
        self._exits: set[asyncio.Task] = set()
        self._open: set[Session] = set()  # Spawned, on_exit not yet fired
        self._loop: asyncio.AbstractEventLoop | None = None

    def __len__(self) -> int:
        return len(self.sessions)

    # --- Lifecycle ---

    def _resolve(self, options: SessionOptions) -> ShellSpec:
        if options.shell:
            return ShellSpec(options.shell, tuple(options.args or ()))
        if options.shell_config is not None:
            return self.detector.resolve_shell_config(options.shell_config)
        if options.args is not None:
            return ShellSpec(self.detector.detect_default_shell(), tuple(options.args))
        return self.detector.resolve_shell_config()

    def create(
        self,
        options: SessionOptions | None = None,
        on_data: DataCallback | None = None,
        on_exit: ExitCallback | None = None,
    ) -> str:
        """Spawn a session and return its id.

        Must be called from the event loop thread. Raises SpawnError if the
        process can't be started; nothing is registered in that case.
        """
        loop = asyncio.get_running_loop()
        self._loop = loop
        options = options or SessionOptions()
        host = config.get_host_config()

        spec = self._resolve(options)
        cwd = options.cwd or home_dir(os.environ)
        cols = clamp_dimension(options.cols, host["default_cols"])
        rows = clamp_dimension(options.rows, host["default_rows"])
        env = build_session_env(
            options.env,
            self.platform,
            os.environ,
            configured_paths=host["extra_paths"],
            term=host["term"],
        )
        session_id = f"pty-{next(self._counter)}"
        log = session_logger(logger, session_id)

        if not spec.shell:
            raise SpawnError("No shell to launch", argv=spec.argv, cwd=cwd)
        if not os.path.isdir(cwd):
            raise SpawnError(f"Working directory does not exist: {cwd}", argv=spec.argv, cwd=cwd)

        try:
            handle = self._spawn(spec.argv, cwd, env, rows, cols)
        except SpawnError as e:
            log.warning("spawn failed: %s", e)
            raise
        except OSError as e:
            log.warning("spawn failed: %s", e)
            raise SpawnError(f"Failed to start {spec.shell}: {e}", argv=spec.argv, cwd=cwd) from e

        session = Session(
            session_id, handle, spec, cwd, env, cols, rows, on_data, on_exit, env_overlay=options.env
        )
        session.closed = loop.create_future()
        self.sessions[session_id] = session
        self._open.add(session)
        handle.start(
            loop,
            lambda chunk: self._on_output(session, chunk),
            session.eof.set,
        )
        self._start_reaper(loop, session)
        session.state = RUNNING
        log.info("started %s (pid %s) in %s, %dx%d", spec.argv, handle.pid, cwd, cols, rows)
        return session_id

    def write(self, session_id: str, data: str | bytes) -> None:
        """Send input to a session. Unknown ids are ignored."""
        session = self.sessions.get(session_id)
        if session is None:
            logger.debug("write to unknown session %s ignored", session_id)
            return
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            session.handle.write(data)
        except OSError as e:
            # Child is on its way out; the exit path cleans up
            session.log.debug("write failed: %s", e)

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        """Resize a session's pty. Non-positive sizes are clamped to 1."""
        session = self.sessions.get(session_id)
        if session is None:
            logger.debug("resize of unknown session %s ignored", session_id)
            return
        cols = max(1, min(int(cols), MAX_DIMENSION))
        rows = max(1, min(int(rows), MAX_DIMENSION))
        session.cols, session.rows = cols, rows
        try:
            session.handle.resize(rows, cols)
        except OSError as e:
            session.log.debug("resize failed: %s", e)

    def destroy(self, session_id: str) -> None:
        """Kill a session and drop it from the registry. Idempotent."""
        session = self.sessions.pop(session_id, None)
        if session is None:
            return
        session.destroyed = True
        session.log.info("destroying (pid %s)", session.handle.pid)
        session.handle.terminate()
        if self._loop is not None and not self._loop.is_closed():
            session.kill_timer = self._loop.call_later(
                config.get("kill_grace"), self._force_kill, session
            )

    def destroy_all(self) -> None:
        """Destroy every tracked session (application shutdown)."""
        for session_id in list(self.sessions.keys()):
            self.destroy(session_id)

    async def wait_closed(self, timeout: float | None = None) -> None:
        """Wait until every spawned session has delivered its exit notification."""
        pending = [s.closed for s in self._open if s.closed is not None and not s.closed.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    # --- Queries ---

    def has_session(self, session_id: str) -> bool:
        return session_id in self.sessions

    def get_session(self, session_id: str) -> SessionInfo | None:
        session = self.sessions.get(session_id)
        return session.info() if session else None

    def list_sessions(self) -> list[SessionInfo]:
        return [s.info() for s in self.sessions.values()]

    # --- Output and exit ---

    def _on_output(self, session: Session, chunk: bytes | str) -> None:
        if session.destroyed or session.exit_notified:
            return
        text = session.decode(chunk)
        if text:
            self._deliver(session, text)

    def _deliver(self, session: Session, text: str) -> None:
        if session.on_data is None:
            return
        try:
            session.on_data(text)
        except Exception:
            session.log.exception("on_data callback failed")

    def _start_reaper(self, loop: asyncio.AbstractEventLoop, session: Session) -> None:
        """Wait for the child on a dedicated thread, then hand back to the loop.

        The wait lasts as long as the session, so it gets its own thread
        instead of a default-executor slot.
        """

        def _wait():
            try:
                exit_code, sig = session.handle.reap()
            except Exception as e:
                session.log.warning("reap failed: %s", e)
                exit_code, sig = -1, None
            try:
                loop.call_soon_threadsafe(self._on_reaped, session, exit_code, sig)
            except RuntimeError:
                session.log.debug("loop closed before exit (code %d) was delivered", exit_code)

        threading.Thread(target=_wait, name=f"{session.id}-reaper", daemon=True).start()

    def _on_reaped(self, session: Session, exit_code: int, sig: int | None) -> None:
        task = asyncio.get_running_loop().create_task(self._exited(session, exit_code, sig))
        self._exits.add(task)
        task.add_done_callback(self._exits.discard)

    async def _exited(self, session: Session, exit_code: int, sig: int | None) -> None:
        if not session.eof.is_set():
            try:
                await asyncio.wait_for(session.eof.wait(), timeout=config.get("exit_drain"))
            except asyncio.TimeoutError:
                session.log.debug("pty still held open after exit, closing it")
        self._finish(session, exit_code, sig)

    def _finish(self, session: Session, exit_code: int, sig: int | None) -> None:
        session.state = EXITED
        session.exit_code = exit_code
        session.exit_signal = sig
        if session.kill_timer is not None:
            session.kill_timer.cancel()
            session.kill_timer = None
        # Compare-and-clear: only drop the entry if it is still this session
        if self.sessions.get(session.id) is session:
            del self.sessions[session.id]
        if session.exit_notified:
            return
        # Entry is already gone here; write() can no longer reach the handle
        try:
            session.handle.close()
        except OSError as e:
            session.log.debug("pty close failed: %s", e)
        if not session.destroyed:
            tail = session.decode(b"", final=True)
            if tail:
                self._deliver(session, tail)
        session.exit_notified = True
        self._open.discard(session)
        session.log.info("exited (code %d, signal %s)", exit_code, sig)
        if session.on_exit is not None:
            try:
                session.on_exit(exit_code, sig)
            except Exception:
                session.log.exception("on_exit callback failed")
        if session.closed is not None and not session.closed.done():
            session.closed.set_result((exit_code, sig))

    def _force_kill(self, session: Session) -> None:
        session.kill_timer = None
        if session.handle.reaped or session.state == EXITED:
            return
        session.log.warning("still running %.1fs after destroy, killing", config.get("kill_grace"))
        session.handle.force_kill()


# Module-level reference to the host's PtyManager.
# Set by init_pty_manager() at startup, cleared by shutdown_pty_manager().
_pty_manager: PtyManager | None = None


def init_pty_manager(**kwargs) -> PtyManager:
    """Create the process-wide PtyManager, replacing any previous one."""
    global _pty_manager
    if _pty_manager is not None:
        _pty_manager.destroy_all()
    _pty_manager = PtyManager(**kwargs)
    return _pty_manager


async def shutdown_pty_manager(timeout: float | None = None) -> None:
    """Destroy all sessions and wait for their exits."""
    global _pty_manager
    if _pty_manager is None:
        return
    manager = _pty_manager
    _pty_manager = None
    manager.destroy_all()
    if timeout is None:
        timeout = config.get("kill_grace") + 1.0
    await manager.wait_closed(timeout=timeout)


def get_pty_manager() -> PtyManager:
    """Get the process-wide PtyManager. Raises if not initialized."""
    if _pty_manager is None:
        raise RuntimeError("PtyManager not initialized — call init_pty_manager() first")
    return _pty_manager
