"""Bounded subprocess probes for shell and agent discovery.

Every probe carries its own timeout. A probe that overruns is killed and
reaped, then reported as timed out; nothing here raises for a missing or
misbehaving executable, so one bad probe never takes down a batch.
"""

import asyncio
from dataclasses import dataclass

from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ProbeResult:
    """Outcome of a single probe run."""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    timeout: float = 0.0
    error: str | None = None  # Spawn error text (missing binary, permission)

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None


def _decode(data: bytes, encoding: str) -> str:
    return data.decode(encoding, errors="replace")


async def run_probe(
    *cmd: str,
    timeout: float,
    env: dict[str, str] | None = None,
    encoding: str = "utf-8",
) -> ProbeResult:
    """Run a command and return its ProbeResult.

    stdin is closed so an interactive binary can't sit waiting for input.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except OSError as e:
        logger.debug("Probe %s could not start: %s", cmd[0] if cmd else "?", e)
        return ProbeResult(returncode=-1, timeout=timeout, error=str(e))

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        logger.debug("Probe %s timed out after %.1fs", cmd[0], timeout)
        return ProbeResult(returncode=-1, timed_out=True, timeout=timeout)
    except asyncio.CancelledError:
        await _kill(proc)
        raise
    return ProbeResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=_decode(stdout_bytes, encoding),
        stderr=_decode(stderr_bytes, encoding),
        timeout=timeout,
    )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill an overrunning probe and reap it."""
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    try:
        await asyncio.wait_for(proc.wait(), timeout=1.0)
    except asyncio.TimeoutError:
        logger.warning("Probe pid %s did not exit after kill", proc.pid)


def first_line(text: str) -> str:
    """First non-empty line of text, stripped."""
    for line in text.splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""
