"""Error types and probe failure classification.

Only spawn failures are raised to callers. Everything else a discovery
probe can run into is folded into a per-entry "unavailable" result; the
ProbeFailure record exists so those cases still get logged with a reason.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .probes import ProbeResult


class SpawnError(RuntimeError):
    """The OS refused to create a session process.

    Raised from PtyManager.create(); no session is registered.
    """

    def __init__(self, message: str, argv: list[str] | None = None, cwd: str | None = None):
        super().__init__(message)
        self.argv = list(argv or [])
        self.cwd = cwd


@dataclass
class ProbeFailure:
    """Why a discovery probe came back empty."""

    category: str  # "timeout", "not_found", "exit_status", "no_output"
    text: str  # For logging


def classify_probe(result: ProbeResult) -> ProbeFailure | None:
    """Classify a finished probe. Returns None for a usable result."""
    if result.timed_out:
        return ProbeFailure("timeout", f"timed out after {result.timeout:g}s")
    if result.error is not None:
        return ProbeFailure("not_found", result.error)
    if result.returncode != 0:
        stderr = result.stderr.strip()[:200]
        return ProbeFailure("exit_status", f"exit {result.returncode}: {stderr}")
    if not result.stdout.strip() and not result.stderr.strip():
        return ProbeFailure("no_output", "no output")
    return None
