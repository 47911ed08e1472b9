"""WSL bridge — list distributions and run commands inside one.

Only meaningful on Windows. Everywhere else (or when wsl.exe is missing)
the bridge reports no distributions and every command comes back as a
failed ProbeResult; absence of WSL is never an error.

wsl.exe writes its own messages (e.g. --list) as UTF-16LE, while commands
run inside a distribution produce whatever the Linux side emits (UTF-8).
"""

from __future__ import annotations

import os
import shlex
from typing import Mapping

from . import config
from .logging_config import get_logger
from .platforms import WSL_LAUNCHER, current_platform, expand_path, is_windows, which
from .probes import ProbeResult, run_probe

logger = get_logger(__name__)

# Utility distributions that never host user tools
_HIDDEN_DISTRIBUTIONS = ("docker-desktop", "docker-desktop-data", "rancher-desktop", "rancher-desktop-data")


def wsl_launcher(environ: Mapping[str, str] | None = None) -> str:
    """Path of wsl.exe (falls back to the bare name for search-path lookup)."""
    environ = os.environ if environ is None else environ
    return expand_path(WSL_LAUNCHER, environ) or "wsl.exe"


def is_available(platform: str | None = None) -> bool:
    """True on Windows hosts that have wsl.exe."""
    platform = platform or current_platform()
    if not is_windows(platform):
        return False
    launcher = wsl_launcher()
    return os.path.isfile(launcher) or which("wsl.exe") is not None


def decode_wsl_output(data: str) -> str:
    """Strip the NULs and BOM left when UTF-16 output is read as 8-bit text."""
    return data.replace("\x00", "").replace("\ufeff", "")


def parse_distributions(output: str) -> list[str]:
    """Parse `wsl --list --quiet` output into distribution names."""
    names: list[str] = []
    for line in decode_wsl_output(output).splitlines():
        name = line.strip()
        if not name or name.lower() in _HIDDEN_DISTRIBUTIONS:
            continue
        if name not in names:
            names.append(name)
    return names


async def list_distributions(timeout: float | None = None, platform: str | None = None) -> list[str]:
    """Installed WSL distributions, default first. [] when WSL is absent."""
    if not is_available(platform):
        return []
    timeout = timeout if timeout is not None else config.get("wsl_timeout")
    result = await run_probe(wsl_launcher(), "--list", "--quiet", timeout=timeout, encoding="utf-16-le")
    if not result.ok:
        logger.info("WSL distribution list unavailable: %s", result.error or result.stderr.strip() or "timeout")
        return []
    return parse_distributions(result.stdout)


def login_shell_command(command: str) -> str:
    """Wrap a command so it runs under the distribution user's login shell.

    nvm/asdf/volta installs only show up on PATH after profile files load.
    """
    return f'exec "$SHELL" -ilc {shlex.quote(command)}'


def build_wsl_argv(command: str, distribution: str | None = None, login_shell: bool = True) -> list[str]:
    argv = [wsl_launcher()]
    if distribution:
        argv.extend(["-d", distribution])
    inner = login_shell_command(command) if login_shell else command
    argv.extend(["--", "sh", "-c", inner])
    return argv


async def run_in_distribution(
    command: str,
    distribution: str | None = None,
    timeout: float | None = None,
    login_shell: bool = True,
    platform: str | None = None,
) -> ProbeResult:
    """Run a shell command inside a WSL distribution (default distribution if None)."""
    timeout = timeout if timeout is not None else config.get("wsl_timeout")
    if not is_available(platform):
        return ProbeResult(returncode=-1, timeout=timeout, error="WSL is not available")
    return await run_probe(*build_wsl_argv(command, distribution, login_shell), timeout=timeout)
