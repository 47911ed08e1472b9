"""Shell resolution and inventory.

resolve_shell_config() turns a selector into a concrete ShellSpec; it never
raises and never returns an empty executable. detect_shells() reports every
known shell for the platform, installed or not, plus WSL distributions on
Windows.
"""

from __future__ import annotations

import asyncio
import os
from typing import Mapping

from . import config, wsl
from .logging_config import get_logger
from .platforms import (
    UNIX_DEFAULT_SHELLS,
    WINDOWS_DEFAULT_SHELL,
    ShellCandidate,
    current_platform,
    enhanced_path,
    expand_path,
    find_candidate,
    is_executable,
    is_windows,
    login_args_for,
    shell_candidates,
    which,
)
from .types import ShellConfig, ShellInfo, ShellSpec

logger = get_logger(__name__)

WSL_PREFIX = "wsl:"


class ShellDetector:
    """Resolves shell selectors and scans for installed shells.

    platform and environ default to the running host; pass them explicitly
    to reason about another platform.
    """

    def __init__(self, platform: str | None = None, environ: Mapping[str, str] | None = None):
        self._platform = platform
        self._environ = environ

    @property
    def platform(self) -> str:
        return self._platform or current_platform()

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    # --- Resolution ---

    def detect_default_shell(self) -> str:
        """The platform's ambient default shell executable."""
        env = self.environ
        if is_windows(self.platform):
            return expand_path(WINDOWS_DEFAULT_SHELL, env) or "powershell.exe"

        shell = env.get("SHELL", "").strip()
        if shell and is_executable(shell):
            return shell
        if shell:
            logger.debug("$SHELL=%s is not executable, using platform default", shell)
        fallbacks = UNIX_DEFAULT_SHELLS.get(self.platform, UNIX_DEFAULT_SHELLS["linux"])
        for path in fallbacks:
            if is_executable(path):
                return path
        return fallbacks[-1]

    def default_spec(self) -> ShellSpec:
        shell = self.detect_default_shell()
        if is_windows(self.platform):
            return ShellSpec(shell, ("-NoLogo",))
        return ShellSpec(shell, login_args_for(shell))

    def resolve_shell_config(
        self,
        shell_config: ShellConfig | None = None,
        *,
        shell: str | None = None,
        args: list[str] | None = None,
    ) -> ShellSpec:
        """Resolve to a launchable ShellSpec.

        Order: explicit shell path, then the structured selector, then the
        platform default. Unknown or missing shells fall back to the default.
        """
        if shell:
            return ShellSpec(shell, tuple(args or ()))
        if shell_config is None:
            return self.default_spec()

        shell_type = (shell_config.shell_type or "system").strip()
        if shell_type == "system":
            return self.default_spec()

        if shell_type == "custom":
            path = (shell_config.custom_shell_path or "").strip()
            if path:
                return ShellSpec(path, tuple(shell_config.custom_shell_args or ()))
            logger.warning("Custom shell selected without a path, using platform default")
            return self.default_spec()

        if shell_type == "wsl" or shell_type.startswith(WSL_PREFIX):
            spec = self._resolve_wsl(shell_type)
            if spec is not None:
                return spec
        else:
            candidate = find_candidate(shell_type, self.platform)
            if candidate is not None:
                path = self._locate(candidate)
                if path:
                    return ShellSpec(path, candidate.args)

        logger.warning("Shell '%s' is not available on %s, using platform default", shell_type, self.platform)
        return self.default_spec()

    def _resolve_wsl(self, shell_type: str) -> ShellSpec | None:
        if not is_windows(self.platform):
            return None
        launcher = wsl.wsl_launcher(self.environ)
        distribution = shell_type[len(WSL_PREFIX):] if shell_type.startswith(WSL_PREFIX) else ""
        args = ("-d", distribution) if distribution else ()
        return ShellSpec(launcher, args, is_wsl=True)

    def _candidate_paths(self, candidate: ShellCandidate) -> list[str]:
        paths = []
        for raw in candidate.paths:
            expanded = expand_path(raw, self.environ)
            if expanded:
                paths.append(expanded)
        return paths

    def _locate(self, candidate: ShellCandidate) -> str | None:
        """First existing install location, else a search-path hit."""
        for path in self._candidate_paths(candidate):
            if is_executable(path):
                return path
        if candidate.binary:
            return which(candidate.binary, path=enhanced_path(self.platform, self.environ))
        return None

    # --- Inventory ---

    async def detect_shells(self, timeout: float | None = None) -> list[ShellInfo]:
        """Scan for every known shell. Absent shells are kept with available=False."""
        timeout = timeout if timeout is not None else config.get("probe_timeout")
        candidates = shell_candidates(self.platform)

        results = await asyncio.gather(*(self._probe_candidate(c, timeout) for c in candidates))
        shells = [self._system_entry()] if not is_windows(self.platform) else []
        shells.extend(results)

        if is_windows(self.platform):
            for distribution in await wsl.list_distributions(platform=self.platform):
                spec = self._resolve_wsl(WSL_PREFIX + distribution)
                shells.append(
                    ShellInfo(
                        id=WSL_PREFIX + distribution,
                        name=f"WSL: {distribution}",
                        path=spec.shell,
                        args=list(spec.args),
                        available=True,
                        is_wsl=True,
                    )
                )
        return shells

    def _system_entry(self) -> ShellInfo:
        spec = self.default_spec()
        name = os.path.basename(spec.shell)
        return ShellInfo(
            id="system",
            name=f"System default ({name})",
            path=spec.shell,
            args=list(spec.args),
            available=is_executable(spec.shell),
        )

    async def _probe_candidate(self, candidate: ShellCandidate, timeout: float) -> ShellInfo:
        paths = self._candidate_paths(candidate)
        info = ShellInfo(
            id=candidate.id,
            name=candidate.name,
            path=paths[0] if paths else (candidate.binary or candidate.id),
            args=list(candidate.args),
            is_wsl=candidate.id == "wsl",
        )
        try:
            found = await asyncio.wait_for(asyncio.to_thread(self._locate, candidate), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Shell probe for %s timed out after %.1fs", candidate.id, timeout)
            return info
        except OSError as e:
            logger.debug("Shell probe for %s failed: %s", candidate.id, e)
            return info
        if found:
            info.path = found
            info.available = True
        return info


shell_detector = ShellDetector()


def detect_shell() -> str:
    """Default shell executable for this host."""
    return shell_detector.detect_default_shell()
