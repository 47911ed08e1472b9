"""Agent CLI detection — which AI coding-assistant CLIs are installed.

Every agent is probed concurrently and in isolation: each probe has its
own timeout and failure handling, so a hung or broken CLI only ever turns
its own entry into installed=False. With include_wsl on a Windows host the
built-in agents are probed a second time inside WSL; only successful WSL
probes produce (extra) records, tagged environment="wsl" and id "<agent>-wsl".

Also builds the launch descriptor for running an agent in a PTY session.
"""

from __future__ import annotations

import asyncio
import os
import re
import shlex
from dataclasses import dataclass
from typing import Mapping

from . import config, wsl
from .errors import classify_probe
from .logging_config import get_logger
from .platforms import current_platform, enhanced_path, is_windows, which
from .probes import ProbeResult, first_line, run_probe
from .shells import shell_detector
from .types import AgentCliInfo, CliDetectResult, CustomAgent, ShellSpec

logger = get_logger(__name__)

VERSION_FLAG = "--version"
WSL_SUFFIX = "-wsl"

_VERSION_RE = re.compile(r"\d+(?:\.\d+)+(?:[-+][0-9A-Za-z.\-]+)?")


@dataclass(frozen=True)
class BuiltinAgent:
    id: str
    name: str
    command: str
    description: str
    supports_session: bool = False


BUILTIN_AGENTS: tuple[BuiltinAgent, ...] = (
    BuiltinAgent("claude", "Claude", "claude", "Anthropic Claude Code CLI", supports_session=True),
    BuiltinAgent("codex", "Codex", "codex", "OpenAI Codex CLI"),
    BuiltinAgent("droid", "Droid", "droid", "Droid AI CLI"),
    BuiltinAgent("gemini", "Gemini", "gemini", "Google Gemini CLI"),
    BuiltinAgent("auggie", "Auggie", "auggie", "Augment Code CLI"),
    BuiltinAgent("cursor", "Cursor", "cursor-agent", "Cursor Agent CLI"),
)

BUILTIN_AGENT_IDS = tuple(a.id for a in BUILTIN_AGENTS)


def get_builtin(agent_id: str) -> BuiltinAgent | None:
    for agent in BUILTIN_AGENTS:
        if agent.id == agent_id:
            return agent
    return None


def parse_version(output: str) -> str | None:
    """Version from the first non-empty line of --version output.

    Prefers a dotted number ("claude 1.0.3 (Claude Code)" -> "1.0.3");
    otherwise the trimmed line itself.
    """
    line = first_line(output)
    if not line:
        return None
    match = _VERSION_RE.search(line)
    if match:
        return match.group(0)
    return line[:80]


def _version_from(result: ProbeResult) -> str | None:
    return parse_version(result.stdout) or parse_version(result.stderr)


@dataclass
class _Target:
    """What to probe for one agent id."""

    id: str
    name: str
    command: str


class CliDetector:
    """Detects built-in and custom agent CLIs, natively and through WSL."""

    def __init__(self, platform: str | None = None, environ: Mapping[str, str] | None = None):
        self._platform = platform
        self._environ = environ

    @property
    def platform(self) -> str:
        return self._platform or current_platform()

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def _targets(self, custom_agents: list[CustomAgent] | None) -> list[_Target]:
        """Built-ins in declaration order, then customs; a custom id that
        matches a built-in replaces that built-in's command in place."""
        customs = {a.id: a for a in (custom_agents or [])}
        targets = []
        for agent in BUILTIN_AGENTS:
            override = customs.pop(agent.id, None)
            command = override.command if override else agent.command
            targets.append(_Target(agent.id, agent.name, command))
        for custom in customs.values():
            targets.append(_Target(custom.id, custom.name, custom.command))
        return targets

    def _target_for(self, agent_id: str, custom_agent: CustomAgent | None) -> _Target | None:
        builtin = get_builtin(agent_id)
        if custom_agent is not None:
            name = builtin.name if builtin else custom_agent.name
            return _Target(agent_id, name, custom_agent.command)
        if builtin is not None:
            return _Target(builtin.id, builtin.name, builtin.command)
        return None

    # --- Public API ---

    async def detect_all(
        self,
        custom_agents: list[CustomAgent] | None = None,
        include_wsl: bool = False,
    ) -> CliDetectResult:
        """Probe every agent concurrently and return all results."""
        targets = self._targets(custom_agents)
        probes = [self._guarded(t, self._probe_native(t), "native") for t in targets]

        wsl_targets: list[_Target] = []
        if include_wsl and is_windows(self.platform) and wsl.is_available(self.platform):
            wsl_targets = [t for t in targets if t.id in BUILTIN_AGENT_IDS]
            probes.extend(self._guarded(t, self._probe_wsl(t), "wsl") for t in wsl_targets)

        results = await asyncio.gather(*probes)
        native = results[: len(targets)]
        wsl_results = [r for r in results[len(targets):] if r.installed]

        installed = sum(1 for r in native if r.installed)
        logger.info(
            "Agent detection: %d/%d installed natively, %d in WSL", installed, len(native), len(wsl_results)
        )
        return CliDetectResult(agents=[*native, *wsl_results])

    async def detect_one(self, agent_id: str, custom_agent: CustomAgent | None = None) -> AgentCliInfo:
        """Probe a single agent. "<agent>-wsl" probes the agent inside WSL."""
        if agent_id.endswith(WSL_SUFFIX) and get_builtin(agent_id[: -len(WSL_SUFFIX)]):
            target = self._target_for(agent_id[: -len(WSL_SUFFIX)], custom_agent)
            return await self._guarded(target, self._probe_wsl(target), "wsl")

        target = self._target_for(agent_id, custom_agent)
        if target is None:
            logger.debug("Unknown agent '%s' with no custom definition", agent_id)
            return AgentCliInfo(id=agent_id, name=agent_id, command=agent_id, installed=False)
        return await self._guarded(target, self._probe_native(target), "native")

    # --- Probing ---

    def _empty(self, target: _Target, environment: str) -> AgentCliInfo:
        agent_id = target.id + WSL_SUFFIX if environment == "wsl" else target.id
        return AgentCliInfo(
            id=agent_id,
            name=target.name,
            command=target.command,
            installed=False,
            environment=environment,
        )

    async def _guarded(self, target: _Target, probe, environment: str) -> AgentCliInfo:
        """Bound a probe by agent_timeout and turn any failure into "not installed"."""
        timeout = config.get("agent_timeout")
        try:
            return await asyncio.wait_for(probe, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Agent probe %s (%s) timed out after %.1fs", target.id, environment, timeout)
        except Exception as e:
            logger.warning("Agent probe %s (%s) failed: %s", target.id, environment, e)
        return self._empty(target, environment)

    def _version_argv(self, executable: str, extra: list[str]) -> list[str]:
        argv = [executable, *extra, VERSION_FLAG]
        # npm installs .cmd shims on Windows; those need cmd.exe to run
        if is_windows(self.platform) and executable.lower().endswith((".cmd", ".bat")):
            argv = ["cmd.exe", "/c", *argv]
        return argv

    async def _probe_native(self, target: _Target) -> AgentCliInfo:
        info = self._empty(target, "native")
        try:
            parts = shlex.split(target.command, posix=not is_windows(self.platform))
        except ValueError:
            logger.warning("Agent %s has an unparseable command: %r", target.id, target.command)
            return info
        if not parts:
            return info

        search_path = enhanced_path(self.platform, self.environ, config.get("extra_paths"))
        executable = which(parts[0], path=search_path)
        if executable is None:
            logger.debug("Agent %s: %s not on PATH", target.id, parts[0])
            return info

        env = dict(self.environ)
        env["PATH"] = search_path
        result = await run_probe(
            *self._version_argv(executable, parts[1:]),
            timeout=config.get("version_timeout"),
            env=env,
        )
        failure = classify_probe(result)
        if failure is not None:
            logger.debug("Agent %s: version probe failed (%s: %s)", target.id, failure.category, failure.text)
            return info

        version = _version_from(result)
        if version is None:
            return info
        info.installed = True
        info.version = version
        info.path = executable
        return info

    async def _probe_wsl(self, target: _Target) -> AgentCliInfo:
        info = self._empty(target, "wsl")
        result = await wsl.run_in_distribution(
            f"{target.command} {VERSION_FLAG}",
            timeout=config.get("wsl_timeout"),
            platform=self.platform,
        )
        failure = classify_probe(result)
        if failure is not None:
            logger.debug("Agent %s in WSL: %s (%s)", target.id, failure.category, failure.text)
            return info
        version = _version_from(result)
        if version is None:
            return info
        info.installed = True
        info.version = version
        return info


cli_detector = CliDetector()


# --- Launching ---


def agent_command_line(command: str, session_id: str | None = None, resume: bool = False) -> str:
    """Agent command plus session arguments for agents that support them."""
    parts = [command]
    builtin = get_builtin(command) or next((a for a in BUILTIN_AGENTS if a.command == command), None)
    if session_id and builtin is not None and builtin.supports_session:
        parts.extend(["--resume" if resume else "--session-id", session_id])
    return " ".join(parts)


def build_agent_launch(
    command: str,
    environment: str = "native",
    session_id: str | None = None,
    resume: bool = False,
    platform: str | None = None,
) -> ShellSpec:
    """ShellSpec that runs an agent CLI in a PTY session and exits with it.

    WSL runs through the distribution user's login shell (so nvm etc. are on
    PATH); native Windows goes through cmd.exe; Unix through the default
    shell as an interactive login shell.
    """
    platform = platform or current_platform()
    full_command = agent_command_line(command, session_id, resume)

    if environment == "wsl" and is_windows(platform):
        launcher, *args = wsl.build_wsl_argv(full_command)
        return ShellSpec(launcher, tuple(args), is_wsl=True)

    if is_windows(platform):
        return ShellSpec("cmd.exe", ("/c", full_command))

    shell = shell_detector.detect_default_shell()
    return ShellSpec(shell, ("-i", "-l", "-c", full_command))
