"""Per-platform tables: shell candidates, default shells, tool directories.

Everything platform-specific the resolver, scanner and session manager need
is declared here as data. Paths may use "~" and %VAR% / ${VAR}
placeholders; expand_path() fills them in from a given environment so the
tables can be checked for any platform from any host.
"""

from __future__ import annotations

import os
import re
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

WINDOWS = "win32"
MACOS = "darwin"
LINUX = "linux"

TERM_DEFAULT = "xterm-256color"


@dataclass(frozen=True)
class ShellCandidate:
    """One known shell: where it is usually installed and how to start it."""

    id: str
    name: str
    paths: tuple[str, ...]
    args: tuple[str, ...] = ()
    binary: str | None = None  # Search-path fallback when no listed path exists


# Unix shells start as interactive login shells so profile/rc files load.
UNIX_SHELLS: tuple[ShellCandidate, ...] = (
    ShellCandidate(
        "zsh",
        "Zsh",
        ("/bin/zsh", "/usr/bin/zsh", "/usr/local/bin/zsh", "/opt/homebrew/bin/zsh"),
        ("-i", "-l"),
        "zsh",
    ),
    ShellCandidate(
        "bash",
        "Bash",
        ("/bin/bash", "/usr/bin/bash", "/usr/local/bin/bash", "/opt/homebrew/bin/bash"),
        ("-i", "-l"),
        "bash",
    ),
    ShellCandidate(
        "fish",
        "Fish",
        ("/usr/bin/fish", "/usr/local/bin/fish", "/opt/homebrew/bin/fish"),
        ("-i", "-l"),
        "fish",
    ),
    ShellCandidate(
        "nushell",
        "Nushell",
        ("/usr/bin/nu", "/usr/local/bin/nu", "/opt/homebrew/bin/nu", "~/.cargo/bin/nu"),
        ("-i", "-l"),
        "nu",
    ),
    ShellCandidate("sh", "sh", ("/bin/sh", "/usr/bin/sh"), ("-l",), "sh"),
)

WINDOWS_SHELLS: tuple[ShellCandidate, ...] = (
    ShellCandidate(
        "powershell7",
        "PowerShell 7",
        (
            r"%ProgramFiles%\PowerShell\7\pwsh.exe",
            r"%LOCALAPPDATA%\Microsoft\WindowsApps\pwsh.exe",
        ),
        ("-NoLogo",),
        "pwsh.exe",
    ),
    ShellCandidate(
        "powershell",
        "Windows PowerShell",
        (r"%SystemRoot%\System32\WindowsPowerShell\v1.0\powershell.exe",),
        ("-NoLogo",),
        "powershell.exe",
    ),
    ShellCandidate(
        "cmd",
        "Command Prompt",
        (r"%ComSpec%", r"%SystemRoot%\System32\cmd.exe"),
        (),
        "cmd.exe",
    ),
    ShellCandidate(
        "gitbash",
        "Git Bash",
        (
            r"%ProgramFiles%\Git\bin\bash.exe",
            r"%ProgramFiles(x86)%\Git\bin\bash.exe",
            r"%LOCALAPPDATA%\Programs\Git\bin\bash.exe",
        ),
        ("--login", "-i"),
    ),
    ShellCandidate(
        "nushell",
        "Nushell",
        (r"%ProgramFiles%\nu\bin\nu.exe", r"~\.cargo\bin\nu.exe"),
        (),
        "nu.exe",
    ),
    ShellCandidate(
        "wsl",
        "WSL",
        (r"%SystemRoot%\System32\wsl.exe",),
        (),
        "wsl.exe",
    ),
)

WSL_LAUNCHER = r"%SystemRoot%\System32\wsl.exe"
WINDOWS_DEFAULT_SHELL = r"%SystemRoot%\System32\WindowsPowerShell\v1.0\powershell.exe"

# Fallback chain when $SHELL is unset or unusable
UNIX_DEFAULT_SHELLS: dict[str, tuple[str, ...]] = {
    MACOS: ("/bin/zsh", "/bin/bash", "/bin/sh"),
    LINUX: ("/bin/bash", "/bin/sh"),
}

# Args for an ambient default shell, keyed by executable basename
LOGIN_ARGS: dict[str, tuple[str, ...]] = {
    "zsh": ("-i", "-l"),
    "bash": ("-i", "-l"),
    "fish": ("-i", "-l"),
    "nu": ("-i", "-l"),
    "sh": ("-l",),
    "dash": ("-l",),
    "ksh": ("-i", "-l"),
}

# GUI-launched apps don't inherit a login shell's PATH
EXTRA_PATHS: dict[str, tuple[str, ...]] = {
    WINDOWS: (
        r"~\AppData\Roaming\npm",
        r"~\.volta\bin",
        r"~\scoop\shims",
    ),
    "unix": (
        "/usr/local/bin",
        "/opt/homebrew/bin",
        "/opt/homebrew/sbin",
        "~/.nvm/versions/node/current/bin",
        "~/.npm-global/bin",
        "~/.local/bin",
    ),
}

_VAR_RE = re.compile(r"%([^%]+)%|\$\{([^}]+)\}")


def current_platform() -> str:
    """Normalize sys.platform to win32 / darwin / linux."""
    if sys.platform == WINDOWS:
        return WINDOWS
    if sys.platform == MACOS:
        return MACOS
    return LINUX


def is_windows(platform: str) -> bool:
    return platform == WINDOWS


def path_delimiter(platform: str) -> str:
    return ";" if is_windows(platform) else ":"


def home_dir(environ: Mapping[str, str]) -> str:
    return environ.get("HOME") or environ.get("USERPROFILE") or str(Path.home())


def _lookup(environ: Mapping[str, str], name: str) -> str | None:
    if name in environ:
        return environ[name]
    # Windows env var names are case-insensitive
    upper = name.upper()
    for key, value in environ.items():
        if key.upper() == upper:
            return value
    return None


def expand_path(path: str, environ: Mapping[str, str]) -> str | None:
    """Expand ~ and %VAR% / ${VAR}. Returns None if a variable is unset."""
    missing = False

    def _sub(match: re.Match) -> str:
        nonlocal missing
        value = _lookup(environ, match.group(1) or match.group(2))
        if value is None:
            missing = True
            return ""
        return value

    expanded = _VAR_RE.sub(_sub, path)
    if missing:
        return None
    if expanded.startswith("~"):
        expanded = home_dir(environ) + expanded[1:]
    return expanded


def shell_candidates(platform: str) -> tuple[ShellCandidate, ...]:
    return WINDOWS_SHELLS if is_windows(platform) else UNIX_SHELLS


def find_candidate(shell_id: str, platform: str) -> ShellCandidate | None:
    for candidate in shell_candidates(platform):
        if candidate.id == shell_id:
            return candidate
    return None


def login_args_for(executable: str) -> tuple[str, ...]:
    """Interactive login flags for a Unix shell, by basename."""
    name = os.path.basename(executable).lower()
    return LOGIN_ARGS.get(name, ())


def is_executable(path: str) -> bool:
    """Filesystem existence + executability check."""
    return os.path.isfile(path) and os.access(path, os.X_OK)


def which(name: str, path: str | None = None) -> str | None:
    """Search-path lookup for an executable."""
    return shutil.which(name, path=path)


def extra_path_entries(platform: str, environ: Mapping[str, str], configured: list[str] | None = None) -> list[str]:
    """Configured entries first, then the platform's well-known tool dirs."""
    table = EXTRA_PATHS[WINDOWS] if is_windows(platform) else EXTRA_PATHS["unix"]
    entries: list[str] = []
    for raw in [*(configured or []), *table]:
        expanded = expand_path(raw, environ)
        if expanded:
            entries.append(expanded)
    return entries


def enhanced_path(
    platform: str,
    environ: Mapping[str, str],
    configured: list[str] | None = None,
) -> str:
    """PATH with extra tool dirs prepended, de-duplicated, order kept."""
    delimiter = path_delimiter(platform)
    current = _lookup(environ, "PATH") or ""
    seen: set[str] = set()
    parts: list[str] = []
    for entry in [*extra_path_entries(platform, environ, configured), *current.split(delimiter)]:
        if not entry:
            continue
        key = entry.lower() if is_windows(platform) else entry
        if key in seen:
            continue
        seen.add(key)
        parts.append(entry)
    return delimiter.join(parts)


def build_session_env(
    overlay: Mapping[str, str] | None,
    platform: str,
    environ: Mapping[str, str],
    configured_paths: list[str] | None = None,
    term: str = TERM_DEFAULT,
) -> dict[str, str]:
    """Inherited env <- caller overlay, then PATH/TERM/COLORTERM forced."""
    env = dict(environ)
    env.update(overlay or {})
    path_value = enhanced_path(platform, env, configured_paths)
    if is_windows(platform):
        # Drop every casing variant ("Path" is common) so only PATH remains
        for key in [k for k in env if k.upper() == "PATH"]:
            del env[key]
    env["PATH"] = path_value
    env["TERM"] = term
    env["COLORTERM"] = "truecolor"
    return env
