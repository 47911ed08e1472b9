"""Configuration helpers — safe to import from anywhere.

Host tunables live in <config_dir>/config.json. Missing keys fall back to
built-in defaults. Call init(path) at startup to point at a different
directory (tests do this); otherwise ~/.config/termhost is used.
"""

import json
import os
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_DIR = Path(os.path.expanduser("~/.config/termhost"))

_config_dir: Path | None = None


def init(config_dir: Path) -> None:
    """Set the config directory."""
    global _config_dir, _host_config_cache, _host_config_mtime
    _config_dir = Path(config_dir)
    _host_config_cache = None
    _host_config_mtime = 0.0


def config_dir() -> Path:
    """Get the config directory (default ~/.config/termhost)."""
    if _config_dir is None:
        return DEFAULT_CONFIG_DIR
    return _config_dir


def log_dir() -> Path:
    return config_dir() / "logs"


# Host config: cached with mtime check
_host_config_cache: dict[str, Any] | None = None
_host_config_mtime: float = 0.0

_HOST_CONFIG_DEFAULTS: dict[str, Any] = {
    # Discovery probes (seconds)
    "probe_timeout": 3.0,
    "version_timeout": 5.0,
    "wsl_timeout": 8.0,
    "agent_timeout": 10.0,
    # Sessions
    "kill_grace": 3.0,
    # How long to wait for the pty to drain after the child is reaped
    "exit_drain": 0.25,
    "default_cols": 80,
    "default_rows": 24,
    "term": "xterm-256color",
    # Prepended to PATH ahead of the platform's well-known tool dirs
    "extra_paths": [],
}


def get_host_config() -> dict[str, Any]:
    """Load host config from disk, with mtime caching and defaults."""
    global _host_config_cache, _host_config_mtime
    config_file = config_dir() / "config.json"
    try:
        mtime = config_file.stat().st_mtime
    except OSError:
        mtime = 0.0
    if _host_config_cache is None or mtime != _host_config_mtime:
        config = dict(_HOST_CONFIG_DEFAULTS)
        if config_file.exists():
            try:
                loaded = json.loads(config_file.read_text())
                if isinstance(loaded, dict):
                    config.update(loaded)
            except (OSError, json.JSONDecodeError):
                pass
        _host_config_cache = config
        _host_config_mtime = mtime
    return _host_config_cache


def get(key: str) -> Any:
    """Shorthand for a single host config value."""
    return get_host_config()[key]
