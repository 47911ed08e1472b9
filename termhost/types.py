"""Type definitions shared by the resolver, detector and session manager."""

from dataclasses import asdict, dataclass, field
from typing import Any

from typing_extensions import Self


@dataclass
class ShellConfig:
    """Caller-supplied shell selector.

    shell_type is a platform tag ("system", "zsh", "powershell7", ...),
    "custom", "wsl" or "wsl:<distribution>".
    """

    shell_type: str = "system"
    custom_shell_path: str | None = None
    custom_shell_args: list[str] | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create from dict, accepting camelCase keys from UI callers."""
        return cls(
            shell_type=data.get("shell_type", data.get("shellType", "system")),
            custom_shell_path=data.get("custom_shell_path", data.get("customShellPath")),
            custom_shell_args=data.get("custom_shell_args", data.get("customShellArgs")),
        )


@dataclass(frozen=True)
class ShellSpec:
    """Resolved launch descriptor. Immutable; shell is never empty."""

    shell: str
    args: tuple[str, ...] = ()
    is_wsl: bool = False

    @property
    def argv(self) -> list[str]:
        return [self.shell, *self.args]

    def to_dict(self) -> dict[str, Any]:
        return {"shell": self.shell, "args": list(self.args), "is_wsl": self.is_wsl}


@dataclass
class ShellInfo:
    """One row of the shell inventory. Produced fresh on every scan."""

    id: str
    name: str
    path: str
    args: list[str] = field(default_factory=list)
    available: bool = False
    is_wsl: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CustomAgent:
    """User-defined agent CLI. Read-only input to the detector."""

    id: str
    name: str
    command: str
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            command=data["command"],
            description=data.get("description"),
        )


@dataclass
class AgentCliInfo:
    """Detection result for one agent in one environment."""

    id: str
    name: str
    command: str
    installed: bool = False
    version: str | None = None
    path: str | None = None
    environment: str = "native"  # "native" or "wsl"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data["version"] is None:
            del data["version"]
        if data["path"] is None:
            del data["path"]
        return data


@dataclass
class CliDetectResult:
    agents: list[AgentCliInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"agents": [a.to_dict() for a in self.agents]}


@dataclass
class SessionOptions:
    """Options for PtyManager.create()."""

    cwd: str | None = None
    shell: str | None = None
    args: list[str] | None = None
    cols: int | None = None
    rows: int | None = None
    env: dict[str, str] | None = None
    shell_config: ShellConfig | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        shell_config = data.get("shell_config", data.get("shellConfig"))
        if isinstance(shell_config, dict):
            shell_config = ShellConfig.from_dict(shell_config)
        return cls(
            cwd=data.get("cwd"),
            shell=data.get("shell"),
            args=data.get("args"),
            cols=data.get("cols"),
            rows=data.get("rows"),
            env=data.get("env"),
            shell_config=shell_config,
        )


@dataclass
class SessionInfo:
    """Snapshot of a live session's attributes."""

    id: str
    cwd: str
    shell: str
    args: list[str]
    cols: int
    rows: int
    env: dict[str, str]
    created: str
    pid: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
