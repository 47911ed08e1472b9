"""CLI interface for the terminal host core.

Entry point: termhost <subcommand> [--config-dir PATH] [args...]

Read-only previews of what the host would discover or launch:
  termhost shells              shell inventory
  termhost resolve             resolved ShellSpec for a selector
  termhost agents              agent CLI detection
  termhost agent ID            detect a single agent
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _load_custom_agents(path: str | None):
    """Read a JSON list of custom agents ({id, name, command, description?})."""
    from .types import CustomAgent

    if not path:
        return []
    try:
        data = json.loads(Path(path).expanduser().read_text())
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: could not read custom agents from {path}: {e}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, list):
        print(f"Error: {path} must contain a JSON list", file=sys.stderr)
        sys.exit(1)
    try:
        return [CustomAgent.from_dict(item) for item in data]
    except (KeyError, TypeError) as e:
        print(f"Error: invalid custom agent entry in {path}: {e}", file=sys.stderr)
        sys.exit(1)


# --- Subcommands ---


def cmd_shells(args):
    """List known shells and whether they are installed."""
    from .shells import shell_detector

    shells = asyncio.run(shell_detector.detect_shells())
    if args.json:
        _print_json([s.to_dict() for s in shells])
        return

    print("=== Shells ===")
    for shell in shells:
        status = "ok" if shell.available else "missing"
        wsl_tag = " [WSL]" if shell.is_wsl else ""
        print(f"\n  {shell.id}{wsl_tag}")
        print(f"    Name: {shell.name}")
        print(f"    Path: {shell.path} [{status}]")
        if shell.args:
            print(f"    Args: {' '.join(shell.args)}")


def cmd_resolve(args):
    """Show the ShellSpec a selector resolves to."""
    from .shells import shell_detector
    from .types import ShellConfig

    shell_config = None
    if args.shell_type:
        shell_config = ShellConfig(
            shell_type=args.shell_type,
            custom_shell_path=args.custom_path,
            custom_shell_args=args.custom_arg or None,
        )
    spec = shell_detector.resolve_shell_config(shell_config, shell=args.shell, args=args.arg or None)
    _print_json(spec.to_dict())


def cmd_agents(args):
    """Detect all agent CLIs."""
    from .agents import cli_detector

    custom_agents = _load_custom_agents(args.custom_agents)
    result = asyncio.run(cli_detector.detect_all(custom_agents, include_wsl=args.wsl))
    if args.json:
        _print_json(result.to_dict())
        return

    print("=== Agent CLIs ===")
    for agent in result.agents:
        if agent.installed:
            where = f" ({agent.path})" if agent.path else ""
            print(f"  {agent.id:<16} v{agent.version} [{agent.environment}]{where}")
        else:
            print(f"  {agent.id:<16} not installed")


def cmd_agent(args):
    """Detect one agent CLI."""
    from .agents import cli_detector
    from .types import CustomAgent

    custom = None
    if args.command_line:
        custom = CustomAgent(id=args.agent_id, name=args.agent_id, command=args.command_line)
    info = asyncio.run(cli_detector.detect_one(args.agent_id, custom))
    _print_json(info.to_dict())


def main():
    from . import config
    from .logging_config import setup_process_logging

    parser = argparse.ArgumentParser(
        prog="termhost",
        description="Terminal host core — shell resolution, agent detection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config-dir", "-c", help="Config directory (default ~/.config/termhost)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    shells_parser = subparsers.add_parser("shells", help="List available shells")
    shells_parser.add_argument("--json", action="store_true", help="Print JSON")
    shells_parser.set_defaults(func=cmd_shells)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a shell selector")
    resolve_parser.add_argument("--shell-type", "-t", help="Shell type (system, zsh, powershell7, wsl:Ubuntu, custom, ...)")
    resolve_parser.add_argument("--custom-path", help="Shell path for --shell-type custom")
    resolve_parser.add_argument("--custom-arg", action="append", help="Argument for a custom shell (repeatable)")
    resolve_parser.add_argument("--shell", help="Explicit shell path (overrides --shell-type)")
    resolve_parser.add_argument("--arg", action="append", help="Argument for --shell (repeatable)")
    resolve_parser.set_defaults(func=cmd_resolve)

    agents_parser = subparsers.add_parser("agents", help="Detect installed agent CLIs")
    agents_parser.add_argument("--wsl", action="store_true", help="Also probe inside WSL (Windows only)")
    agents_parser.add_argument("--custom-agents", help="JSON file with custom agent definitions")
    agents_parser.add_argument("--json", action="store_true", help="Print JSON")
    agents_parser.set_defaults(func=cmd_agents)

    agent_parser = subparsers.add_parser("agent", help="Detect a single agent CLI")
    agent_parser.add_argument("agent_id", help="Agent id (e.g. claude, codex, claude-wsl)")
    agent_parser.add_argument("--command-line", help="Command to probe instead of the built-in one")
    agent_parser.set_defaults(func=cmd_agent)

    args = parser.parse_args()

    if args.config_dir:
        config.init(Path(args.config_dir).expanduser().resolve())
    setup_process_logging(
        "termhost",
        level=logging.DEBUG if args.verbose else logging.WARNING,
        file=False,
    )

    args.func(args)


if __name__ == "__main__":
    main()
