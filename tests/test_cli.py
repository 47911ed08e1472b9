"""Tests for the termhost command line (termhost/cli.py)."""

import json
import sys
from unittest.mock import AsyncMock, patch

import pytest

from termhost import cli
from termhost.types import AgentCliInfo, CliDetectResult, ShellInfo


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["termhost", *argv])
    with patch("termhost.logging_config.setup_process_logging"):
        cli.main()


class TestResolve:
    def test_custom(self, monkeypatch, capsys):
        _run(monkeypatch, "resolve", "--shell-type", "custom", "--custom-path", "/usr/bin/fish", "--custom-arg=-l")
        assert json.loads(capsys.readouterr().out) == {"shell": "/usr/bin/fish", "args": ["-l"], "is_wsl": False}

    def test_explicit_shell(self, monkeypatch, capsys):
        _run(monkeypatch, "resolve", "--shell", "/bin/dash", "--arg=-e")
        assert json.loads(capsys.readouterr().out)["args"] == ["-e"]

    def test_default(self, monkeypatch, capsys):
        _run(monkeypatch, "resolve")
        assert json.loads(capsys.readouterr().out)["shell"]


class TestShells:
    def test_json(self, monkeypatch, capsys):
        shells = [ShellInfo("zsh", "Zsh", "/bin/zsh", ["-i", "-l"], True)]
        with patch("termhost.shells.shell_detector.detect_shells", AsyncMock(return_value=shells)):
            _run(monkeypatch, "shells", "--json")
        assert json.loads(capsys.readouterr().out)[0]["id"] == "zsh"

    def test_plain(self, monkeypatch, capsys):
        shells = [
            ShellInfo("zsh", "Zsh", "/bin/zsh", ["-i", "-l"], True),
            ShellInfo("fish", "Fish", "/usr/bin/fish", ["-i", "-l"], False),
        ]
        with patch("termhost.shells.shell_detector.detect_shells", AsyncMock(return_value=shells)):
            _run(monkeypatch, "shells")
        out = capsys.readouterr().out
        assert "/bin/zsh [ok]" in out
        assert "/usr/bin/fish [missing]" in out


class TestAgents:
    def test_custom_agents_file(self, monkeypatch, capsys, tmp_path):
        path = tmp_path / "agents.json"
        path.write_text(json.dumps([{"id": "aider", "name": "Aider", "command": "aider"}]))
        detect = AsyncMock(return_value=CliDetectResult([AgentCliInfo("aider", "Aider", "aider")]))
        with patch("termhost.agents.cli_detector.detect_all", detect):
            _run(monkeypatch, "agents", "--json", "--custom-agents", str(path))
        customs = detect.call_args.args[0]
        assert [c.id for c in customs] == ["aider"]
        assert detect.call_args.kwargs["include_wsl"] is False
        assert json.loads(capsys.readouterr().out)["agents"][0]["id"] == "aider"

    def test_plain(self, monkeypatch, capsys):
        result = CliDetectResult(
            [
                AgentCliInfo("claude", "Claude", "claude", True, "1.0.3", "/usr/local/bin/claude"),
                AgentCliInfo("codex", "Codex", "codex"),
            ]
        )
        with patch("termhost.agents.cli_detector.detect_all", AsyncMock(return_value=result)):
            _run(monkeypatch, "agents", "--wsl")
        out = capsys.readouterr().out
        assert "v1.0.3 [native]" in out
        assert "not installed" in out

    def test_bad_custom_agents_file(self, monkeypatch, tmp_path):
        path = tmp_path / "agents.json"
        path.write_text("{}")
        with pytest.raises(SystemExit):
            _run(monkeypatch, "agents", "--custom-agents", str(path))

    def test_single_agent(self, monkeypatch, capsys):
        detect = AsyncMock(return_value=AgentCliInfo("claude-wsl", "Claude", "claude", environment="wsl"))
        with patch("termhost.agents.cli_detector.detect_one", detect):
            _run(monkeypatch, "agent", "claude-wsl")
        assert detect.call_args.args == ("claude-wsl", None)
        assert json.loads(capsys.readouterr().out)["environment"] == "wsl"
