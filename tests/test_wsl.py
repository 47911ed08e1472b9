"""Tests for the WSL bridge (termhost/wsl.py)."""

from unittest.mock import AsyncMock, patch

import termhost.wsl as wsl
from termhost.probes import ProbeResult


def _as_misdecoded_utf16(text: str) -> str:
    """What UTF-16LE output looks like when read as 8-bit text."""
    return text.encode("utf-16-le").decode("latin-1")


class TestParseDistributions:
    def test_plain(self):
        assert wsl.parse_distributions("Ubuntu\r\nDebian\r\n") == ["Ubuntu", "Debian"]

    def test_nul_interleaved(self):
        raw = _as_misdecoded_utf16("Ubuntu-22.04\r\nkali-linux\r\n")
        assert "\x00" in raw
        assert wsl.parse_distributions(raw) == ["Ubuntu-22.04", "kali-linux"]

    def test_bom_stripped(self):
        assert wsl.parse_distributions("\ufeffUbuntu\r\n") == ["Ubuntu"]

    def test_hides_utility_distributions(self):
        out = "Ubuntu\r\ndocker-desktop\r\ndocker-desktop-data\r\nRancher-Desktop\r\n"
        assert wsl.parse_distributions(out) == ["Ubuntu"]

    def test_blank_lines_and_duplicates(self):
        assert wsl.parse_distributions("\r\n  Ubuntu  \r\n\r\nUbuntu\r\n") == ["Ubuntu"]

    def test_empty(self):
        assert wsl.parse_distributions("") == []


class TestAvailability:
    def test_not_available_off_windows(self):
        assert not wsl.is_available("linux")
        assert not wsl.is_available("darwin")

    async def test_list_off_windows_runs_nothing(self):
        with patch("termhost.wsl.run_probe", AsyncMock()) as run_probe:
            assert await wsl.list_distributions(platform="linux") == []
        run_probe.assert_not_called()

    async def test_run_off_windows(self):
        result = await wsl.run_in_distribution("claude --version", platform="linux")
        assert not result.ok
        assert result.error == "WSL is not available"


class TestListDistributions:
    async def test_lists(self):
        probe = AsyncMock(return_value=ProbeResult(returncode=0, stdout="Ubuntu\r\nDebian\r\n"))
        with (
            patch("termhost.wsl.is_available", return_value=True),
            patch("termhost.wsl.run_probe", probe),
        ):
            assert await wsl.list_distributions(timeout=1.0) == ["Ubuntu", "Debian"]
        args = probe.call_args.args
        assert args[1:] == ("--list", "--quiet")
        assert probe.call_args.kwargs["encoding"] == "utf-16-le"
        assert probe.call_args.kwargs["timeout"] == 1.0

    async def test_failure_is_empty(self):
        probe = AsyncMock(return_value=ProbeResult(returncode=-1, timed_out=True, timeout=8.0))
        with (
            patch("termhost.wsl.is_available", return_value=True),
            patch("termhost.wsl.run_probe", probe),
        ):
            assert await wsl.list_distributions() == []

    async def test_timeout_from_config(self, host_config):
        host_config(wsl_timeout=2.5)
        probe = AsyncMock(return_value=ProbeResult(returncode=0, stdout=""))
        with (
            patch("termhost.wsl.is_available", return_value=True),
            patch("termhost.wsl.run_probe", probe),
        ):
            await wsl.list_distributions()
        assert probe.call_args.kwargs["timeout"] == 2.5


class TestCommands:
    def test_login_shell_command(self):
        assert wsl.login_shell_command("codex --version") == "exec \"$SHELL\" -ilc 'codex --version'"

    def test_build_argv_default_distribution(self):
        argv = wsl.build_wsl_argv("claude --version")
        assert argv[0] == wsl.wsl_launcher()
        assert argv[1:] == ["--", "sh", "-c", "exec \"$SHELL\" -ilc 'claude --version'"]

    def test_build_argv_named_distribution(self):
        argv = wsl.build_wsl_argv("uname -a", distribution="Debian", login_shell=False)
        assert argv[1:] == ["-d", "Debian", "--", "sh", "-c", "uname -a"]

    def test_launcher_from_environment(self):
        assert wsl.wsl_launcher({"SystemRoot": r"D:\Win"}) == r"D:\Win\System32\wsl.exe"
        assert wsl.wsl_launcher({}) == "wsl.exe"

    async def test_run_in_distribution(self):
        probe = AsyncMock(return_value=ProbeResult(returncode=0, stdout="1.2.3\n"))
        with (
            patch("termhost.wsl.is_available", return_value=True),
            patch("termhost.wsl.run_probe", probe),
        ):
            result = await wsl.run_in_distribution("gemini --version", distribution="Ubuntu", timeout=4.0)
        assert result.ok
        args = probe.call_args.args
        assert args[1:4] == ("-d", "Ubuntu", "--")
        assert "gemini --version" in args[-1]
        assert probe.call_args.kwargs["timeout"] == 4.0
