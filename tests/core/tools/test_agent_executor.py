"""Tests for apex_monitor.core.tools.agent_executor."""

import asyncio
import subprocess
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from apex_monitor.core.errors import ErrorCode
from apex_monitor.core.tools.agent_executor import (
    build_agent_command,
    build_prompt,
    check_agent_health,
    run_agent,
    safe_decode,
)


# ── Subprocess mocks ─────────────────────────────────────────────────────────


@pytest.fixture
def prompt_file(tmp_path: Path) -> Path:
    path = tmp_path / "prompt.md"
    path.write_text("Analyze the Apex logs.", encoding="utf-8")
    return path


@pytest.fixture
def mock_process():
    process = AsyncMock()
    process.communicate = AsyncMock(return_value=(b"## Report\nAll good\n", b""))
    process.returncode = 0
    process.kill = MagicMock()
    process.wait = AsyncMock()
    return process


@pytest.fixture
def mock_create_subprocess(monkeypatch: pytest.MonkeyPatch, mock_process):
    mock_create = AsyncMock(return_value=mock_process)
    monkeypatch.setattr("asyncio.create_subprocess_exec", mock_create)
    return mock_create


# ── Pure helpers ─────────────────────────────────────────────────────────────


class TestSafeDecode:

    def test_utf8(self):
        assert safe_decode("résumé".encode("utf-8")) == "résumé"

    def test_latin1_fallback(self):
        assert safe_decode(b"caf\xe9") == "café"

    def test_empty(self):
        assert safe_decode(b"") == ""


class TestBuildPrompt:

    def test_appends_relative_log_folder(self, tmp_path):
        prompt = build_prompt("Do it.", tmp_path / ".sf-log_Analysis", tmp_path)
        assert prompt == (
            "Do it.\n\n---\nContext: The log folder path is .sf-log_Analysis. Analyze it now."
        )

    def test_outside_project_uses_folder_name(self, tmp_path):
        prompt = build_prompt("Do it.", tmp_path / "elsewhere" / "logs", tmp_path / "project")
        assert "The log folder path is logs." in prompt

    def test_command_shape(self, tmp_path):
        command = build_agent_command("PROMPT", tmp_path, cli="agent")
        assert command == [
            "agent", "--print", "--output-format", "text",
            "--workspace", str(tmp_path), "--approve-mcps", "PROMPT",
        ]


# ── run_agent ────────────────────────────────────────────────────────────────


class TestRunAgent:

    async def test_success(self, tmp_path, prompt_file, mock_create_subprocess):
        result = await run_agent(tmp_path / ".sf-log_Analysis", tmp_path, prompt_file=prompt_file)

        assert result.success
        assert result.output == "## Report\nAll good"
        assert result.error is None
        assert result.exit_code == 0

        args, kwargs = mock_create_subprocess.call_args
        assert args[0] == "agent"
        assert "--approve-mcps" in args
        assert args[-1].startswith("Analyze the Apex logs.")
        assert "The log folder path is .sf-log_Analysis." in args[-1]
        assert kwargs["cwd"] == str(tmp_path)

    async def test_non_zero_exit_uses_stderr(self, tmp_path, prompt_file, mock_process, mock_create_subprocess):
        mock_process.communicate = AsyncMock(return_value=(b"", b"not logged in\n"))
        mock_process.returncode = 1

        result = await run_agent(tmp_path, tmp_path, prompt_file=prompt_file)

        assert not result.success
        assert result.error == "not logged in"
        assert result.code is ErrorCode.AGENT_FAILED
        assert result.exit_code == 1

    async def test_non_zero_exit_without_stderr(self, tmp_path, prompt_file, mock_process, mock_create_subprocess):
        mock_process.communicate = AsyncMock(return_value=(b"", b""))
        mock_process.returncode = 3

        result = await run_agent(tmp_path, tmp_path, prompt_file=prompt_file)

        assert result.error == "Agent exited with code 3"

    async def test_timeout_kills_process(self, tmp_path, prompt_file, mock_process, mock_create_subprocess):
        mock_process.communicate = AsyncMock(side_effect=asyncio.TimeoutError)

        result = await run_agent(tmp_path, tmp_path, prompt_file=prompt_file, timeout=1)

        assert not result.success
        assert result.code is ErrorCode.AGENT_TIMEOUT
        assert "timed out" in result.error
        mock_process.kill.assert_called_once()
        mock_process.wait.assert_awaited_once()

    async def test_cli_not_found(self, tmp_path, prompt_file, monkeypatch):
        monkeypatch.setattr(
            "asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("agent")),
        )

        result = await run_agent(tmp_path, tmp_path, prompt_file=prompt_file)

        assert not result.success
        assert result.code is ErrorCode.AGENT_NOT_FOUND
        assert "not found" in result.error

    async def test_launch_oserror(self, tmp_path, prompt_file, monkeypatch):
        monkeypatch.setattr(
            "asyncio.create_subprocess_exec",
            AsyncMock(side_effect=PermissionError("denied")),
        )

        result = await run_agent(tmp_path, tmp_path, prompt_file=prompt_file)

        assert result.code is ErrorCode.AGENT_FAILED
        assert "denied" in result.error

    async def test_missing_prompt_file(self, tmp_path, mock_create_subprocess):
        result = await run_agent(tmp_path, tmp_path, prompt_file=tmp_path / "missing.md")

        assert not result.success
        assert result.error == "Prompt file not found"
        assert result.code is ErrorCode.PROMPT_NOT_FOUND
        mock_create_subprocess.assert_not_called()

    def test_bundled_prompt_exists(self):
        from apex_monitor.config import AGENT_PROMPT_FILE
        assert AGENT_PROMPT_FILE.is_file()


# ── Health check ─────────────────────────────────────────────────────────────


class TestCheckAgentHealth:

    async def test_available(self, monkeypatch):
        completed = subprocess.CompletedProcess(["agent", "--version"], 0, stdout=b"1.2.3\n", stderr=b"")
        monkeypatch.setattr(
            "apex_monitor.core.tools.agent_executor.subprocess.run",
            MagicMock(return_value=completed),
        )

        status = await check_agent_health()

        assert status.available
        assert status.version == "1.2.3"
        assert status.details["prompt_found"] is True

    async def test_missing_cli(self, monkeypatch):
        monkeypatch.setattr(
            "apex_monitor.core.tools.agent_executor.subprocess.run",
            MagicMock(side_effect=FileNotFoundError("agent")),
        )

        status = await check_agent_health()

        assert not status.available
        assert "not found" in status.message

    async def test_error_exit(self, monkeypatch):
        completed = subprocess.CompletedProcess(["agent", "--version"], 2, stdout=b"", stderr=b"boom")
        monkeypatch.setattr(
            "apex_monitor.core.tools.agent_executor.subprocess.run",
            MagicMock(return_value=completed),
        )

        status = await check_agent_health()

        assert not status.available
