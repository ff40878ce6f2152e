import asyncio
import os
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from apex_monitor.config import AGENT_CLI, AGENT_PROMPT_FILE, AGENT_TIMEOUT
from apex_monitor.core.errors import ErrorCode
from apex_monitor.core.logging import get_logger
from apex_monitor.core.tools.agent_types import AgentHealthStatus, AgentResult

_log = get_logger("tools.agent")

NOT_FOUND_MESSAGE = f"{AGENT_CLI} CLI not found. Install the agent CLI or run with --no-agent"


def safe_decode(data: bytes) -> str:
    """Decode bytes with multiple encoding fallbacks.

    Args:
        data: Raw bytes to decode.

    Returns:
        Decoded string, trying utf-8 then latin-1.
    """
    for encoding in ["utf-8", "latin-1"]:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")


def build_prompt(prompt_text: str, log_dir: Path, project_dir: Path) -> str:
    try:
        log_dir_ref = str(Path(log_dir).resolve().relative_to(Path(project_dir).resolve()))
    except ValueError:
        log_dir_ref = Path(log_dir).name
    if log_dir_ref in ("", "."):
        log_dir_ref = Path(log_dir).name
    return f"{prompt_text}\n\n---\nContext: The log folder path is {log_dir_ref}. Analyze it now."


def build_agent_command(prompt: str, workspace: Path, cli: str = AGENT_CLI) -> List[str]:
    return [
        cli,
        "--print",
        "--output-format", "text",
        "--workspace", str(workspace),
        "--approve-mcps",
        prompt,
    ]


async def run_agent(
    log_dir: Path,
    project_dir: Path,
    prompt_file: Optional[Path] = None,
    timeout: int = AGENT_TIMEOUT,
) -> AgentResult:
    """Ask the agent CLI to analyze the logs in ``log_dir``.

    Args:
        log_dir: Directory holding the staged log copies.
        project_dir: Workspace root handed to the agent.
        prompt_file: Markdown prompt; defaults to the bundled one.
        timeout: Seconds before the agent is killed.

    Returns:
        AgentResult. Every failure (missing prompt, missing CLI, non-zero
        exit, timeout) comes back with success=False rather than raising.
    """
    prompt_file = Path(prompt_file or AGENT_PROMPT_FILE)
    try:
        prompt_text = prompt_file.read_text(encoding="utf-8")
    except OSError:
        _log.warning("Agent prompt file not found", path=str(prompt_file))
        return AgentResult(
            success=False,
            output="",
            error="Prompt file not found",
            code=ErrorCode.PROMPT_NOT_FOUND,
            exit_code=-1,
        )

    full_prompt = build_prompt(prompt_text, log_dir, project_dir)
    command = build_agent_command(full_prompt, project_dir)
    start_time = time.time()

    _log.info("Agent analyzing", cli=AGENT_CLI, path=str(log_dir), prompt_chars=len(full_prompt))

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(project_dir),
            env={**os.environ, "TERM": "dumb"},
        )

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            execution_time = time.time() - start_time
            _log.error(f"Agent timed out after {timeout}s")
            return AgentResult(
                success=False,
                output="",
                error=f"Agent timed out after {timeout} seconds",
                code=ErrorCode.AGENT_TIMEOUT,
                exit_code=-1,
                execution_time=execution_time,
            )

    except FileNotFoundError:
        _log.error("Agent CLI not found", cli=AGENT_CLI)
        return AgentResult(
            success=False,
            output="",
            error=NOT_FOUND_MESSAGE,
            code=ErrorCode.AGENT_NOT_FOUND,
            exit_code=-1,
        )

    except OSError as e:
        _log.error("Agent launch failed", error=str(e))
        return AgentResult(
            success=False,
            output="",
            error=str(e),
            code=ErrorCode.AGENT_FAILED,
            exit_code=-1,
            execution_time=time.time() - start_time,
        )

    stdout = safe_decode(stdout_bytes or b"")
    stderr = safe_decode(stderr_bytes or b"")
    returncode = process.returncode if process.returncode is not None else -1
    execution_time = time.time() - start_time

    if returncode == 0:
        _log.info("Agent complete", time=f"{execution_time:.1f}s", output_chars=len(stdout))
        return AgentResult(
            success=True,
            output=stdout.strip(),
            exit_code=0,
            execution_time=execution_time,
        )

    _log.warning(
        "Agent failed",
        exit_code=returncode,
        stderr_preview=stderr[:200] if stderr else None,
    )
    return AgentResult(
        success=False,
        output=stdout.strip(),
        error=stderr.strip() or f"Agent exited with code {returncode}",
        code=ErrorCode.AGENT_FAILED,
        exit_code=returncode,
        execution_time=execution_time,
    )


async def check_agent_health(timeout: int = 10) -> AgentHealthStatus:

    try:
        result = await asyncio.to_thread(
            subprocess.run,
            [AGENT_CLI, "--version"],
            capture_output=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        return AgentHealthStatus(available=False, message=NOT_FOUND_MESSAGE)
    except (OSError, subprocess.SubprocessError) as e:
        return AgentHealthStatus(available=False, message=f"Health check failed: {e}")

    if result.returncode == 0:
        return AgentHealthStatus(
            available=True,
            message=f"{AGENT_CLI} CLI available",
            version=safe_decode(result.stdout).strip(),
            details={
                "timeout": AGENT_TIMEOUT,
                "prompt_file": str(AGENT_PROMPT_FILE),
                "prompt_found": Path(AGENT_PROMPT_FILE).exists(),
            },
        )
    return AgentHealthStatus(available=False, message=f"{AGENT_CLI} CLI returned error")
