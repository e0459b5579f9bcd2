"""
Terminal Tool
=============
Run a shell command with a hard timeout. The command runs in its own process
group so a timeout or a cancelled run kills everything it spawned, not just
the shell.
"""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

from ..cancel import CancellationToken
from ..models import ToolContext, ToolResult
from .base import Tool

log = logging.getLogger("tessera.tools.terminal")

DEFAULT_TIMEOUT = 60
MAX_OUTPUT_CHARS = 10000


def _truncate(text: str) -> str:
    if len(text) > MAX_OUTPUT_CHARS:
        return text[:5000] + "\n\n... (truncated) ...\n\n" + text[-3000:]
    return text


def _kill(proc: asyncio.subprocess.Process):
    if proc.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


async def run_command(
    command: str,
    cwd: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
    cancel_token: Optional[CancellationToken] = None,
) -> ToolResult:
    """
    Run `command` through the shell. Exit code 0 is success (stdout is the
    output); anything else is a failure carrying stderr. Timeouts and
    cancellation kill the process group.
    """
    work_dir = cwd or os.getcwd()
    if not Path(work_dir).is_dir():
        return ToolResult.fail(f"Working directory not found: {work_dir}")

    log.info(f"run_command: {command[:200]} (cwd={work_dir}, timeout={timeout}s)")
    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=work_dir,
        start_new_session=(os.name == "posix"),
    )

    communicate = asyncio.ensure_future(proc.communicate())
    waiters = {communicate}
    cancel_wait = None
    if cancel_token is not None:
        cancel_wait = asyncio.ensure_future(cancel_token.wait())
        waiters.add(cancel_wait)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        _kill(proc)
        communicate.cancel()
        raise
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()

    if communicate not in done:
        _kill(proc)
        communicate.cancel()
        await proc.wait()
        if cancel_token is not None and cancel_token.cancelled:
            log.info(f"run_command cancelled: {command[:200]}")
            return ToolResult.fail("Command cancelled")
        log.warning(f"run_command timed out after {timeout}s: {command[:200]}")
        return ToolResult.fail(f"Command timed out after {timeout}s")

    stdout_b, stderr_b = communicate.result()
    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")
    data = {"exit_code": proc.returncode, "stdout": stdout, "stderr": stderr}

    if proc.returncode == 0:
        output = stdout
        if stderr.strip():
            output = f"{stdout}\n[stderr]\n{stderr}" if stdout else f"[stderr]\n{stderr}"
        return ToolResult(success=True, output=_truncate(output.strip()) or "Command completed", data=data)

    return ToolResult(
        success=False,
        error=_truncate(stderr.strip()) or f"Exit code {proc.returncode}",
        data=data,
    )


class RunCommandTool(Tool):
    """The run_command tool with a fixed, caller-chosen hard timeout."""

    name = "run_command"
    description = "Execute a shell command and return its output. Commands are killed after a hard timeout."
    input_schema = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Command to run"},
            "cwd": {"type": "string", "description": "Working directory (default: workspace)"},
        },
        "required": ["command"],
    }

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    async def execute(self, input, context: ToolContext) -> ToolResult:
        cwd = input.get("cwd")
        workspace = context.workspace_root if context else None
        if cwd and workspace and not Path(cwd).is_absolute():
            cwd = str(Path(workspace) / cwd)
        return await run_command(
            input["command"],
            cwd=cwd or workspace,
            timeout=self.timeout,
            cancel_token=context.cancel_token if context else None,
        )


def register_terminal_tools(registry, timeout: float = DEFAULT_TIMEOUT):
    """Register terminal tools with a ToolRegistry."""
    registry.register(RunCommandTool(timeout=timeout))
