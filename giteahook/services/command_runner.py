"""
External command execution.

Each configured command is spawned directly (no shell) with the raw
webhook payload as its only argument. Runs are bounded by a timeout and
every outcome is reported as a CommandExecutionResult instead of raised.
"""

import asyncio
import os
import signal
import time
from typing import Optional

from giteahook.models.api_response import CommandExecutionResult, ExecutionStatus
from giteahook.utils.logging import get_logger, log_command_execution

logger = get_logger(__name__)


def payload_argument(payload: bytes) -> str:
    """Turn the raw body into a single argv entry without losing bytes."""
    return payload.decode("utf-8", errors="surrogateescape")


def _decode_output(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill a command that outlived its timeout, with everything it started, and reap it."""
    try:
        # The command leads its own session, so its pid is also the process group id
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    await process.wait()


async def run_command(
    command: str,
    payload: bytes,
    rule_name: str = "",
    timeout: Optional[float] = None
) -> CommandExecutionResult:
    """
    Run one command with the payload as its argument.

    Args:
        command: Path (or PATH-resolvable name) of the executable
        payload: Raw webhook request body
        rule_name: Name pattern of the rule that triggered the run
        timeout: Seconds before the process is killed; None or <= 0 waits forever

    Returns:
        CommandExecutionResult describing the outcome
    """
    if timeout is not None and timeout <= 0:
        timeout = None

    start_time = time.monotonic()

    def elapsed_ms() -> int:
        return int((time.monotonic() - start_time) * 1000)

    try:
        process = await asyncio.create_subprocess_exec(
            command,
            payload_argument(payload),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except (OSError, ValueError) as e:  # ValueError: NUL byte in payload
        result = CommandExecutionResult(
            rule_name=rule_name,
            command=command,
            status=ExecutionStatus.SPAWN_FAILED,
            error=str(e),
            duration_ms=elapsed_ms(),
        )
        log_command_execution(logger, result)
        return result

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _terminate(process)
        result = CommandExecutionResult(
            rule_name=rule_name,
            command=command,
            status=ExecutionStatus.TIMED_OUT,
            return_code=process.returncode,
            error=f"timed out after {timeout:g}s",
            duration_ms=elapsed_ms(),
        )
        log_command_execution(logger, result)
        return result
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    if process.returncode == 0:
        result = CommandExecutionResult(
            rule_name=rule_name,
            command=command,
            status=ExecutionStatus.SUCCEEDED,
            return_code=0,
            output=_decode_output(stdout),
            duration_ms=elapsed_ms(),
        )
    else:
        error_text = _decode_output(stderr).strip()
        result = CommandExecutionResult(
            rule_name=rule_name,
            command=command,
            status=ExecutionStatus.FAILED,
            return_code=process.returncode,
            output=_decode_output(stdout),
            error=f"exit status {process.returncode}" + (f": {error_text}" if error_text else ""),
            duration_ms=elapsed_ms(),
        )

    log_command_execution(logger, result)
    return result
