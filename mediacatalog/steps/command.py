"""External process invocation shared by the tool-backed steps."""

from __future__ import annotations

import asyncio


class StepError(RuntimeError):
    def __init__(self, message: str, *, code: str = "STEP_ERROR", hint: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.hint = hint or ""


async def run_command(cmd: list[str], *, step: str, timeout: float | None = None) -> str:
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise StepError(
            f"step {step}: executable not found: {cmd[0]}",
            code="NOT_FOUND",
            hint=f"Install {cmd[0]} or set its command in the config.",
        ) from exc
    except OSError as exc:
        raise StepError(
            f"step {step}: cannot start {cmd[0]}: {exc}",
            code="STEP_FAILED",
            hint=f"Check that {cmd[0]} is an executable file.",
        ) from exc
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise StepError(
            f"step {step} timed out after {timeout}s",
            code="TIMEOUT",
            hint="Increase the timeout or check the external command.",
        ) from exc
    if proc.returncode != 0:
        raise StepError(
            f"step {step} failed: {stderr.decode('utf-8', 'replace').strip()}",
            code="STEP_FAILED",
            hint="Check external command output and configuration.",
        )
    return stdout.decode("utf-8", "replace")
