"""Process supervision: byte-capped capture, timeout race, single resolution.

Provides:
  - StreamCapture - per-stream byte buffer with a hard cap and truncation flag
  - ResultLatch - first-resolution-wins guard for the terminal AgentOutput
  - RunContext - ephemeral per-invocation state (buffers, exit code, timing)
  - read_stream() - drains a pipe into a StreamCapture
  - supervise() - spawns the backend, races exit against the timeout, and
    resolves the invocation exactly once
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nanoclaw.logger import logger
from nanoclaw.types import AgentOutput

STDERR_TAIL_CHARS = 500
READ_CHUNK_SIZE = 8192
# After SIGKILL, how long to wait for the pipes to close before giving up.
# Grandchildren holding the pipes open would otherwise stall the caller.
KILL_DRAIN_GRACE_SECS = 5.0

OnProcess = Callable[[asyncio.subprocess.Process, str], Any]
ParseOutput = Callable[["RunContext"], AgentOutput]


@dataclass
class StreamCapture:
    name: str
    limit: int
    data: bytearray = field(default_factory=bytearray)
    truncated: bool = False

    def feed(self, chunk: bytes) -> bool:
        """Append *chunk* up to the cap. Returns True when this chunk hit the cap."""
        if self.truncated:
            return False
        remaining = self.limit - len(self.data)
        if len(chunk) > remaining:
            self.data += chunk[:remaining]
            self.truncated = True
            return True
        self.data += chunk
        return False

    @property
    def text(self) -> str:
        return self.data.decode(errors="replace")


class ResultLatch:
    """Holds the first AgentOutput offered; later offers are ignored."""

    def __init__(self) -> None:
        self._result: AgentOutput | None = None

    @property
    def resolved(self) -> bool:
        return self._result is not None

    def resolve(self, output: AgentOutput) -> bool:
        if self._result is not None:
            return False
        self._result = output
        return True

    @property
    def result(self) -> AgentOutput:
        if self._result is None:
            raise RuntimeError("Run has not resolved yet")
        return self._result


@dataclass
class RunContext:
    name: str
    timeout_secs: float
    stdout: StreamCapture
    stderr: StreamCapture
    started: float = field(default_factory=time.monotonic)
    finished: float | None = None
    exit_code: int | None = None
    timed_out: bool = False
    spawn_error: str | None = None
    outcome: ResultLatch = field(default_factory=ResultLatch)

    @classmethod
    def create(cls, name: str, timeout_secs: float, max_output_size: int) -> RunContext:
        return cls(
            name=name,
            timeout_secs=timeout_secs,
            stdout=StreamCapture("stdout", max_output_size),
            stderr=StreamCapture("stderr", max_output_size),
        )

    def finish(self) -> None:
        if self.finished is None:
            self.finished = time.monotonic()

    @property
    def duration_ms(self) -> float:
        end = self.finished if self.finished is not None else time.monotonic()
        return (end - self.started) * 1000

    def stderr_tail(self, limit: int = STDERR_TAIL_CHARS) -> str:
        return self.stderr.text.strip()[-limit:]


async def read_stream(
    stream: asyncio.StreamReader,
    capture: StreamCapture,
    group_name: str,
    *,
    echo: bool = False,
) -> None:
    """Drain *stream* to EOF, keeping at most ``capture.limit`` bytes.

    The pipe is always drained to EOF so the child never blocks on a full
    pipe, even after the cap is reached.
    """
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break

        if echo:
            for line in chunk.decode(errors="replace").strip().splitlines():
                if line:
                    logger.debug(line, agent=group_name)

        if capture.feed(chunk):
            logger.warning(
                "Agent output truncated",
                group=group_name,
                stream=capture.name,
                size=len(capture.data),
            )


async def _feed_stdin(proc: asyncio.subprocess.Process, data: bytes, group_name: str) -> None:
    assert proc.stdin is not None
    try:
        proc.stdin.write(data)
        await proc.stdin.drain()
    except (BrokenPipeError, ConnectionResetError) as exc:
        logger.warning("Agent closed stdin before reading input", group=group_name, err=str(exc))
    finally:
        proc.stdin.close()


async def _pump(
    proc: asyncio.subprocess.Process,
    ctx: RunContext,
    group_name: str,
    stdin_data: bytes | None,
) -> int:
    """Feed stdin, drain both pipes concurrently, then wait for exit."""
    assert proc.stdout is not None
    assert proc.stderr is not None
    jobs = [
        read_stream(proc.stdout, ctx.stdout, group_name),
        read_stream(proc.stderr, ctx.stderr, group_name, echo=True),
    ]
    if stdin_data is not None:
        jobs.append(_feed_stdin(proc, stdin_data, group_name))
    await asyncio.gather(*jobs)
    return await proc.wait()


def _classify_exit(ctx: RunContext, label: str, group_name: str) -> AgentOutput | None:
    """Error output for an abnormal exit, or None when the output should be parsed."""
    if ctx.exit_code is None:
        return AgentOutput.failure(f"{label} ended without an exit status")
    if ctx.exit_code != 0:
        logger.error(
            "Agent exited with error",
            group=group_name,
            code=ctx.exit_code,
            duration_ms=round(ctx.duration_ms),
            stderr=ctx.stderr_tail(),
        )
        return AgentOutput.failure(
            f"{label} exited with code {ctx.exit_code}: {ctx.stderr_tail()}"
        )
    return None


async def supervise(
    cmd: Sequence[str],
    *,
    name: str,
    cwd: Path,
    env: dict[str, str],
    stdin_data: bytes | None,
    timeout_secs: float,
    max_output_size: int,
    group_name: str,
    label: str,
    parse: ParseOutput,
    on_process: OnProcess | None = None,
) -> RunContext:
    """Run *cmd* to completion and resolve ``ctx.outcome`` exactly once.

    Exactly one of spawn error, timeout, non-zero exit, parse failure or
    success wins. A timeout kills the process with SIGKILL and resolves
    immediately; the exit that follows the kill is ignored. An ``on_process``
    callback that raises is treated the same way.
    """
    ctx = RunContext.create(name, timeout_secs, max_output_size)

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            env=env,
            stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        ctx.spawn_error = str(exc)
        ctx.finish()
        logger.error("Agent spawn error", group=group_name, process=name, error=str(exc))
        ctx.outcome.resolve(AgentOutput.failure(f"{label} spawn error: {exc}"))
        return ctx

    loop = asyncio.get_running_loop()
    io_task = asyncio.ensure_future(_pump(proc, ctx, group_name, stdin_data))

    def abort(error: str) -> None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        ctx.outcome.resolve(AgentOutput.failure(error))
        loop.call_later(KILL_DRAIN_GRACE_SECS, io_task.cancel)

    def kill_on_timeout() -> None:
        if io_task.done():
            return
        ctx.timed_out = True
        logger.error(
            "Agent timeout, killing",
            group=group_name,
            process=name,
            timeout_secs=timeout_secs,
        )
        abort(f"{label} timed out after {timeout_secs:g}s")

    timeout_handle = loop.call_later(timeout_secs, kill_on_timeout)
    try:
        if on_process is not None:
            try:
                on_process(proc, name)
            except Exception as exc:
                logger.exception("on_process callback failed, killing", process=name)
                abort(f"{label} on_process callback failed: {exc}")
        await asyncio.wait({io_task})
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        io_task.cancel()
        raise
    finally:
        timeout_handle.cancel()

    if io_task.cancelled():
        logger.warning("Agent pipes still open after kill", group=group_name, process=name)
    elif (exc := io_task.exception()) is not None:
        logger.error("Agent I/O failed", group=group_name, process=name, error=str(exc))
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        ctx.outcome.resolve(AgentOutput.failure(f"{label} I/O error: {exc}"))
    else:
        ctx.exit_code = io_task.result()
    ctx.finish()

    if not ctx.outcome.resolved:
        failure = _classify_exit(ctx, label, group_name)
        ctx.outcome.resolve(failure if failure is not None else parse(ctx))
    return ctx
