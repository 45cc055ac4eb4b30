"""Run log file writing: one timestamped diagnostic file per invocation."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from nanoclaw.agent_runner._process import STDERR_TAIL_CHARS, RunContext
from nanoclaw.agent_runner._serialization import input_to_dict
from nanoclaw.logger import is_verbose, logger
from nanoclaw.types import AgentInput


def _render(
    *,
    group_name: str,
    runtime: str,
    input_data: AgentInput,
    command: Sequence[str],
    cwd: Path,
    ctx: RunContext,
    verbose: bool,
) -> str:
    outcome = ctx.outcome.result if ctx.outcome.resolved else None
    failed = outcome is None or outcome.status == "error"

    lines = [
        f"=== Agent Run Log{' (TIMEOUT)' if ctx.timed_out else ''} ===",
        f"Timestamp: {datetime.now(UTC).isoformat()}",
        f"Group: {group_name}",
        f"Runtime: {runtime}",
        f"Process: {ctx.name}",
        f"IsMain: {input_data.is_main}",
        f"Duration: {ctx.duration_ms:.0f}ms",
        f"Exit Code: {ctx.exit_code}",
        f"Timed Out: {ctx.timed_out}",
        f"Stdout Truncated: {ctx.stdout.truncated}",
        f"Stderr Truncated: {ctx.stderr.truncated}",
        f"Status: {outcome.status if outcome else 'unresolved'}",
        "",
    ]
    if ctx.spawn_error:
        lines.extend(["=== Spawn Error ===", ctx.spawn_error, ""])

    if verbose:
        lines.extend(
            [
                "=== Input ===",
                json.dumps(input_to_dict(input_data), indent=2),
                "",
                "=== Entrypoint ===",
                " ".join(command),
                "",
                "=== CWD ===",
                str(cwd),
                "",
                f"=== Stderr{' (TRUNCATED)' if ctx.stderr.truncated else ''} ===",
                ctx.stderr.text,
                "",
                f"=== Stdout{' (TRUNCATED)' if ctx.stdout.truncated else ''} ===",
                ctx.stdout.text,
            ]
        )
    else:
        lines.extend(
            [
                "=== Input Summary ===",
                f"Prompt length: {len(input_data.prompt)} chars",
                f"Session ID: {input_data.session_id or 'new'}",
                "",
            ]
        )
        if failed:
            lines.extend(
                [
                    f"=== Stderr (last {STDERR_TAIL_CHARS} chars) ===",
                    ctx.stderr_tail(),
                    "",
                ]
            )
    return "\n".join(lines)


def write_run_log(
    *,
    logs_dir: Path,
    group_name: str,
    runtime: str,
    input_data: AgentInput,
    command: Sequence[str],
    cwd: Path,
    ctx: RunContext,
    verbose: bool | None = None,
) -> Path | None:
    """Write ``agent-<timestamp>.log`` for a run. Never raises.

    Returns the log path, or None when writing failed.
    """
    if verbose is None:
        verbose = is_verbose()

    ts = datetime.now(UTC).isoformat().replace(":", "-").replace(".", "-")
    log_file = logs_dir / f"agent-{ts}.log"

    try:
        body = _render(
            group_name=group_name,
            runtime=runtime,
            input_data=input_data,
            command=command,
            cwd=cwd,
            ctx=ctx,
            verbose=verbose,
        )
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file.write_text(body, encoding="utf-8")
    except (OSError, ValueError) as exc:
        logger.warning(
            "Failed to write run log", group=group_name, path=str(log_file), err=str(exc)
        )
        return None

    logger.debug("Agent log written", log_file=str(log_file), verbose=verbose)
    return log_file
