"""Main entry point: run_agent() and the agent-runner (claude) backend.

Pipeline per call: select runtime → prepare directories and env → expose
extra mounts → spawn under supervision → parse output → write run log.
Every outcome is returned as an AgentOutput; nothing raises past run_agent().
"""

from __future__ import annotations

import json
import shutil
import time

from nanoclaw.agent_runner._codex import plan_codex_run
from nanoclaw.agent_runner._environment import build_agent_env, prepare_agent_paths
from nanoclaw.agent_runner._extract import parse_sentinel_output
from nanoclaw.agent_runner._logging import write_run_log
from nanoclaw.agent_runner._mounts import MountValidator, build_extra_mounts, expose_extra_mounts
from nanoclaw.agent_runner._plan import AgentConfigError, LaunchPlan
from nanoclaw.agent_runner._process import OnProcess, supervise
from nanoclaw.agent_runner._runtime import SettingLookup, resolve_agent_runtime
from nanoclaw.agent_runner._serialization import input_to_dict
from nanoclaw.config import get_settings
from nanoclaw.logger import logger, run_context
from nanoclaw.types import AgentInput, AgentOutput, RegisteredGroup


def _plan_agent_runner(input_data: AgentInput, env: dict[str, str], group_name: str) -> LaunchPlan:
    """Launch plan for the entrypoint-style backend (input on stdin, sentinel output)."""
    s = get_settings()
    entrypoint = s.agent_entrypoint
    if not entrypoint.exists():
        raise AgentConfigError(
            f"Agent runner not built: missing {entrypoint}. "
            "Run: npm --prefix container/agent-runner run build"
        )
    interpreter = shutil.which(s.agent.node_binary, path=env.get("PATH"))
    if interpreter is None:
        raise AgentConfigError(
            f"Agent runner interpreter not found: {s.agent.node_binary!r} is not on PATH"
        )

    return LaunchPlan(
        label="Agent",
        command=[interpreter, str(entrypoint)],
        stdin_data=json.dumps(input_to_dict(input_data)).encode(),
        parse=lambda ctx: parse_sentinel_output(ctx.stdout.text, group_name),
    )


def resolve_timeout(group: RegisteredGroup, override: float | None = None) -> float:
    """Explicit override > group-configured timeout > global default (seconds)."""
    if override:
        return override
    if group.container_config and group.container_config.timeout:
        return group.container_config.timeout
    return get_settings().container_timeout


def _process_name(folder: str) -> str:
    safe_name = "".join(c if c.isalnum() or c == "-" else "-" for c in folder)
    return f"nanoclaw-{safe_name}-{int(time.time() * 1000)}"


async def _run(
    group: RegisteredGroup,
    input_data: AgentInput,
    *,
    get_setting: SettingLookup | None,
    validate_mounts: MountValidator | None,
    timeout: float | None,
    on_process: OnProcess | None,
) -> AgentOutput:
    s = get_settings()
    runtime = resolve_agent_runtime(group, get_setting)
    paths = prepare_agent_paths(group.folder, runtime)

    extra_mounts = build_extra_mounts(group, input_data.is_main, validate_mounts)
    expose_extra_mounts(paths.group_dir, extra_mounts)

    env = build_agent_env(group, paths, runtime)
    if runtime == "codex":
        plan = plan_codex_run(input_data, paths.ipc_dir, env, group.name)
    else:
        plan = _plan_agent_runner(input_data, env, group.name)

    timeout_secs = resolve_timeout(group, timeout)
    name = _process_name(group.folder)

    logger.info(
        "Spawning agent",
        process=name,
        is_main=input_data.is_main,
        cwd=str(paths.group_dir),
        ipc_dir=str(paths.ipc_dir),
        extra_mounts=len(extra_mounts),
        timeout_secs=timeout_secs,
    )

    ctx = await supervise(
        plan.command,
        name=name,
        cwd=paths.group_dir,
        env=env,
        stdin_data=plan.stdin_data,
        timeout_secs=timeout_secs,
        max_output_size=s.container.max_output_size,
        group_name=group.name,
        label=plan.label,
        parse=plan.parse,
        on_process=on_process,
    )

    write_run_log(
        logs_dir=paths.logs_dir,
        group_name=group.name,
        runtime=runtime,
        input_data=input_data,
        command=plan.command,
        cwd=paths.group_dir,
        ctx=ctx,
    )

    output = ctx.outcome.result
    logger.info(
        "Agent completed",
        status=output.status,
        duration_ms=round(ctx.duration_ms),
        has_result=bool(output.result),
        timed_out=ctx.timed_out,
    )
    return output


async def run_agent(
    group: RegisteredGroup,
    input_data: AgentInput,
    *,
    get_setting: SettingLookup | None = None,
    validate_mounts: MountValidator | None = None,
    timeout: float | None = None,
    on_process: OnProcess | None = None,
) -> AgentOutput:
    """Run one agent invocation for *group* and return its structured result.

    Args:
        group: The registered group configuration.
        input_data: Prompt and routing info for this invocation.
        get_setting: Lookup into the external settings store; consulted for
            the hot-swappable ``agent_runtime`` setting.
        validate_mounts: External mount-allowlist validator. Without one,
            requested additional mounts are skipped.
        timeout: Explicit timeout in seconds, overriding the group's.
        on_process: Callback invoked with (proc, process_name) after spawn.

    Returns:
        AgentOutput - never raises.
    """
    with run_context(group=group.name):
        try:
            return await _run(
                group,
                input_data,
                get_setting=get_setting,
                validate_mounts=validate_mounts,
                timeout=timeout,
                on_process=on_process,
            )
        except AgentConfigError as exc:
            logger.error("Agent configuration error", error=str(exc))
            return AgentOutput.failure(str(exc))
        except Exception as exc:
            logger.exception("Agent run failed")
            return AgentOutput.failure(f"Agent run failed: {exc}")
