"""Codex backend: runs the Codex CLI directly, no agent-runner in between.

The CLI prints an interactive transcript (banners, tool calls, retries), so
the answer is recovered with the transcript-tail heuristic. Codex has no
stable session id to resume, so successful results never carry one.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from nanoclaw.agent_runner._extract import extract_transcript_answer
from nanoclaw.agent_runner._plan import AgentConfigError, LaunchPlan
from nanoclaw.agent_runner._process import RunContext
from nanoclaw.config import get_settings
from nanoclaw.logger import logger
from nanoclaw.types import AgentInput, AgentOutput

_IPC_TOOL_GUIDE = """

[NANOCLAW IPC TOOLS]
You can interact with NanoClaw by writing JSON files.
- Send a message:
  Write a new file to: {ipc_dir}/messages/
  JSON: {{"type":"message","chatJid":"{chat_jid}","text":"..."}}
- Schedule/pause/resume/cancel tasks:
  Write a new file to: {ipc_dir}/tasks/
  Examples:
  {{"type":"schedule_task","prompt":"...","schedule_type":"cron|interval|once","schedule_value":"...","groupFolder":"{group_folder}"}}
  {{"type":"pause_task","taskId":"..."}}
  {{"type":"resume_task","taskId":"..."}}
  {{"type":"cancel_task","taskId":"..."}}

Reply with plain text for the user.
"""


def build_codex_prompt(input_data: AgentInput, ipc_dir: Path) -> str:
    """Append the file-drop IPC guide to the user's prompt."""
    guide = _IPC_TOOL_GUIDE.format(
        ipc_dir=ipc_dir,
        chat_jid=input_data.chat_jid,
        group_folder=input_data.group_folder,
    )
    return f"{input_data.prompt}{guide}"


def parse_transcript_output(ctx: RunContext, group_name: str) -> AgentOutput:
    answer = extract_transcript_answer(ctx.stdout.text.splitlines())
    if not answer:
        logger.error("Codex returned empty output", group=group_name)
        return AgentOutput.failure(f"Codex returned empty output. Stderr: {ctx.stderr_tail()}")
    return AgentOutput(status="success", result=answer, new_session_id=None)


def plan_codex_run(
    input_data: AgentInput,
    ipc_dir: Path,
    env: dict[str, str],
    group_name: str,
) -> LaunchPlan:
    binary = get_settings().agent.codex_binary
    executable = shutil.which(binary, path=env.get("PATH"))
    if executable is None:
        raise AgentConfigError(f"Codex CLI not found: {binary!r} is not on PATH")

    return LaunchPlan(
        label="Codex",
        command=[executable, "--full-auto", "exec", build_codex_prompt(input_data, ipc_dir)],
        stdin_data=None,
        parse=lambda ctx: parse_transcript_output(ctx, group_name),
    )
