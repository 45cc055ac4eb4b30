"""Serialization helpers: snake_case dataclasses <-> camelCase wire contract.

The agent-runner reads its input as JSON on stdin and prints its result as
JSON between sentinel markers; both sides use camelCase keys.
"""

from __future__ import annotations

import json
from typing import Any

from nanoclaw.types import AgentInput, AgentOutput

_VALID_STATUSES = ("success", "error")


def input_to_dict(input_data: AgentInput) -> dict[str, Any]:
    """Convert AgentInput to the dict written to the child's stdin."""
    d: dict[str, Any] = {
        "prompt": input_data.prompt,
        "groupFolder": input_data.group_folder,
        "chatJid": input_data.chat_jid,
        "isMain": input_data.is_main,
    }
    if input_data.session_id is not None:
        d["sessionId"] = input_data.session_id
    if input_data.is_scheduled_task:
        d["isScheduledTask"] = True
    return d


def output_to_dict(output: AgentOutput) -> dict[str, Any]:
    d: dict[str, Any] = {"status": output.status, "result": output.result}
    if output.new_session_id is not None:
        d["newSessionId"] = output.new_session_id
    if output.error is not None:
        d["error"] = output.error
    return d


def parse_agent_output(json_str: str) -> AgentOutput:
    """Parse the agent-runner's JSON result.

    Raises json.JSONDecodeError, KeyError or ValueError on malformed payloads.
    """
    data = json.loads(json_str)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    status = data["status"]
    if status not in _VALID_STATUSES:
        raise ValueError(f"invalid status {status!r}")
    result = data.get("result")
    return AgentOutput(
        status=status,
        result=None if result is None else str(result),
        new_session_id=data.get("newSessionId"),
        error=data.get("error"),
    )
