"""Output protocol extraction: captured stdout to a structured result.

Two strategies, picked by backend:
  - sentinel envelope (agent-runner): JSON between literal start/end markers
  - transcript tail (interactive CLIs): last answer line after a role marker
"""

from __future__ import annotations

import json
from collections.abc import Iterable

from nanoclaw.agent_runner._serialization import parse_agent_output
from nanoclaw.config import Settings
from nanoclaw.logger import logger
from nanoclaw.types import AgentOutput

ROLE_MARKER = "codex"
NOISE_TOKEN = "tokens used"

# ---------------------------------------------------------------------------
# Sentinel envelope
# ---------------------------------------------------------------------------


def extract_sentinel_payload(stdout: str) -> str:
    """Return the text between the markers, or the last non-empty line as a fallback."""
    start_idx = stdout.find(Settings.OUTPUT_START_MARKER)
    end_idx = -1
    if start_idx != -1:
        end_idx = stdout.find(
            Settings.OUTPUT_END_MARKER, start_idx + len(Settings.OUTPUT_START_MARKER)
        )

    if start_idx != -1 and end_idx != -1:
        return stdout[start_idx + len(Settings.OUTPUT_START_MARKER) : end_idx].strip()

    # Fallback: last non-empty line (older agent-runners print bare JSON)
    for line in reversed(stdout.splitlines()):
        if line.strip():
            return line.strip()
    return ""


def parse_sentinel_output(stdout: str, group_name: str) -> AgentOutput:
    """Parse the agent-runner's result. Parse failures become an error output."""
    json_str = extract_sentinel_payload(stdout)
    try:
        return parse_agent_output(json_str)
    except json.JSONDecodeError as exc:
        # Truncate long output to avoid flooding logs
        preview = json_str[:200] + "..." if len(json_str) > 200 else json_str
        logger.error(
            "Invalid JSON in agent output",
            group=group_name,
            json_error=str(exc),
            preview=preview,
        )
        return AgentOutput.failure(f"Failed to parse agent output: {exc}")
    except KeyError as exc:
        logger.error(
            "Missing required field in agent output",
            group=group_name,
            missing_key=str(exc),
        )
        return AgentOutput.failure(f"Failed to parse agent output: missing field {exc}")
    except ValueError as exc:
        logger.error("Malformed agent output", group=group_name, error=str(exc))
        return AgentOutput.failure(f"Failed to parse agent output: {exc}")


# ---------------------------------------------------------------------------
# Transcript tail
# ---------------------------------------------------------------------------


def extract_transcript_answer(lines: Iterable[str]) -> str | None:
    """Find the final answer in a CLI transcript, in one pass.

    After the last line that is exactly the role marker, the answer is the
    last non-blank line (the CLI repeats its final answer at the end). With
    no role marker at all, the last non-blank line of the transcript wins.
    The noise token is never an answer.
    """
    seen_marker = False
    last_after_marker: str | None = None
    last_overall: str | None = None

    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if line == ROLE_MARKER:
            seen_marker = True
            last_after_marker = None
            continue
        if line == NOISE_TOKEN:
            continue
        last_overall = line
        if seen_marker:
            last_after_marker = line

    if seen_marker:
        return last_after_marker
    return last_overall
