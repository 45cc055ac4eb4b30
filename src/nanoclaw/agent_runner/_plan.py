"""Launch plans: what each backend spawns and how its stdout is read."""

from __future__ import annotations

from dataclasses import dataclass

from nanoclaw.agent_runner._process import ParseOutput


class AgentConfigError(Exception):
    """The backend cannot be launched (missing executable or entrypoint)."""


@dataclass(frozen=True)
class LaunchPlan:
    label: str  # Human-readable backend name used in error messages
    command: list[str]
    stdin_data: bytes | None
    parse: ParseOutput
