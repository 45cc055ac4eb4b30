"""Data models for nanoclaw."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


@dataclass
class AdditionalMount:
    host_path: str  # Absolute path on host (supports ~ for home)
    container_path: str | None = None  # Defaults to basename of host_path
    readonly: bool = True  # Advisory only in no-container mode


@dataclass
class VolumeMount:
    """A mount that passed the external allowlist check."""

    host_path: str
    container_path: str
    readonly: bool = False


@dataclass
class GroupRunConfig:
    """Per-group run settings stored alongside the group registration."""

    env: dict[str, str] = field(default_factory=dict)  # Highest-priority env overrides
    timeout: float | None = None  # Seconds (default: settings.container_timeout)
    additional_mounts: list[AdditionalMount] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict) -> GroupRunConfig:
        return cls(
            env={str(k): str(v) for k, v in (raw.get("env") or {}).items()},
            timeout=raw.get("timeout"),
            additional_mounts=[AdditionalMount(**m) for m in raw.get("additional_mounts") or []],
        )


@dataclass
class RegisteredGroup:
    name: str
    folder: str
    trigger: str
    added_at: str = ""
    container_config: GroupRunConfig | None = None
    requires_trigger: bool = True


@dataclass(frozen=True)
class AgentInput:
    prompt: str
    group_folder: str
    chat_jid: str
    is_main: bool
    session_id: str | None = None
    is_scheduled_task: bool = False


@dataclass
class AgentOutput:
    status: Literal["success", "error"]
    result: str | None = None
    new_session_id: str | None = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> AgentOutput:
        return cls(status="error", result=None, error=error)


@dataclass
class ScheduledTask:
    id: str
    group_folder: str
    chat_jid: str
    prompt: str
    schedule_type: Literal["cron", "interval", "once"]
    schedule_value: str
    context_mode: Literal["group", "isolated"] = "isolated"
    next_run: str | None = None
    last_run: str | None = None
    last_result: str | None = None
    status: Literal["active", "paused", "completed"] = "active"
    created_at: str = ""

    def to_snapshot_dict(self) -> dict[str, str | None]:
        """Serialize to the dict shape the agent reads from current_tasks.json."""
        return {
            "id": self.id,
            "groupFolder": self.group_folder,
            "prompt": self.prompt,
            "schedule_type": self.schedule_type,
            "schedule_value": self.schedule_value,
            "status": self.status,
            "next_run": self.next_run,
        }


@dataclass
class AvailableGroup:
    jid: str
    name: str
    last_activity: str
    is_registered: bool = False

    def to_snapshot_dict(self) -> dict[str, str | bool]:
        return {
            "jid": self.jid,
            "name": self.name,
            "lastActivity": self.last_activity,
            "isRegistered": self.is_registered,
        }
