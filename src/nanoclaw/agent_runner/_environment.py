"""Environment composition: per-group directories and child process env.

Each group gets its own working directory, HOME, and IPC namespace so
session state never leaks between groups sharing one host. The host
process's own environment is never mutated.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

from nanoclaw.config import AgentRuntime, get_settings
from nanoclaw.logger import logger
from nanoclaw.types import RegisteredGroup

# Only these keys are ever read from the secrets file.
ALLOWED_SECRET_KEYS: tuple[str, ...] = ("CLAUDE_CODE_OAUTH_TOKEN", "ANTHROPIC_API_KEY")

# Backend-specific session state directory inside the per-group HOME.
SESSION_SUBDIRS: dict[str, str] = {"claude": ".claude", "codex": ".codex"}

IPC_DROP_DIRS: tuple[str, ...] = ("messages", "tasks")


@dataclass(frozen=True)
class AgentPaths:
    group_dir: Path
    logs_dir: Path
    ipc_dir: Path
    home_dir: Path
    session_dir: Path


def load_allowed_secrets(env_file: Path) -> dict[str, str]:
    """Read the two credential keys from a dotenv file; everything else is ignored."""
    if not env_file.exists():
        return {}
    try:
        values = dotenv_values(env_file)
    except OSError as exc:
        logger.warning("Failed to read secrets file", path=str(env_file), err=str(exc))
        return {}
    out: dict[str, str] = {}
    for key in ALLOWED_SECRET_KEYS:
        value = (values.get(key) or "").strip()
        if value:
            out[key] = value
    return out


def ipc_dir_for(folder: str) -> Path:
    return get_settings().data_dir / "ipc" / folder


def prepare_agent_paths(folder: str, runtime: AgentRuntime) -> AgentPaths:
    """Create the per-group directory layout (idempotent) and return it."""
    s = get_settings()
    group_dir = s.groups_dir / folder
    logs_dir = group_dir / "logs"
    ipc_dir = ipc_dir_for(folder)
    home_dir = s.data_dir / "sessions" / folder
    session_dir = home_dir / SESSION_SUBDIRS[runtime]

    for d in (group_dir, logs_dir, session_dir):
        d.mkdir(parents=True, exist_ok=True)
    for sub in IPC_DROP_DIRS:
        (ipc_dir / sub).mkdir(parents=True, exist_ok=True)

    return AgentPaths(
        group_dir=group_dir,
        logs_dir=logs_dir,
        ipc_dir=ipc_dir,
        home_dir=home_dir,
        session_dir=session_dir,
    )


def build_agent_env(
    group: RegisteredGroup,
    paths: AgentPaths,
    runtime: AgentRuntime,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Compose the child env.

    Layers, lowest to highest: ambient env, allowed secrets, per-group
    overrides, then the fixed HOME / directory pointers.
    """
    env: dict[str, str] = dict(os.environ if base_env is None else base_env)

    secrets = load_allowed_secrets(get_settings().env_file)
    env.update(secrets)

    overrides = group.container_config.env if group.container_config else {}
    env.update(overrides)

    env.update(
        {
            "HOME": str(paths.home_dir),
            "NANOCLAW_GROUP_DIR": str(paths.group_dir),
            "NANOCLAW_IPC_DIR": str(paths.ipc_dir),
            "AGENT_RUNTIME": runtime,
        }
    )

    logger.debug(
        "Agent env prepared",
        group=group.folder,
        runtime=runtime,
        secrets=sorted(secrets),
        overrides=sorted(overrides),
    )
    return env
