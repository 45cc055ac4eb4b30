"""IPC snapshot helpers: filtered views the agent reads from its mailbox.

Main sees everything; other groups see only their own tasks and no groups
at all. Files are replaced wholesale on every write (last writer wins).
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from nanoclaw.agent_runner._environment import ipc_dir_for

TASKS_SNAPSHOT = "current_tasks.json"
GROUPS_SNAPSHOT = "available_groups.json"


def _replace_json(path: Path, payload: Any) -> None:
    """Write to a temp file then rename, so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        temp_path.replace(path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def write_tasks_snapshot(
    folder: str,
    is_main: bool,
    tasks: Iterable[Mapping[str, Any]],
) -> Path:
    """Write current_tasks.json to the group's IPC directory."""
    # Main sees all tasks, others only see their own
    filtered = [dict(t) for t in tasks if is_main or t.get("groupFolder") == folder]

    path = ipc_dir_for(folder) / TASKS_SNAPSHOT
    _replace_json(path, filtered)
    return path


def write_groups_snapshot(
    folder: str,
    is_main: bool,
    groups: Iterable[Mapping[str, Any]],
    registered_jids: set[str],
) -> Path:
    """Write available_groups.json to the group's IPC directory.

    ``registered_jids`` fills in ``isRegistered`` for entries that lack it.
    """
    # Main sees all groups; others see nothing (they can't activate groups)
    visible: list[dict[str, Any]] = []
    if is_main:
        for g in groups:
            entry = dict(g)
            entry.setdefault("isRegistered", entry.get("jid") in registered_jids)
            visible.append(entry)

    payload = {
        "groups": visible,
        "lastSync": datetime.now(UTC).isoformat(),
    }
    path = ipc_dir_for(folder) / GROUPS_SNAPSHOT
    _replace_json(path, payload)
    return path
