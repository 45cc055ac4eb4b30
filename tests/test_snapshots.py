"""Tests for IPC snapshot files."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import make_tmp_settings, patch_settings

from nanoclaw.agent_runner._snapshots import write_groups_snapshot, write_tasks_snapshot
from nanoclaw.types import AvailableGroup, ScheduledTask


def _read(tmp_path: Path, folder: str, name: str):
    return json.loads((tmp_path / "data" / "ipc" / folder / name).read_text())


class TestTasksSnapshot:
    def test_non_main_sees_only_own_tasks(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            write_tasks_snapshot(
                "a", False, [{"id": 1, "groupFolder": "a"}, {"id": 2, "groupFolder": "b"}]
            )
        assert _read(tmp_path, "a", "current_tasks.json") == [{"id": 1, "groupFolder": "a"}]

    def test_main_sees_all_tasks(self, tmp_path: Path):
        tasks = [{"id": 1, "groupFolder": "a"}, {"id": 2, "groupFolder": "b"}]
        with patch_settings(make_tmp_settings(tmp_path)):
            write_tasks_snapshot("main", True, tasks)
        assert _read(tmp_path, "main", "current_tasks.json") == tasks

    def test_accepts_task_snapshot_dicts(self, tmp_path: Path):
        task = ScheduledTask(
            id="t1",
            group_folder="a",
            chat_jid="discord:1:2",
            prompt="daily digest",
            schedule_type="cron",
            schedule_value="0 9 * * *",
            next_run="2024-01-02T09:00:00Z",
        )
        with patch_settings(make_tmp_settings(tmp_path)):
            write_tasks_snapshot("a", False, [task.to_snapshot_dict()])
        result = _read(tmp_path, "a", "current_tasks.json")
        assert result[0]["groupFolder"] == "a"
        assert result[0]["schedule_value"] == "0 9 * * *"

    def test_overwrites_previous_snapshot(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            write_tasks_snapshot("a", False, [{"id": 1, "groupFolder": "a"}])
            write_tasks_snapshot("a", False, [])
        assert _read(tmp_path, "a", "current_tasks.json") == []

    def test_no_temp_files_left_behind(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            path = write_tasks_snapshot("a", False, [])
        assert [p.name for p in path.parent.iterdir()] == ["current_tasks.json"]

    def test_failed_write_removes_temp_file(self, tmp_path: Path):
        with (
            patch_settings(make_tmp_settings(tmp_path)),
            patch.object(Path, "replace", side_effect=OSError("disk full")),
            pytest.raises(OSError, match="disk full"),
        ):
            write_tasks_snapshot("a", False, [])
        assert list((tmp_path / "data" / "ipc" / "a").glob("*.tmp")) == []


class TestGroupsSnapshot:
    def test_main_sees_all_groups(self, tmp_path: Path):
        groups = [
            AvailableGroup("1@g", "One", "2024-01-01T00:00:00Z", is_registered=True),
            AvailableGroup("2@g", "Two", "2024-01-02T00:00:00Z"),
        ]
        with patch_settings(make_tmp_settings(tmp_path)):
            write_groups_snapshot("main", True, [g.to_snapshot_dict() for g in groups], {"1@g"})
        result = _read(tmp_path, "main", "available_groups.json")
        assert [g["jid"] for g in result["groups"]] == ["1@g", "2@g"]
        assert result["groups"][0]["lastActivity"] == "2024-01-01T00:00:00Z"
        assert "lastSync" in result

    def test_non_main_sees_no_groups(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            write_groups_snapshot("other", False, [{"jid": "1@g"}], {"1@g"})
        result = _read(tmp_path, "other", "available_groups.json")
        assert result["groups"] == []
        assert "lastSync" in result

    def test_fills_missing_registration_flag(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            write_groups_snapshot("main", True, [{"jid": "1@g"}, {"jid": "2@g"}], {"2@g"})
        result = _read(tmp_path, "main", "available_groups.json")
        assert [g["isRegistered"] for g in result["groups"]] == [False, True]
