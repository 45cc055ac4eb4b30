"""Tests for per-group directories and child env composition."""

from __future__ import annotations

from pathlib import Path

from conftest import make_tmp_settings, patch_settings

from nanoclaw.agent_runner._environment import (
    build_agent_env,
    load_allowed_secrets,
    prepare_agent_paths,
)
from nanoclaw.types import GroupRunConfig, RegisteredGroup

TEST_GROUP = RegisteredGroup(name="Test Group", folder="test-group", trigger="@Andy")


class TestLoadAllowedSecrets:
    def test_missing_file_returns_empty(self, tmp_path: Path):
        assert load_allowed_secrets(tmp_path / ".env") == {}

    def test_only_allowed_keys_are_read(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "ANTHROPIC_API_KEY=sk-test\n"
            "CLAUDE_CODE_OAUTH_TOKEN='oauth-token'\n"
            "DISCORD__TOKEN=should-not-leak\n"
            "AWS_SECRET_ACCESS_KEY=nope\n"
        )
        assert load_allowed_secrets(env_file) == {
            "ANTHROPIC_API_KEY": "sk-test",
            "CLAUDE_CODE_OAUTH_TOKEN": "oauth-token",
        }

    def test_empty_values_are_dropped(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("ANTHROPIC_API_KEY=\nCLAUDE_CODE_OAUTH_TOKEN=   \n")
        assert load_allowed_secrets(env_file) == {}


class TestPrepareAgentPaths:
    def test_creates_layout(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            paths = prepare_agent_paths("test-group", "claude")

        assert paths.group_dir == tmp_path / "groups" / "test-group"
        assert paths.logs_dir.is_dir()
        assert (paths.ipc_dir / "messages").is_dir()
        assert (paths.ipc_dir / "tasks").is_dir()
        assert paths.home_dir == tmp_path / "data" / "sessions" / "test-group"
        assert paths.session_dir == paths.home_dir / ".claude"
        assert paths.session_dir.is_dir()

    def test_codex_gets_its_own_session_dir(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            paths = prepare_agent_paths("test-group", "codex")
        assert paths.session_dir.name == ".codex"

    def test_is_idempotent(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            first = prepare_agent_paths("test-group", "claude")
            second = prepare_agent_paths("test-group", "claude")
        assert first == second

    def test_groups_are_isolated(self, tmp_path: Path):
        with patch_settings(make_tmp_settings(tmp_path)):
            a = prepare_agent_paths("group-a", "claude")
            b = prepare_agent_paths("group-b", "claude")
        assert a.home_dir != b.home_dir
        assert a.ipc_dir != b.ipc_dir


class TestBuildAgentEnv:
    def test_layers_in_priority_order(self, tmp_path: Path):
        (tmp_path / ".env").write_text("ANTHROPIC_API_KEY=from-secrets\n")
        group = RegisteredGroup(
            name="Test Group",
            folder="test-group",
            trigger="@Andy",
            container_config=GroupRunConfig(
                env={"ANTHROPIC_API_KEY": "from-group", "EXTRA": "1", "HOME": "/tmp/evil"}
            ),
        )
        base = {"PATH": "/usr/bin", "ANTHROPIC_API_KEY": "from-host", "HOME": "/root"}

        with patch_settings(make_tmp_settings(tmp_path)):
            paths = prepare_agent_paths("test-group", "claude")
            env = build_agent_env(group, paths, "claude", base_env=base)

        assert env["PATH"] == "/usr/bin"
        assert env["ANTHROPIC_API_KEY"] == "from-group"
        assert env["EXTRA"] == "1"
        # Fixed pointers always win
        assert env["HOME"] == str(paths.home_dir)
        assert env["NANOCLAW_GROUP_DIR"] == str(paths.group_dir)
        assert env["NANOCLAW_IPC_DIR"] == str(paths.ipc_dir)
        assert env["AGENT_RUNTIME"] == "claude"

    def test_secrets_override_host_env(self, tmp_path: Path):
        (tmp_path / ".env").write_text("CLAUDE_CODE_OAUTH_TOKEN=fresh\n")
        with patch_settings(make_tmp_settings(tmp_path)):
            paths = prepare_agent_paths("test-group", "claude")
            env = build_agent_env(
                TEST_GROUP, paths, "claude", base_env={"CLAUDE_CODE_OAUTH_TOKEN": "stale"}
            )
        assert env["CLAUDE_CODE_OAUTH_TOKEN"] == "fresh"

    def test_does_not_mutate_base_env(self, tmp_path: Path):
        base = {"PATH": "/usr/bin"}
        with patch_settings(make_tmp_settings(tmp_path)):
            paths = prepare_agent_paths("test-group", "codex")
            build_agent_env(TEST_GROUP, paths, "codex", base_env=base)
        assert base == {"PATH": "/usr/bin"}
