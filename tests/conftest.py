"""Shared test fixtures for nanoclaw."""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from unittest.mock import patch

import pytest

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures - importable by test files)
# ---------------------------------------------------------------------------

# Cached property names that must be set via __dict__ (not model_construct).
_CACHED_PROPERTY_NAMES = frozenset(
    {
        "container_timeout",
        "project_root",
        "groups_dir",
        "data_dir",
        "env_file",
        "agent_entrypoint",
    }
)

# Every module that calls get_settings() at runtime.
SETTINGS_MODULES = [
    "nanoclaw.agent_runner._runtime",
    "nanoclaw.agent_runner._environment",
    "nanoclaw.agent_runner._codex",
    "nanoclaw.agent_runner._orchestrator",
    "nanoclaw.channels.discord",
]


def make_settings(**overrides):
    """Create a Settings object with sensible defaults for testing.

    Accepts both model fields (agent, container, etc.) and cached property
    overrides (project_root, data_dir, groups_dir, etc.).

    Usage::

        s = make_settings(data_dir=tmp_path)
        s = make_settings(container=ContainerConfig(max_output_size=10))
    """
    from nanoclaw.config import (
        AgentConfig,
        ContainerConfig,
        DiscordConfig,
        LoggingConfig,
        Settings,
    )

    cached = {k: overrides.pop(k) for k in list(overrides) if k in _CACHED_PROPERTY_NAMES}

    defaults = {
        "agent": AgentConfig(),
        "container": ContainerConfig(),
        "logging": LoggingConfig(),
        "discord": DiscordConfig(),
    }
    defaults.update(overrides)
    s = Settings.model_construct(**defaults)

    for key, value in cached.items():
        s.__dict__[key] = value

    return s


def make_tmp_settings(tmp_path: Path, **overrides):
    """Settings rooted at *tmp_path* (groups/, data/, .env, agent entrypoint)."""
    base = {
        "project_root": tmp_path,
        "groups_dir": tmp_path / "groups",
        "data_dir": tmp_path / "data",
        "env_file": tmp_path / ".env",
        "agent_entrypoint": tmp_path / "agent-runner" / "index.js",
    }
    base.update(overrides)
    return make_settings(**base)


@contextlib.contextmanager
def patch_settings(settings):
    """Patch get_settings() in every module that reads it."""
    with contextlib.ExitStack() as stack:
        for mod in SETTINGS_MODULES:
            stack.enter_context(patch(f"{mod}.get_settings", return_value=settings))
        yield settings


class FakeStdin:
    """Collects what the supervisor writes to the child's stdin."""

    def __init__(self) -> None:
        self.buffer = bytearray()
        self.closed = False

    def write(self, data: bytes) -> None:
        self.buffer += data

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Simulates asyncio.subprocess.Process for testing.

    ``kill()`` closes the pipes with exit code -9 unless ``kill_closes`` is
    False, which models grandchildren holding the pipes open.
    """

    def __init__(self, *, kill_closes: bool = True) -> None:
        self.stdin = FakeStdin()
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self._returncode: int | None = None
        self._wait_event = asyncio.Event()
        self.pid = 12345
        self.killed = False
        self.kill_closes = kill_closes

    def emit_stdout(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def emit_stderr(self, data: bytes) -> None:
        self.stderr.feed_data(data)

    def close(self, code: int = 0) -> None:
        """Simulate process exit."""
        if self._wait_event.is_set():
            return
        self._returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._wait_event.set()

    async def wait(self) -> int:
        await self._wait_event.wait()
        return self._returncode  # type: ignore[return-value]

    def kill(self) -> None:
        self.killed = True
        if self.kill_closes:
            self.close(-9)

    @property
    def returncode(self) -> int | None:
        return self._returncode


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean Settings singleton.

    Uses ``make_settings()`` to build from pure defaults - no config.toml,
    no .env, no file I/O. Tests that mock ``get_settings()`` at the call
    site are unaffected.
    """
    safe = make_settings()
    monkeypatch.setattr("nanoclaw.config._settings", safe)


@pytest.fixture(autouse=True)
def reset_discord_state(monkeypatch):
    """No test may leak a started Discord client into the next."""
    monkeypatch.setattr("nanoclaw.channels.discord._client", None)
    monkeypatch.setattr("nanoclaw.channels.discord._connect_task", None)
