"""Centralized configuration: Pydantic BaseSettings with TOML + dotenv sources.

Non-secret settings live in config.toml. The Discord token may live in .env.
Environment variables override both using ``__`` as the nested delimiter
(e.g. ``AGENT__RUNTIME=codex``, ``CONTAINER__TIMEOUT_MS=60000``).

Priority (highest wins): init args > env vars > .env > config.toml

Usage::

    from nanoclaw.config import get_settings

    s = get_settings()
    print(s.agent.runtime)
    print(s.container_timeout)
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

AgentRuntime = Literal["claude", "codex"]

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in config.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models - reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class AgentConfig(_StrictModel):
    runtime: AgentRuntime = "claude"  # process-wide default backend
    node_binary: str = "node"
    entrypoint: str = "container/agent-runner/dist/index.js"  # relative to project root
    codex_binary: str = "codex"


class ContainerConfig(_StrictModel):
    timeout_ms: int = 1800000  # 30 minutes
    max_output_size: int = 10485760  # 10MB per stream

    @field_validator("timeout_ms", "max_output_size")
    @classmethod
    def require_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


class DiscordConfig(_StrictModel):
    token: SecretStr | None = None
    main_channel_id: str | None = None
    allowed_guild_ids: list[str] = []
    allowed_channel_ids: list[str] = []


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="config.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    agent: AgentConfig = AgentConfig()
    container: ContainerConfig = ContainerConfig()
    logging: LoggingConfig = LoggingConfig()
    discord: DiscordConfig = DiscordConfig()

    # Sentinels (class-level, not fields). Must match the agent-runner.
    OUTPUT_START_MARKER: ClassVar[str] = "---NANOCLAW_OUTPUT_START---"
    OUTPUT_END_MARKER: ClassVar[str] = "---NANOCLAW_OUTPUT_END---"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > config.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # --- Computed properties ---

    @cached_property
    def container_timeout(self) -> float:
        """Global default run timeout, in seconds."""
        return self.container.timeout_ms / 1000

    @cached_property
    def project_root(self) -> Path:
        return Path.cwd()

    @cached_property
    def groups_dir(self) -> Path:
        return (self.project_root / "groups").resolve()

    @cached_property
    def data_dir(self) -> Path:
        return (self.project_root / "data").resolve()

    @cached_property
    def env_file(self) -> Path:
        """Secrets file consulted for agent credentials."""
        return self.project_root / ".env"

    @cached_property
    def agent_entrypoint(self) -> Path:
        p = Path(self.agent.entrypoint)
        return p if p.is_absolute() else self.project_root / p


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
