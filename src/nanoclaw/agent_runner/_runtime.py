"""Runtime selection: which backend runs a group's request.

Precedence (highest first): per-group override > dynamic setting store >
process-wide default > hardcoded fallback. The resolver chain is rebuilt on
every call so an operator can flip the stored setting mid-session.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import get_args

from nanoclaw.config import AgentRuntime, get_settings
from nanoclaw.logger import logger
from nanoclaw.types import RegisteredGroup

RUNTIMES: frozenset[str] = frozenset(get_args(AgentRuntime))
FALLBACK_RUNTIME: AgentRuntime = "claude"

GROUP_OVERRIDE_ENV = "AGENT_RUNTIME"
SETTING_KEY = "agent_runtime"

SettingLookup = Callable[[str], str | None]
Resolver = Callable[[], str | None]


def _group_override(group: RegisteredGroup) -> Resolver:
    def resolve() -> str | None:
        if group.container_config is None:
            return None
        return group.container_config.env.get(GROUP_OVERRIDE_ENV)

    return resolve


def _stored_setting(get_setting: SettingLookup | None) -> Resolver:
    def resolve() -> str | None:
        if get_setting is None:
            return None
        try:
            return get_setting(SETTING_KEY)
        except Exception:
            logger.exception("Runtime setting lookup failed, ignoring")
            return None

    return resolve


def _process_default() -> str | None:
    return get_settings().agent.runtime


def runtime_resolvers(
    group: RegisteredGroup, get_setting: SettingLookup | None = None
) -> list[tuple[str, Resolver]]:
    """Ordered (source, resolver) pairs, highest precedence first."""
    return [
        ("group", _group_override(group)),
        ("setting", _stored_setting(get_setting)),
        ("default", _process_default),
    ]


def resolve_agent_runtime(
    group: RegisteredGroup, get_setting: SettingLookup | None = None
) -> AgentRuntime:
    """Pick the backend for *group*. Never raises; unknown values are skipped."""
    for source, resolve in runtime_resolvers(group, get_setting):
        value = resolve()
        if not isinstance(value, str) or not value:
            continue
        value = value.strip().lower()
        if value in RUNTIMES:
            return value  # type: ignore[return-value]
        logger.debug("Ignoring unknown agent runtime", source=source, value=value)
    return FALLBACK_RUNTIME
