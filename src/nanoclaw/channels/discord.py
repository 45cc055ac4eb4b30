"""Discord bridge: one process-wide discord.py client with guarded lifecycle.

Conversations are keyed by scope id:
  - ``discord:<guildId>:<channelId>`` for guild channels
  - ``discord:dm:<userId>`` for direct messages

Usage::

    await start_discord(on_incoming)
    await send_discord_message("discord:123:456", "hello")
    await stop_discord()
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import discord

from nanoclaw.config import DiscordConfig, get_settings
from nanoclaw.logger import logger

SCOPE_PREFIX = "discord:"
DM_SCOPE_PREFIX = "discord:dm:"

# Discord rejects messages longer than this
DISCORD_MAX_MESSAGE_LENGTH = 2000


@dataclass(frozen=True)
class DiscordIncomingMessage:
    id: str
    scope_id: str
    timestamp: str
    author_id: str
    author_name: str
    content: str
    is_dm: bool
    is_main_channel: bool
    is_mentioned: bool
    channel_name: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None


@dataclass(frozen=True)
class DiscordScope:
    scope_id: str
    is_dm: bool
    guild_id: str | None = None
    channel_id: str | None = None
    user_id: str | None = None


IncomingHandler = Callable[[DiscordIncomingMessage], Awaitable[None] | None]
ClientFactory = Callable[[], Any]

_client: Any = None
_connect_task: asyncio.Task[None] | None = None


# ---------------------------------------------------------------------------
# Configuration checks
# ---------------------------------------------------------------------------


def is_discord_enabled(config: DiscordConfig | None = None) -> bool:
    config = config or get_settings().discord
    return config.token is not None and bool(config.token.get_secret_value().strip())


def assert_discord_token_configured(config: DiscordConfig | None = None) -> str:
    """Return the bot token, or raise ValueError when it is missing or malformed."""
    config = config or get_settings().discord
    if not is_discord_enabled(config):
        raise ValueError("Discord is enabled but DISCORD__TOKEN is missing/empty")
    assert config.token is not None
    token = config.token.get_secret_value().strip()
    # Bot tokens are three dot-separated segments
    if len(token.split(".")) < 3:
        raise ValueError(
            "DISCORD__TOKEN does not look like a Discord bot token "
            "(expected dot-separated segments)"
        )
    return token


# ---------------------------------------------------------------------------
# Scopes and access control
# ---------------------------------------------------------------------------


def scope_from_message(message: Any) -> DiscordScope:
    if message.guild is not None:
        guild_id = str(message.guild.id)
        channel_id = str(message.channel.id)
        return DiscordScope(
            scope_id=f"{SCOPE_PREFIX}{guild_id}:{channel_id}",
            is_dm=False,
            guild_id=guild_id,
            channel_id=channel_id,
        )
    user_id = str(message.author.id)
    return DiscordScope(scope_id=f"{DM_SCOPE_PREFIX}{user_id}", is_dm=True, user_id=user_id)


def parse_scope_id(scope_id: str) -> DiscordScope:
    """Inverse of scope_from_message. Raises ValueError for foreign or malformed ids."""
    if scope_id.startswith(DM_SCOPE_PREFIX):
        user_id = scope_id[len(DM_SCOPE_PREFIX) :]
        if not user_id:
            raise ValueError(f"Invalid Discord scopeId: {scope_id}")
        return DiscordScope(scope_id=scope_id, is_dm=True, user_id=user_id)

    if not scope_id.startswith(SCOPE_PREFIX):
        raise ValueError(f"Not a Discord scopeId: {scope_id}")

    parts = scope_id[len(SCOPE_PREFIX) :].split(":")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid Discord scopeId: {scope_id}")
    guild_id, channel_id = parts
    return DiscordScope(scope_id=scope_id, is_dm=False, guild_id=guild_id, channel_id=channel_id)


def is_allowed(guild_id: str | None, channel_id: str | None, config: DiscordConfig) -> bool:
    """Whether a message from this guild/channel may reach an agent.

    DMs (no guild) are always allowed. Without explicit allowlists, only the
    main channel is allowed when one is configured.
    """
    if guild_id is None:
        return True
    if config.allowed_guild_ids and guild_id not in config.allowed_guild_ids:
        return False
    if config.allowed_channel_ids and channel_id not in config.allowed_channel_ids:
        return False
    if not config.allowed_guild_ids and not config.allowed_channel_ids and config.main_channel_id:
        return channel_id == config.main_channel_id
    return True


def to_incoming_message(
    message: Any, bot_user: Any, config: DiscordConfig
) -> DiscordIncomingMessage | None:
    """Convert a discord.py message, or None when it should be dropped."""
    if bot_user is None:
        return None
    if message.author.id == bot_user.id or message.author.bot:
        return None
    if not message.content:
        return None

    scope = scope_from_message(message)
    if not is_allowed(scope.guild_id, scope.channel_id, config):
        return None

    is_main_channel = bool(config.main_channel_id) and scope.channel_id == config.main_channel_id
    is_mentioned = not scope.is_dm and any(u.id == bot_user.id for u in message.mentions)

    return DiscordIncomingMessage(
        id=str(message.id),
        scope_id=scope.scope_id,
        timestamp=message.created_at.isoformat(),
        author_id=str(message.author.id),
        author_name=getattr(message.author, "display_name", None) or message.author.name,
        content=message.content,
        is_dm=scope.is_dm,
        is_main_channel=is_main_channel,
        is_mentioned=is_mentioned,
        channel_name="DM" if scope.is_dm else getattr(message.channel, "name", None),
        guild_id=scope.guild_id,
        channel_id=scope.channel_id,
    )


# ---------------------------------------------------------------------------
# Client lifecycle
# ---------------------------------------------------------------------------


def _default_client() -> discord.Client:
    intents = discord.Intents.default()
    intents.message_content = True
    intents.dm_messages = True
    return discord.Client(intents=intents)


def get_discord_client() -> Any:
    if _client is None:
        raise RuntimeError("Discord client not started")
    return _client


async def start_discord(
    on_incoming: IncomingHandler,
    *,
    client_factory: ClientFactory | None = None,
) -> Any:
    """Log in and start the gateway connection in the background.

    Raises RuntimeError when a client is already running and ValueError when
    the token is not configured.
    """
    global _client, _connect_task
    if _client is not None:
        raise RuntimeError("Discord client already started")

    config = get_settings().discord
    token = assert_discord_token_configured(config)
    client = (client_factory or _default_client)()

    @client.event
    async def on_ready() -> None:
        logger.info("Connected to Discord", user=str(client.user))

    @client.event
    async def on_message(message: Any) -> None:
        try:
            incoming = to_incoming_message(message, client.user, config)
            if incoming is None:
                return
            result = on_incoming(incoming)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error processing Discord message")

    _client = client
    try:
        await client.login(token)
    except Exception:
        _client = None
        raise
    _connect_task = asyncio.create_task(client.connect(), name="discord-connect")
    _connect_task.add_done_callback(_on_connect_done)
    logger.info("Discord client started")
    return client


def _on_connect_done(task: asyncio.Task[None]) -> None:
    """Clear the process-wide client when the gateway connection dies on its own."""
    global _client, _connect_task
    if task is not _connect_task:
        return  # stop_discord() already cleared the state
    exc = task.exception() if not task.cancelled() else None
    logger.error(
        "Discord connection ended unexpectedly",
        exc=f"{type(exc).__name__}: {exc}" if exc else "cancelled",
    )
    client = _client
    _client = None
    _connect_task = None
    if client is not None:
        task.get_loop().create_task(client.close(), name="discord-close")


async def stop_discord() -> None:
    """Close the client and clear the process-wide state. Safe when not started."""
    global _client, _connect_task
    client, task = _client, _connect_task
    _client = None
    _connect_task = None
    if client is None:
        return

    await client.close()
    if task is not None and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("Discord client stopped")


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


async def _resolve_messageable(scope_id: str) -> Any:
    client = get_discord_client()
    scope = parse_scope_id(scope_id)
    if scope.is_dm:
        assert scope.user_id is not None
        user = await client.fetch_user(int(scope.user_id))
        return await user.create_dm()
    assert scope.channel_id is not None
    return await client.fetch_channel(int(scope.channel_id))


def split_message(text: str, limit: int = DISCORD_MAX_MESSAGE_LENGTH) -> list[str]:
    """Split *text* into chunks Discord will accept, preferring line breaks."""
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks


async def send_discord_message(scope_id: str, text: str) -> None:
    channel = await _resolve_messageable(scope_id)
    for chunk in split_message(text):
        await channel.send(chunk)
    logger.info("Discord message sent", scope_id=scope_id, length=len(text))


async def set_discord_typing(scope_id: str, is_typing: bool) -> None:
    """Show the typing indicator. Discord has no explicit stop, so False is a no-op."""
    if not is_typing:
        return
    try:
        channel = await _resolve_messageable(scope_id)
        await channel.typing()
    except (ValueError, discord.HTTPException) as exc:
        logger.debug("Failed to set Discord typing", scope_id=scope_id, err=str(exc))
