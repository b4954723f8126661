import asyncio
import logging
import os
import sys
from typing import Any, Dict, Optional, Sequence

import discord
from dotenv import load_dotenv

from kotatsu_core import (
    AniListClient,
    BotConfig,
    CommandRouter,
    MessageEvent,
    SearchTrigger,
    load_config,
)
from kotatsu_core.audit import build_logger
from kotatsu_core.errors import LookupFailure
from kotatsu_core.scope import ThreadContainer


load_dotenv()

_logger = logging.getLogger("kotatsu.adapter")


class DiscordForumGateway:
    """
    ForumGateway backed by a discord.py client. Reads go through the REST API
    every time so decisions never rest on cached channel state.
    """

    def __init__(self, client: discord.Client):
        self.client = client

    async def fetch_channel_payload(self, channel_id: int) -> Dict[str, Any]:
        try:
            return await self.client.http.get_channel(channel_id)
        except (discord.HTTPException, discord.ClientException) as exc:
            raise LookupFailure(f"Fetching channel {channel_id} failed: {exc}") from exc

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.client.get_guild(guild_id)
        if guild is not None:
            return guild
        return await self.client.fetch_guild(guild_id)

    async def fetch_permissions(self, user_id: int, container: ThreadContainer) -> int:
        if container.guild_id is None:
            raise LookupFailure(f"Channel {container.id} is not in a guild")
        try:
            guild = await self._guild(container.guild_id)
            member = await guild.fetch_member(user_id)
            channel = guild.get_channel_or_thread(container.id)
            if channel is None:
                channel = await guild.fetch_channel(container.id)
            return channel.permissions_for(member).value
        except (discord.HTTPException, discord.ClientException) as exc:
            raise LookupFailure(f"Permission lookup for {user_id} in {container.id} failed: {exc}") from exc

    async def fetch_member_roles(self, guild_id: int, user_id: int) -> Sequence[int]:
        try:
            payload = await self.client.http.get_member(guild_id, user_id)
        except (discord.HTTPException, discord.ClientException) as exc:
            raise LookupFailure(f"Member lookup for {user_id} in guild {guild_id} failed: {exc}") from exc
        try:
            return [int(role_id) for role_id in payload.get("roles", [])]
        except (TypeError, ValueError) as exc:
            raise LookupFailure(f"Malformed role list for member {user_id}") from exc

    async def edit_thread(
        self, thread_id: int, *, name: str, applied_tags: Sequence[int], reason: Optional[str] = None
    ) -> None:
        # Title and tags go out in a single PATCH so they land together.
        await self.client.http.edit_channel(
            thread_id,
            reason=reason,
            name=name,
            applied_tags=[str(tag_id) for tag_id in applied_tags],
        )

    async def send_message(self, channel_id: int, content: str) -> None:
        channel = self.client.get_partial_messageable(channel_id)
        await channel.send(content, allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True))

    async def send_embed(self, channel_id: int, embed: discord.Embed) -> None:
        channel = self.client.get_partial_messageable(channel_id)
        await channel.send(embed=embed)


class KotatsuClient(discord.Client):
    def __init__(self, config: BotConfig, audit_logger: Optional[logging.Logger] = None):
        intents = discord.Intents.none()
        intents.guilds = True
        intents.guild_messages = True
        intents.message_content = True
        super().__init__(
            intents=intents,
            max_messages=None,
            member_cache_flags=discord.MemberCacheFlags.none(),
            chunk_guilds_at_startup=False,
            max_ratelimit_timeout=config.max_ratelimit_timeout,
        )
        self.config = config
        self.gateway = DiscordForumGateway(self)
        self.anilist = AniListClient(timeout_seconds=config.lookup_timeout_seconds)
        self.router = CommandRouter(
            gateway=self.gateway,
            policy=config.access_policy(),
            scope=config.scope(),
            write_timeout=config.write_timeout_seconds,
            audit_logger=audit_logger,
        )
        self.search = SearchTrigger(
            gateway=self.gateway,
            lookup=self.anilist,
            scope=config.scope(),
            enabled=config.search_enabled,
        )
        self._tasks: set[asyncio.Task] = set()

    async def close(self) -> None:
        try:
            await super().close()
        finally:
            await self.anilist.close()

    async def on_ready(self) -> None:
        print(
            f"[READY] Kotatsu online as {self.user} | guilds={len(self.guilds)} "
            f"forums={len(self.config.forum_parent_ids)} search={'on' if self.config.search_enabled else 'off'}",
            flush=True,
        )
        await self._validate_forum_parents()

    async def _validate_forum_parents(self) -> None:
        for parent_id in sorted(self.config.forum_parent_ids):
            try:
                payload = await self.gateway.fetch_channel_payload(parent_id)
                channel = ThreadContainer.from_payload(payload)
            except LookupFailure as exc:
                _logger.warning(
                    "Cannot access forum parent %s: %s. Check the bot is in the server and the id is right.",
                    parent_id,
                    exc,
                )
                continue
            if not channel.is_forum:
                _logger.warning(
                    "Channel %s exists but is not a forum (type=%s); status commands will never match it.",
                    parent_id,
                    channel.type,
                )
            else:
                _logger.info("Forum parent %s OK (name=%r)", parent_id, channel.name)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        event = MessageEvent(
            message_id=message.id,
            channel_id=message.channel.id,
            guild_id=message.guild.id if message.guild else None,
            author_id=message.author.id,
            author_is_bot=message.author.bot,
            content=message.content or "",
        )
        if not event.in_guild:
            return
        if self.router.match(event.content) is not None:
            self._spawn(self.router.handle(event), f"command:{event.message_id}")
        else:
            self._spawn(self.search.handle(event), f"search:{event.message_id}")

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._log_task_failure)

    def _log_task_failure(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            print(f"[TASK-ERROR] {task.get_name()}: {exc}", file=sys.stderr, flush=True)


async def main() -> None:
    config = load_config(os.getenv("KOTATSU_CONFIG", "config.yaml"))
    audit_logger = build_logger(config)
    if not config.discord_token:
        raise RuntimeError("Discord token required via config.yaml or DISCORD_TOKEN env var.")

    client = KotatsuClient(config, audit_logger=audit_logger)
    _logger.info(
        "Watching %d forum parents; access policy=%s; search channels=%d",
        len(config.forum_parent_ids),
        client.router.policy.mode,
        len(config.search_channel_ids),
    )
    async with client:
        await client.start(config.discord_token)


if __name__ == "__main__":
    asyncio.run(main())
