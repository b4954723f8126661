import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import discord

from .anilist import MediaResult
from .errors import LookupFailure
from .events import MessageEvent
from .gateway import ForumGateway
from .render import compact_embed, media_embed
from .scope import ScopeConfig, ThreadContainer, search_in_scope
from .search import classify_message


class MediaLookup(Protocol):
    async def search(self, name: str, category: str, allow_adult: bool = False) -> Optional[MediaResult]:
        ...


@dataclass
class SearchOutcome:
    category: str
    names: List[str]
    results: List[Optional[MediaResult]] = field(default_factory=list)
    posted: bool = False


class SearchTrigger:
    """
    Answers `Title` / {Title} / <Title> mentions in ordinary messages with an
    AniList summary. Lookup and send failures are logged and never raised.
    """

    def __init__(
        self,
        gateway: ForumGateway,
        lookup: MediaLookup,
        scope: ScopeConfig,
        enabled: bool = True,
    ):
        self.gateway = gateway
        self.lookup = lookup
        self.scope = scope
        self.enabled = enabled
        self.logger = logging.getLogger("kotatsu.search")

    async def handle(self, event: MessageEvent) -> Optional[SearchOutcome]:
        if not self.enabled or event.author_is_bot:
            return None
        try:
            return await self._run(event)
        except Exception:
            self.logger.exception("Search failed for message %s in %s", event.message_id, event.channel_id)
            return None

    async def _run(self, event: MessageEvent) -> Optional[SearchOutcome]:
        found = classify_message(event.content)
        if found is None:
            return None
        category, names = found

        try:
            container = ThreadContainer.from_payload(await self.gateway.fetch_channel_payload(event.channel_id))
        except LookupFailure as exc:
            self.logger.warning("Failed to fetch channel %s for search: %s", event.channel_id, exc)
            return None
        if not search_in_scope(container, event.author_is_bot, self.scope):
            return None

        allow_adult = await self._allow_adult(container)
        self.logger.info(
            "%s names=%s in channel=%s (nsfw=%s)", category.lower(), names, container.id, allow_adult
        )
        outcome = SearchOutcome(category=category, names=names)
        if len(names) == 1:
            media = await self._lookup(names[0], category, allow_adult)
            outcome.results = [media]
            if media is not None:
                outcome.posted = await self._post(event.channel_id, media_embed(media))
            return outcome

        gathered = await asyncio.gather(
            *(self._lookup(name, category, allow_adult) for name in names), return_exceptions=True
        )
        results: List[Optional[MediaResult]] = []
        for name, result in zip(names, gathered):
            if isinstance(result, Exception):
                self.logger.error("Lookup for %r crashed: %s", name, result)
                result = None
            results.append(result)
        outcome.results = results
        embed = compact_embed(results)
        if embed is not None:
            outcome.posted = await self._post(event.channel_id, embed)
        return outcome

    async def _allow_adult(self, container: ThreadContainer) -> bool:
        if container.nsfw:
            return True
        if not container.is_thread or container.parent_id is None:
            return False
        # Threads carry the parent's age restriction.
        try:
            parent = ThreadContainer.from_payload(await self.gateway.fetch_channel_payload(container.parent_id))
        except LookupFailure as exc:
            self.logger.debug("Could not read parent %s nsfw flag: %s", container.parent_id, exc)
            return False
        return parent.nsfw

    async def _lookup(self, name: str, category: str, allow_adult: bool) -> Optional[MediaResult]:
        try:
            media = await self.lookup.search(name, category, allow_adult)
        except LookupFailure as exc:
            self.logger.warning("AniList error for %r: %s", name, exc)
            return None
        if media is None:
            self.logger.info("No AniList results for %r (%s)", name, category.lower())
        return media

    async def _post(self, channel_id: int, embed: discord.Embed) -> bool:
        try:
            await self.gateway.send_embed(channel_id, embed)
        except (discord.HTTPException, discord.RateLimited, LookupFailure) as exc:
            self.logger.warning("Failed to post search result to %s: %s", channel_id, exc)
            return False
        return True
