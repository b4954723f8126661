from typing import Any, Dict, Optional, Protocol, Sequence

import discord

from .scope import ThreadContainer


class ForumGateway(Protocol):
    """
    Remote operations the dispatchers need. The discord.py implementation lives
    in the adapter; tests supply in-memory fakes.

    Read methods raise LookupFailure. edit_thread raises whatever the transport
    raises so the router can classify it.
    """

    async def fetch_channel_payload(self, channel_id: int) -> Dict[str, Any]:
        ...

    async def fetch_permissions(self, user_id: int, container: ThreadContainer) -> int:
        ...

    async def fetch_member_roles(self, guild_id: int, user_id: int) -> Sequence[int]:
        ...

    async def edit_thread(self, thread_id: int, *, name: str, applied_tags: Sequence[int], reason: Optional[str] = None) -> None:
        ...

    async def send_message(self, channel_id: int, content: str) -> None:
        ...

    async def send_embed(self, channel_id: int, embed: discord.Embed) -> None:
        ...
