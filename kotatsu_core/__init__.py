"""
Kotatsu core package.

This package holds the forum status-command engine (scope, access, tag and
title reconciliation) and the AniList lookup used for inline title mentions.
It talks to Discord only through the ForumGateway protocol; the discord.py
client lives in the adapter layer.
"""

from .config import BotConfig, load_config
from .commands import MANAGED_COMMANDS, ManagedCommand, parse_command
from .events import MessageEvent
from .discord_permissions import AccessPolicy
from .scope import ScopeConfig, ThreadContainer
from .router import CommandOutcome, CommandRouter
from .anilist import AniListClient, MediaResult
from .trigger import SearchOutcome, SearchTrigger

__all__ = [
    "BotConfig",
    "load_config",
    "MANAGED_COMMANDS",
    "ManagedCommand",
    "parse_command",
    "MessageEvent",
    "AccessPolicy",
    "ScopeConfig",
    "ThreadContainer",
    "CommandOutcome",
    "CommandRouter",
    "AniListClient",
    "MediaResult",
    "SearchOutcome",
    "SearchTrigger",
]
