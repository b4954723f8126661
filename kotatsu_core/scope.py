from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from .errors import LookupFailure


# Discord channel types: announcement thread, public thread, private thread.
THREAD_CHANNEL_TYPES: FrozenSet[int] = frozenset({10, 11, 12})
FORUM_CHANNEL_TYPES: FrozenSet[int] = frozenset({15, 16})


def _snowflake(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise LookupFailure(f"Invalid id in channel payload: {value!r}") from exc


@dataclass(frozen=True)
class ThreadContainer:
    id: int
    parent_id: Optional[int]
    name: str
    type: int
    guild_id: Optional[int]
    nsfw: bool = False

    @property
    def is_thread(self) -> bool:
        return self.type in THREAD_CHANNEL_TYPES

    @property
    def is_forum(self) -> bool:
        return self.type in FORUM_CHANNEL_TYPES

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ThreadContainer":
        if not isinstance(payload, dict) or "id" not in payload:
            raise LookupFailure("Channel payload is missing an id")
        try:
            channel_type = int(payload.get("type", -1))
        except (TypeError, ValueError) as exc:
            raise LookupFailure(f"Invalid channel type: {payload.get('type')!r}") from exc
        return cls(
            id=_snowflake(payload["id"]),
            parent_id=_snowflake(payload.get("parent_id")),
            name=str(payload.get("name") or ""),
            type=channel_type,
            guild_id=_snowflake(payload.get("guild_id")),
            nsfw=bool(payload.get("nsfw", False)),
        )


@dataclass(frozen=True)
class ScopeConfig:
    forum_parent_ids: FrozenSet[int] = frozenset()
    search_channel_ids: FrozenSet[int] = frozenset()


def command_in_scope(container: ThreadContainer, author_is_bot: bool, scope: ScopeConfig) -> bool:
    if author_is_bot:
        return False
    if not container.is_thread:
        return False
    if scope.forum_parent_ids:
        return container.parent_id is not None and container.parent_id in scope.forum_parent_ids
    return True


def search_in_scope(container: ThreadContainer, author_is_bot: bool, scope: ScopeConfig) -> bool:
    if author_is_bot:
        return False
    if scope.search_channel_ids:
        return container.id in scope.search_channel_ids or container.parent_id in scope.search_channel_ids
    return True
