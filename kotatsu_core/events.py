from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MessageEvent:
    message_id: int
    channel_id: int
    guild_id: Optional[int]
    author_id: int
    author_is_bot: bool
    content: str

    @property
    def in_guild(self) -> bool:
        return self.guild_id is not None
