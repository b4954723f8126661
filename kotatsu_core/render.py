from typing import Iterable, Optional

import discord

from .anilist import MediaResult


EMBED_COLOUR = 0x2F3136


def _colour(hex_value: Optional[str]) -> int:
    if hex_value:
        try:
            return int(hex_value.lstrip("#"), 16)
        except ValueError:
            pass
    return EMBED_COLOUR


def media_embed(media: MediaResult) -> discord.Embed:
    genres = ", ".join(media.genres)
    lines = []
    if genres:
        lines.append(f"***{genres}***")
    if media.description:
        lines.append(media.description)
    embed = discord.Embed(
        title=media.title or "Untitled",
        url=media.site_url,
        description="\n".join(lines) or None,
        colour=_colour(media.colour),
    )
    if media.cover_image_url:
        embed.set_image(url=media.cover_image_url)
    footer = " | ".join(part for part in (media.format, media.release_date) if part)
    if footer:
        embed.set_footer(text=footer.replace("_", " "))
    return embed


def compact_embed(results: Iterable[Optional[MediaResult]]) -> Optional[discord.Embed]:
    lines = [f"[**{m.title}**]({m.site_url})" for m in results if m is not None]
    if not lines:
        return None
    return discord.Embed(description="\n".join(lines), colour=EMBED_COLOUR)
