import asyncio
import html
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from .errors import LookupFailure
from .search import CATEGORY_ANIME, CATEGORY_MANGA


ANILIST_URL = "https://graphql.anilist.co"
DESCRIPTION_LIMIT = 800

_TAG_RE = re.compile(r"<[^>]*>")

MEDIA_QUERY = """
query ($search: String!, $type: MediaType, $isAdult: Boolean) {
  Page(page: 1, perPage: 1) {
    media(search: $search, type: $type, isAdult: $isAdult) {
      id
      siteUrl
      title { romaji english native }
      description(asHtml: false)
      genres
      coverImage { large color }
      format
      startDate { year month day }
    }
  }
}
"""


def strip_tags(text: Optional[str]) -> str:
    if not text:
        return ""
    out = _TAG_RE.sub("", text)
    out = html.unescape(out)
    out = re.sub(r"\n\s*\n", "\n", out)
    return out.strip()


def truncate(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def _first_text(*values: Any) -> str:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _field(node: Dict[str, Any], key: str, kind: type) -> Any:
    value = node.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise LookupFailure(f"AniList field {key} has unexpected type {type(value).__name__}")
    return value


def _format_date(raw: Any) -> Optional[str]:
    if raw is not None and not isinstance(raw, dict):
        raise LookupFailure(f"AniList field startDate has unexpected type {type(raw).__name__}")
    if not raw or not raw.get("year"):
        return None
    try:
        parts = [f"{int(raw['year']):04d}"]
        if raw.get("month"):
            parts.append(f"{int(raw['month']):02d}")
            if raw.get("day"):
                parts.append(f"{int(raw['day']):02d}")
    except (TypeError, ValueError):
        return None
    return "-".join(parts)


@dataclass(frozen=True)
class MediaResult:
    catalog_id: int
    title: str
    site_url: str
    description: str = ""
    genres: List[str] = field(default_factory=list)
    cover_image_url: Optional[str] = None
    release_date: Optional[str] = None
    format: Optional[str] = None
    colour: Optional[str] = None

    @classmethod
    def from_node(cls, node: Dict[str, Any], category: str = CATEGORY_ANIME) -> "MediaResult":
        if not isinstance(node, dict) or node.get("id") is None:
            raise LookupFailure("AniList media entry is missing an id")
        title = _field(node, "title", dict)
        cover = _field(node, "coverImage", dict)
        genres = _field(node, "genres", list)
        try:
            catalog_id = int(node["id"])
        except (TypeError, ValueError) as exc:
            raise LookupFailure(f"Invalid AniList id: {node.get('id')!r}") from exc
        return cls(
            catalog_id=catalog_id,
            title=_first_text(title.get("english"), title.get("romaji"), title.get("native")),
            site_url=str(node.get("siteUrl") or f"https://anilist.co/{category.lower()}/{catalog_id}"),
            description=truncate(strip_tags(node.get("description"))),
            genres=[str(g) for g in genres if g],
            cover_image_url=cover.get("large") or None,
            release_date=_format_date(node.get("startDate")),
            format=node.get("format") or None,
            colour=cover.get("color") or None,
        )


def build_variables(name: str, category: str, allow_adult: bool) -> Dict[str, Any]:
    variables: Dict[str, Any] = {"search": name, "type": category}
    if not allow_adult:
        variables["isAdult"] = False
    return variables


def parse_media_response(payload: Any, category: str = CATEGORY_ANIME) -> Optional[MediaResult]:
    if not isinstance(payload, dict):
        raise LookupFailure("AniList response is not a JSON object")
    data = payload.get("data")
    errors = payload.get("errors")
    if errors and not data:
        if not isinstance(errors, list):
            raise LookupFailure(f"AniList returned errors: {errors!r}")
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
        raise LookupFailure(f"AniList returned errors: {messages}")
    page = (data or {}).get("Page") if isinstance(data, dict) else None
    if not isinstance(page, dict):
        raise LookupFailure("AniList response has no Page")
    media = page.get("media")
    if media is None:
        return None
    if not isinstance(media, list):
        raise LookupFailure("AniList Page.media is not a list")
    if not media:
        return None
    return MediaResult.from_node(media[0], category)


class AniListClient:
    """
    Look up a single anime or manga by name. A missing match is None; transport
    problems and unreadable responses raise LookupFailure.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 8.0,
        url: str = ANILIST_URL,
    ):
        self._session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.url = url
        self.logger = logging.getLogger("kotatsu.anilist")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def search(self, name: str, category: str, allow_adult: bool = False) -> Optional[MediaResult]:
        if not name or not name.strip():
            raise LookupFailure("empty search")
        if category not in (CATEGORY_ANIME, CATEGORY_MANGA):
            raise LookupFailure(f"Unknown media category: {category}")
        payload = {"query": MEDIA_QUERY, "variables": build_variables(name.strip(), category, allow_adult)}
        try:
            async with self._get_session().post(
                self.url,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            ) as resp:
                body = await resp.text()
                if resp.status != 200:
                    self.logger.warning("AniList status=%s body=%s", resp.status, body[:500])
                    raise LookupFailure(f"AniList returned status {resp.status}")
        except asyncio.TimeoutError as exc:
            raise LookupFailure(f"AniList request timed out after {self.timeout.total}s") from exc
        except aiohttp.ClientError as exc:
            raise LookupFailure(f"AniList request failed: {exc}") from exc
        try:
            decoded = json.loads(body)
        except ValueError as exc:
            self.logger.warning("Failed to decode AniList JSON: %s; body=%s", exc, body[:500])
            raise LookupFailure("AniList returned malformed JSON") from exc
        return parse_media_response(decoded, category)
