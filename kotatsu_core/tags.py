from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .commands import RESERVED_MARKER
from .errors import LookupFailure, TagNotFound


@dataclass(frozen=True)
class ForumTag:
    id: int
    name: str

    def is_managed(self, marker: str = RESERVED_MARKER) -> bool:
        return self.name.startswith(marker)


def _tag_list(payload: Dict[str, Any], key: str) -> Optional[list]:
    """
    Locate a tag list in a channel payload. The REST shape carries it at the top
    level; some wrappers nest the channel object under "channel".
    """
    if not isinstance(payload, dict):
        raise LookupFailure(f"Channel payload is not an object: {type(payload).__name__}")
    value = payload.get(key)
    if value is None:
        nested = payload.get("channel")
        if isinstance(nested, dict):
            value = nested.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise LookupFailure(f"{key} is not a list")
    return value


def _tag_id(entry: Any) -> int:
    raw = entry.get("id") if isinstance(entry, dict) else entry
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise LookupFailure(f"Invalid tag id: {raw!r}") from exc


def available_tags_from_payload(payload: Dict[str, Any]) -> Tuple[ForumTag, ...]:
    entries = _tag_list(payload, "available_tags") or []
    tags = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise LookupFailure(f"Invalid forum tag entry: {entry!r}")
        tags.append(ForumTag(id=_tag_id(entry), name=str(entry.get("name") or "")))
    return tuple(tags)


def applied_tags_from_payload(payload: Dict[str, Any]) -> Tuple[int, ...]:
    entries = _tag_list(payload, "applied_tags") or []
    return tuple(_tag_id(entry) for entry in entries)


def managed_tag_ids(catalog: Iterable[ForumTag], marker: str = RESERVED_MARKER) -> frozenset[int]:
    return frozenset(tag.id for tag in catalog if tag.is_managed(marker))


def find_status_tag(catalog: Iterable[ForumTag], name: str) -> ForumTag:
    wanted = name.strip().lower()
    for tag in catalog:
        if tag.name.strip().lower() == wanted:
            return tag
    raise TagNotFound(name)


def reconcile_applied_tags(
    catalog: Sequence[ForumTag],
    requested_id: int,
    applied: Sequence[int],
    marker: str = RESERVED_MARKER,
) -> List[int]:
    """
    Replace whatever managed tag a thread carries with the requested one.

    Unmanaged ids keep their order (duplicates included); the requested id is
    appended once. The requested id is treated as managed even if the catalog
    entry somehow lacks the marker, so the result always holds it exactly once.
    """
    managed = managed_tag_ids(catalog, marker) | {requested_id}
    result = [tag_id for tag_id in applied if tag_id not in managed]
    result.append(requested_id)
    return result
