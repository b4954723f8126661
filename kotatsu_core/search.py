import re
from typing import List, Optional, Pattern, Tuple


CATEGORY_ANIME = "ANIME"
CATEGORY_MANGA = "MANGA"

MAX_NAMES_PER_MESSAGE = 10

_DELIMITERS = "`<>{}"

# `Title` or {Title}
ANIME_PATTERN: Pattern[str] = re.compile(r"`[\s\S]*?`|\{(?P<name>.*?)\}")

# <Title>, ignoring links, custom emoji, mentions, timestamps and slash-command mentions.
MANGA_PATTERN: Pattern[str] = re.compile(
    r"(?P<skip><[^<>]*?https?://[^<>]*>"
    r"|<a?:[^<>]+?:\d*>"
    r"|<[@#][!&]?\d+>"
    r"|<t:-?\d+(?::[tTdDfFR])?>"
    r"|</[^<>]+:\d+>)"
    r"|`[\s\S]*?`"
    r"|<(?P<name>.*?)>"
)

GRAMMARS: Tuple[Tuple[str, Pattern[str]], ...] = (
    (CATEGORY_ANIME, ANIME_PATTERN),
    (CATEGORY_MANGA, MANGA_PATTERN),
)


def extract_names(pattern: Pattern[str], text: str, limit: int = MAX_NAMES_PER_MESSAGE) -> List[str]:
    """
    Pull candidate titles out of a message. The "name" group wins when it
    captured something; otherwise the whole match minus its delimiters is used.
    Blank captures are dropped and repeats (case-insensitive) collapse onto the
    first spelling.
    """
    names: List[str] = []
    seen: set[str] = set()
    for match in pattern.finditer(text or ""):
        groups = match.groupdict()
        if groups.get("skip"):
            continue
        captured = groups.get("name")
        if captured and captured.strip():
            candidate = captured.strip()
        else:
            candidate = match.group(0).strip().strip(_DELIMITERS).strip()
        if not candidate:
            continue
        key = candidate.lower()
        if key in seen:
            continue
        seen.add(key)
        names.append(candidate)
        if len(names) >= limit:
            break
    return names


def classify_message(text: str) -> Optional[Tuple[str, List[str]]]:
    """
    Return (category, names) for the first grammar that finds anything.
    Anime is checked first; manga is only tried when anime found nothing.
    """
    for category, pattern in GRAMMARS:
        names = extract_names(pattern, text)
        if names:
            return category, names
    return None
