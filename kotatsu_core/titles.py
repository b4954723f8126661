from typing import Iterable


THREAD_NAME_LIMIT = 100


def strip_managed_prefixes(title: str, known_prefixes: Iterable[str]) -> str:
    """
    Remove every managed prefix stacked at the start of a title, e.g.
    "[Solved] [Duplicate] crash on boot" -> "crash on boot".
    Only the exact managed strings are recognised; other bracketed text stays.
    """
    prefixes = [p for p in known_prefixes if p]
    remaining = (title or "").strip()
    stripped = True
    while stripped:
        stripped = False
        lowered = remaining.lower()
        for prefix in prefixes:
            if lowered.startswith(prefix.lower()):
                remaining = remaining[len(prefix):].lstrip()
                stripped = True
                break
    return remaining


def apply_title_prefix(
    title: str,
    prefix: str,
    known_prefixes: Iterable[str],
    limit: int = THREAD_NAME_LIMIT,
) -> str:
    base = strip_managed_prefixes(title, list(known_prefixes) + [prefix])
    new_title = f"{prefix} {base}".strip()
    if len(new_title) > limit:
        new_title = new_title[:limit].rstrip()
    return new_title
