from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple


RESERVED_MARKER = "."


@dataclass(frozen=True)
class ManagedCommand:
    key: str
    title_prefix: str
    status_tag_name: str


def build_command_table(
    commands: Iterable[ManagedCommand], marker: str = RESERVED_MARKER
) -> Mapping[str, ManagedCommand]:
    """
    Index commands by key and check the table invariants: keys, prefixes and
    tag names are unique and every tag name starts with the marker.
    """
    table: dict[str, ManagedCommand] = {}
    prefixes: set[str] = set()
    tag_names: set[str] = set()
    for command in commands:
        if command.key in table:
            raise ValueError(f"Duplicate command key: {command.key}")
        if command.title_prefix.lower() in prefixes:
            raise ValueError(f"Duplicate title prefix: {command.title_prefix}")
        if command.status_tag_name.lower() in tag_names:
            raise ValueError(f"Duplicate status tag: {command.status_tag_name}")
        if not command.status_tag_name.startswith(marker):
            raise ValueError(f"Status tag {command.status_tag_name!r} must start with {marker!r}")
        table[command.key] = command
        prefixes.add(command.title_prefix.lower())
        tag_names.add(command.status_tag_name.lower())
    return MappingProxyType(table)


MANAGED_COMMANDS: Mapping[str, ManagedCommand] = build_command_table(
    [
        ManagedCommand("solved", "[Solved]", ".Solved"),
        ManagedCommand("aware", "[Devs aware]", ".Devs aware"),
        ManagedCommand("duplicate", "[Duplicate]", ".Duplicate"),
        ManagedCommand("false", "[False report]", ".False report"),
        ManagedCommand("known", "[Known issue]", ".Known issue"),
        ManagedCommand("wrong", "[Wrong channel]", ".Wrong channel"),
    ]
)


def title_prefixes(table: Mapping[str, ManagedCommand]) -> Tuple[str, ...]:
    return tuple(command.title_prefix for command in table.values())


def parse_command(
    content: str,
    table: Mapping[str, ManagedCommand] = MANAGED_COMMANDS,
    marker: str = RESERVED_MARKER,
) -> Optional[ManagedCommand]:
    text = (content or "").strip()
    if not text.startswith(marker):
        return None
    token = text.split()[0].lower()
    key = token[len(marker):]
    return table.get(key)
